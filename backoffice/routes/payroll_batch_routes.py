from typing import Any

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.database.database import get_db
from backoffice.schemas.payroll_schema import (
    BatchProcessResponse,
    BatchSummary,
    PayrollBatchCreate,
    PayrollBatchListResponse,
    PayrollBatchResponse,
    PayrollBatchUpdate,
)
from backoffice.services import payroll_batch_service

router = APIRouter(prefix="/api/payroll/batch", tags=["Payroll Batches"])


def process_response(batch, results) -> BatchProcessResponse:
    successful = sum(1 for r in results if r.status == "SUCCESS")
    return BatchProcessResponse(
        batch=batch,
        summary=BatchSummary(
            total_processed=len(results),
            successful=successful,
            failed=len(results) - successful,
        ),
        results=results,
    )


@router.post("", response_model=BatchProcessResponse, status_code=status.HTTP_201_CREATED)
async def create_batch(data: PayrollBatchCreate, db: AsyncSession = Depends(get_db)) -> Any:
    """
    Create a payroll batch and process it straight away.
    """
    batch = await payroll_batch_service.create_batch(db=db, data=data)
    batch, results = await payroll_batch_service.process_batch(db=db, batch_id=batch.id)
    return process_response(batch, results)


@router.get("", response_model=PayrollBatchListResponse)
async def get_batches(
    page: int = 1, limit: int = 20, db: AsyncSession = Depends(get_db)
) -> Any:
    return await payroll_batch_service.get_batches(db=db, page=page, limit=limit)


@router.get("/{batch_id}", response_model=PayrollBatchResponse)
async def get_batch(batch_id: int, db: AsyncSession = Depends(get_db)) -> Any:
    return await payroll_batch_service.get_batch(db=db, batch_id=batch_id)


@router.put("/{batch_id}", response_model=PayrollBatchResponse)
async def update_batch(
    batch_id: int, data: PayrollBatchUpdate, db: AsyncSession = Depends(get_db)
) -> Any:
    """
    Update the batch name, pay date or status.
    """
    return await payroll_batch_service.update_batch(db=db, batch_id=batch_id, data=data)


@router.delete("/{batch_id}")
async def delete_batch(batch_id: int, db: AsyncSession = Depends(get_db)) -> dict:
    await payroll_batch_service.delete_batch(db=db, batch_id=batch_id)
    return {"message": "Payroll batch deleted successfully"}


@router.post("/{batch_id}/process", response_model=BatchProcessResponse)
async def process_batch(batch_id: int, db: AsyncSession = Depends(get_db)) -> Any:
    """
    Recalculate every payroll in the batch. Safe to repeat.
    """
    batch, results = await payroll_batch_service.process_batch(db=db, batch_id=batch_id)
    return process_response(batch, results)


@router.post("/{batch_id}/approve", response_model=PayrollBatchResponse)
async def approve_batch(batch_id: int, db: AsyncSession = Depends(get_db)) -> Any:
    return await payroll_batch_service.approve_batch(db=db, batch_id=batch_id)


@router.post("/{batch_id}/pay", response_model=PayrollBatchResponse)
async def pay_batch(batch_id: int, db: AsyncSession = Depends(get_db)) -> Any:
    return await payroll_batch_service.pay_batch(db=db, batch_id=batch_id)


@router.post("/{batch_id}/cancel", response_model=PayrollBatchResponse)
async def cancel_batch(batch_id: int, db: AsyncSession = Depends(get_db)) -> Any:
    return await payroll_batch_service.cancel_batch(db=db, batch_id=batch_id)
