from typing import Any

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.database.database import get_db
from backoffice.schemas.employee_schema import (
    DeductionCreate,
    DeductionResponse,
    DeductionUpdate,
    EarningCreate,
    EarningResponse,
    EarningUpdate,
    EmployeeCreate,
    EmployeeListResponse,
    EmployeeResponse,
    EmployeeStatus,
    EmployeeUpdate,
)
from backoffice.services import employee_service

router = APIRouter(prefix="/api/employees", tags=["Employees"])


@router.post("", response_model=EmployeeResponse, status_code=status.HTTP_201_CREATED)
async def create_employee(data: EmployeeCreate, db: AsyncSession = Depends(get_db)) -> Any:
    return await employee_service.create_employee(db=db, data=data)


@router.get("", response_model=EmployeeListResponse)
async def get_employees(
    status: EmployeeStatus | None = None,
    department: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
    db: AsyncSession = Depends(get_db),
) -> Any:
    return await employee_service.get_employees(
        db=db,
        status=status,
        department=department,
        search=search,
        page=page,
        limit=limit,
    )


@router.get("/{employee_id}", response_model=EmployeeResponse)
async def get_employee(employee_id: int, db: AsyncSession = Depends(get_db)) -> Any:
    return await employee_service.get_employee(db=db, employee_id=employee_id)


@router.put("/{employee_id}", response_model=EmployeeResponse)
async def update_employee(
    employee_id: int, data: EmployeeUpdate, db: AsyncSession = Depends(get_db)
) -> Any:
    return await employee_service.update_employee(
        db=db, employee_id=employee_id, data=data
    )


@router.delete("/{employee_id}")
async def delete_employee(employee_id: int, db: AsyncSession = Depends(get_db)) -> dict:
    await employee_service.delete_employee(db=db, employee_id=employee_id)
    return {"message": "Employee deleted successfully"}


@router.get("/{employee_id}/earnings", response_model=list[EarningResponse])
async def get_earnings(employee_id: int, db: AsyncSession = Depends(get_db)) -> Any:
    return await employee_service.get_earnings(db=db, employee_id=employee_id)


@router.post(
    "/{employee_id}/earnings",
    response_model=EarningResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_earning(
    employee_id: int, data: EarningCreate, db: AsyncSession = Depends(get_db)
) -> Any:
    return await employee_service.create_earning(
        db=db, employee_id=employee_id, data=data
    )


@router.put("/{employee_id}/earnings/{earning_id}", response_model=EarningResponse)
async def update_earning(
    employee_id: int,
    earning_id: int,
    data: EarningUpdate,
    db: AsyncSession = Depends(get_db),
) -> Any:
    return await employee_service.update_earning(
        db=db, employee_id=employee_id, earning_id=earning_id, data=data
    )


@router.delete("/{employee_id}/earnings/{earning_id}")
async def delete_earning(
    employee_id: int, earning_id: int, db: AsyncSession = Depends(get_db)
) -> dict:
    await employee_service.delete_earning(
        db=db, employee_id=employee_id, earning_id=earning_id
    )
    return {"message": "Earning deleted successfully"}


@router.get("/{employee_id}/deductions", response_model=list[DeductionResponse])
async def get_deductions(employee_id: int, db: AsyncSession = Depends(get_db)) -> Any:
    return await employee_service.get_deductions(db=db, employee_id=employee_id)


@router.post(
    "/{employee_id}/deductions",
    response_model=DeductionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_deduction(
    employee_id: int, data: DeductionCreate, db: AsyncSession = Depends(get_db)
) -> Any:
    """
    Add a deduction with either a fixed amount or a percentage of base salary.
    """
    return await employee_service.create_deduction(
        db=db, employee_id=employee_id, data=data
    )


@router.put(
    "/{employee_id}/deductions/{deduction_id}", response_model=DeductionResponse
)
async def update_deduction(
    employee_id: int,
    deduction_id: int,
    data: DeductionUpdate,
    db: AsyncSession = Depends(get_db),
) -> Any:
    return await employee_service.update_deduction(
        db=db, employee_id=employee_id, deduction_id=deduction_id, data=data
    )


@router.delete("/{employee_id}/deductions/{deduction_id}")
async def delete_deduction(
    employee_id: int, deduction_id: int, db: AsyncSession = Depends(get_db)
) -> dict:
    await employee_service.delete_deduction(
        db=db, employee_id=employee_id, deduction_id=deduction_id
    )
    return {"message": "Deduction deleted successfully"}
