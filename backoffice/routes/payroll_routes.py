from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.database.database import get_db
from backoffice.schemas.payroll_schema import (
    PayrollCalculateRequest,
    PayrollListResponse,
    PayrollResponse,
    PayrollStatus,
    PayrollUpdate,
    Payslip,
    PayslipRequest,
)
from backoffice.services.payroll_service import PayrollService

router = APIRouter(tags=["Payrolls"], prefix="/api/payroll")


@router.get("", response_model=PayrollListResponse)
async def get_payrolls(
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    employee_id: int | None = Query(default=None, alias="employeeId"),
    status: PayrollStatus | None = None,
    page: int = 1,
    limit: int = 50,
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    List payroll records for a period and/or employee.
    """
    payroll_service = PayrollService(db)
    return await payroll_service.get_payrolls(
        start_date=start_date,
        end_date=end_date,
        employee_id=employee_id,
        status=status,
        page=page,
        limit=limit,
    )


@router.post("/calculate")
async def calculate_payroll(
    data: PayrollCalculateRequest, db: AsyncSession = Depends(get_db)
) -> dict:
    """
    Calculate one employee's payroll for a period outside of any batch.
    """
    payroll_service = PayrollService(db)
    payroll, result = await payroll_service.calculate_employee_payroll(data)
    return {
        "payroll": PayrollResponse.model_validate(payroll),
        "calculation_details": {
            "work_days": result.attendance.work_days,
            "regular_hours": str(result.attendance.regular_hours),
            "overtime_hours": str(result.attendance.overtime_hours),
            "hourly_rate": str(result.hourly_rate),
        },
    }


@router.post("/payslip", response_model=list[Payslip])
async def get_payslips(data: PayslipRequest, db: AsyncSession = Depends(get_db)) -> Any:
    """
    Payslip documents for a whole batch or a single payroll record.
    """
    payroll_service = PayrollService(db)
    return await payroll_service.build_payslips(
        batch_id=data.batch_id, payroll_id=data.payroll_id
    )


@router.get("/{payroll_id}", response_model=PayrollResponse)
async def get_payroll(payroll_id: int, db: AsyncSession = Depends(get_db)) -> Any:
    payroll_service = PayrollService(db)
    return await payroll_service.get_payroll(payroll_id)


@router.put("/{payroll_id}", response_model=PayrollResponse)
async def update_payroll(
    payroll_id: int, data: PayrollUpdate, db: AsyncSession = Depends(get_db)
) -> Any:
    """
    Update the pay date, status or notes of one payroll record.
    """
    payroll_service = PayrollService(db)
    return await payroll_service.update_payroll(payroll_id, data)


@router.delete("/{payroll_id}")
async def delete_payroll(payroll_id: int, db: AsyncSession = Depends(get_db)) -> dict:
    payroll_service = PayrollService(db)
    await payroll_service.delete_payroll(payroll_id)
    return {"message": "Payroll record deleted successfully"}
