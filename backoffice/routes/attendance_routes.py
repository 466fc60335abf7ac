from fastapi import APIRouter, Depends
from typing import List
from datetime import date

from backoffice.database.database import get_db
from backoffice.services.attendance_service import (
    attendance_report,
    clock,
    create_attendance,
    get_attendance,
    update_attendance,
    delete_attendance,
    get_attendances,
)
from backoffice.schemas.attendance_schema import (
    AttendanceCreate,
    AttendanceReportRow,
    AttendanceUpdate,
    AttendanceResponse,
    AttendanceStatus,
    ClockRequest,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/api/attendance", tags=["Attendance"])


@router.post("", response_model=AttendanceResponse, status_code=201)
async def create_attendance_route(attendance: AttendanceCreate, db: AsyncSession = Depends(get_db)):
    return await create_attendance(db=db, attendance_data=attendance)


@router.post("/clock", response_model=AttendanceResponse)
async def clock_route(data: ClockRequest, db: AsyncSession = Depends(get_db)):
    """
    Clock in, clock out, or start/end a break for today.
    """
    return await clock(db=db, data=data)


@router.get("", response_model=List[AttendanceResponse])
async def get_attendances_route(
    employee_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    status: AttendanceStatus | None = None,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    return await get_attendances(
        db=db,
        employee_id=employee_id,
        start_date=start_date,
        end_date=end_date,
        status=status,
        skip=skip,
        limit=limit,
    )


@router.get("/report", response_model=List[AttendanceReportRow])
async def attendance_report_route(
    start_date: date,
    end_date: date,
    employee_id: int | None = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Days worked and hours per employee over a date range.
    """
    return await attendance_report(
        db=db, start_date=start_date, end_date=end_date, employee_id=employee_id
    )


@router.get("/{attendance_id}", response_model=AttendanceResponse)
async def get_attendance_route(attendance_id: int, db: AsyncSession = Depends(get_db)):
    return await get_attendance(db=db, attendance_id=attendance_id)


@router.put("/{attendance_id}", response_model=AttendanceResponse)
async def update_attendance_route(attendance_id: int, attendance_update: AttendanceUpdate, db: AsyncSession = Depends(get_db)):
    return await update_attendance(
        db=db, attendance_id=attendance_id, attendance_update=attendance_update)


@router.delete("/{attendance_id}")
async def delete_attendance_route(attendance_id: int, db: AsyncSession = Depends(get_db)):
    await delete_attendance(db=db, attendance_id=attendance_id)
    return {"message": "Attendance deleted successfully"}
