from datetime import date, datetime, timezone
from decimal import Decimal
from itertools import groupby
from operator import attrgetter

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backoffice.config.config import settings
from backoffice.models.models import Attendance, Employee
from backoffice.schemas.attendance_schema import (
    AttendanceCreate,
    AttendanceReportRow,
    AttendanceStatus,
    AttendanceUpdate,
    ClockAction,
    ClockRequest,
)
from backoffice.services.payroll_calculator import aggregate_attendance
from backoffice.utils.exceptions import (
    InvalidState,
    NotFound,
    UpstreamFailure,
    ValidationError,
)
from backoffice.utils.utils import quantize_money

HOUR = Decimal(3600)


def _utc(value: datetime | None) -> datetime | None:
    # some drivers hand back naive timestamps; treat those as UTC
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def split_hours(
    clock_in: datetime,
    clock_out: datetime,
    break_start: datetime | None = None,
    break_end: datetime | None = None,
    regular_hours_per_day: int | None = None,
) -> tuple[Decimal, Decimal, Decimal]:
    """Worked hours for one day as (total, regular, overtime)."""
    if regular_hours_per_day is None:
        regular_hours_per_day = settings.WORKING_HOURS_PER_DAY
    clock_in, clock_out = _utc(clock_in), _utc(clock_out)
    break_start, break_end = _utc(break_start), _utc(break_end)
    if clock_out <= clock_in:
        raise ValidationError("Clock out must be after clock in")

    seconds = Decimal(str((clock_out - clock_in).total_seconds()))
    if break_start and break_end:
        if break_end < break_start:
            raise ValidationError("Break end must be after break start")
        seconds -= Decimal(str((break_end - break_start).total_seconds()))
    total = max(seconds / HOUR, Decimal("0"))

    threshold = Decimal(regular_hours_per_day)
    regular = min(total, threshold)
    overtime = total - regular
    return quantize_money(total), quantize_money(regular), quantize_money(overtime)


def _apply_hours(attendance: Attendance, explicit_hours: bool) -> None:
    if attendance.clock_in and attendance.clock_out:
        total, regular, overtime = split_hours(
            attendance.clock_in,
            attendance.clock_out,
            attendance.break_start,
            attendance.break_end,
        )
        attendance.total_hours = total
        if not explicit_hours:
            attendance.regular_hours = regular
            attendance.overtime_hours = overtime
    elif explicit_hours:
        attendance.total_hours = (attendance.regular_hours or Decimal("0")) + (
            attendance.overtime_hours or Decimal("0")
        )

    for value in (attendance.regular_hours, attendance.overtime_hours):
        if value is not None and value < 0:
            raise ValidationError("Hours cannot be negative")


async def _save(db: AsyncSession, attendance: Attendance) -> Attendance:
    try:
        await db.commit()
        await db.refresh(attendance)
        return attendance
    except IntegrityError as e:
        await db.rollback()
        raise ValidationError(
            "An attendance record already exists for this employee and date"
        ) from e
    except SQLAlchemyError as e:
        await db.rollback()
        raise UpstreamFailure(f"Failed to save attendance: {e}") from e


async def _require_employee(db: AsyncSession, employee_id: int) -> Employee:
    employee = await db.get(Employee, employee_id)
    if employee is None:
        raise NotFound("Employee not found")
    return employee


async def create_attendance(
    db: AsyncSession, attendance_data: AttendanceCreate
) -> Attendance:
    await _require_employee(db, attendance_data.employee_id)
    attendance = Attendance(**attendance_data.model_dump())
    _apply_hours(
        attendance,
        attendance_data.regular_hours is not None
        or attendance_data.overtime_hours is not None,
    )
    db.add(attendance)
    return await _save(db, attendance)


async def get_attendance(db: AsyncSession, attendance_id: int) -> Attendance:
    attendance = await db.get(Attendance, attendance_id)
    if attendance is None:
        raise NotFound("Attendance record not found")
    return attendance


async def update_attendance(
    db: AsyncSession, attendance_id: int, attendance_update: AttendanceUpdate
) -> Attendance:
    attendance = await get_attendance(db, attendance_id)
    changes = attendance_update.model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(attendance, key, value)
    _apply_hours(
        attendance, "regular_hours" in changes or "overtime_hours" in changes
    )
    return await _save(db, attendance)


async def delete_attendance(db: AsyncSession, attendance_id: int) -> None:
    attendance = await get_attendance(db, attendance_id)
    try:
        await db.delete(attendance)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise UpstreamFailure(f"Failed to delete attendance: {e}") from e


async def get_attendances(
    db: AsyncSession,
    employee_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    status: AttendanceStatus | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[Attendance]:
    filters = []
    if employee_id is not None:
        filters.append(Attendance.employee_id == employee_id)
    if start_date is not None:
        filters.append(Attendance.date >= start_date)
    if end_date is not None:
        filters.append(Attendance.date <= end_date)
    if status is not None:
        filters.append(Attendance.status == status)
    result = await db.execute(
        select(Attendance)
        .where(*filters)
        .order_by(Attendance.date.desc(), Attendance.employee_id)
        .offset(skip)
        .limit(limit)
    )
    return result.scalars().all()


async def attendance_report(
    db: AsyncSession,
    start_date: date,
    end_date: date,
    employee_id: int | None = None,
) -> list[AttendanceReportRow]:
    """Per-employee day and hour totals over a date range."""
    if end_date < start_date:
        raise ValidationError("end_date must not be before start_date")
    filters = [Attendance.date >= start_date, Attendance.date <= end_date]
    if employee_id is not None:
        filters.append(Attendance.employee_id == employee_id)
    result = await db.execute(
        select(Attendance)
        .options(selectinload(Attendance.employee))
        .where(*filters)
        .order_by(Attendance.employee_id, Attendance.date)
    )

    report = []
    for _, rows in groupby(result.scalars().all(), key=attrgetter("employee_id")):
        rows = list(rows)
        employee = rows[0].employee
        summary = aggregate_attendance(rows)
        report.append(
            AttendanceReportRow(
                employee_id=employee.id,
                employee_code=employee.employee_code,
                name=employee.full_name,
                department=employee.department,
                total_days=len(rows),
                work_days=summary.work_days,
                total_hours=quantize_money(summary.total_hours),
                regular_hours=quantize_money(summary.regular_hours),
                overtime_hours=quantize_money(summary.overtime_hours),
            )
        )
    return report


async def clock(db: AsyncSession, data: ClockRequest) -> Attendance:
    await _require_employee(db, data.employee_id)
    now = data.timestamp or datetime.now(timezone.utc)
    result = await db.execute(
        select(Attendance).where(
            Attendance.employee_id == data.employee_id,
            Attendance.date == now.date(),
        )
    )
    attendance = result.scalar_one_or_none()

    if data.action == ClockAction.CLOCK_IN:
        if attendance and attendance.clock_in:
            raise InvalidState("Already clocked in for today")
        if attendance is None:
            attendance = Attendance(employee_id=data.employee_id, date=now.date())
            db.add(attendance)
        attendance.clock_in = now
        attendance.status = AttendanceStatus.PRESENT

    elif data.action == ClockAction.CLOCK_OUT:
        if attendance is None or attendance.clock_in is None:
            raise InvalidState("Must clock in first")
        if attendance.clock_out:
            raise InvalidState("Already clocked out for today")
        if attendance.break_start and not attendance.break_end:
            attendance.break_end = now
        attendance.clock_out = now
        _apply_hours(attendance, explicit_hours=False)

    elif data.action == ClockAction.BREAK_START:
        if attendance is None or attendance.clock_in is None:
            raise InvalidState("Must clock in first")
        if attendance.break_start:
            raise InvalidState("Break already started")
        attendance.break_start = now

    elif data.action == ClockAction.BREAK_END:
        if attendance is None or attendance.break_start is None:
            raise InvalidState("Must start break first")
        if attendance.break_end:
            raise InvalidState("Break already ended")
        attendance.break_end = now

    return await _save(db, attendance)
