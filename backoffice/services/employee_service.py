from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from backoffice.config.config import settings
from backoffice.models.models import (
    Attendance,
    Employee,
    EmployeeDeduction,
    EmployeeEarning,
    Payroll,
    payroll_batch_employees,
)
from backoffice.schemas.employee_schema import (
    DeductionCreate,
    DeductionUpdate,
    EarningCreate,
    EarningUpdate,
    EmployeeCreate,
    EmployeeStatus,
    EmployeeUpdate,
    Frequency,
)
from backoffice.schemas.payroll_schema import PayrollStatus
from backoffice.services.payroll_calculator import deduction_basis
from backoffice.services.payroll_service import refresh_batch_totals
from backoffice.utils.exceptions import (
    InvalidState,
    NotFound,
    UpstreamFailure,
    ValidationError,
)
from backoffice.utils.utils import employee_code, page_count, paginate


async def _commit(db: AsyncSession, instance, action: str):
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ValidationError(f"Failed to {action}: {e.orig}") from e
    except SQLAlchemyError as e:
        await db.rollback()
        raise UpstreamFailure(f"Failed to {action}: {e}") from e
    await db.refresh(instance)
    return instance


async def create_employee(db: AsyncSession, data: EmployeeCreate) -> Employee:
    existing = await db.execute(select(Employee.id).where(Employee.email == data.email))
    if existing.first() is not None:
        raise ValidationError("Employee with this email already exists")

    code = data.employee_code
    if not code:
        last_id = await db.scalar(select(func.max(Employee.id)))
        code = employee_code((last_id or 0) + 1)

    employee = Employee(
        **data.model_dump(exclude={"employee_code", "currency"}),
        employee_code=code,
        currency=data.currency or settings.DEFAULT_CURRENCY,
    )
    db.add(employee)
    return await _commit(db, employee, "create employee")


async def get_employee(db: AsyncSession, employee_id: int) -> Employee:
    employee = await db.get(Employee, employee_id)
    if employee is None:
        raise NotFound("Employee not found")
    return employee


async def get_employees(
    db: AsyncSession,
    status: EmployeeStatus | None = None,
    department: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    filters = []
    if status is not None:
        filters.append(Employee.status == status)
    if department:
        filters.append(Employee.department == department)
    if search:
        pattern = f"%{search}%"
        filters.append(
            or_(
                Employee.first_name.ilike(pattern),
                Employee.last_name.ilike(pattern),
                Employee.email.ilike(pattern),
                Employee.employee_code.ilike(pattern),
            )
        )

    offset, limit = paginate(page, limit)
    total = await db.scalar(select(func.count()).select_from(Employee).where(*filters))
    result = await db.execute(
        select(Employee)
        .where(*filters)
        .order_by(Employee.last_name, Employee.first_name, Employee.id)
        .offset(offset)
        .limit(limit)
    )
    return {
        "employees": result.scalars().all(),
        "total": total,
        "page": page,
        "limit": limit,
        "pages": page_count(total, limit),
    }


async def update_employee(
    db: AsyncSession, employee_id: int, data: EmployeeUpdate
) -> Employee:
    employee = await get_employee(db, employee_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(employee, key, value)
    return await _commit(db, employee, "update employee")


async def delete_employee(db: AsyncSession, employee_id: int) -> None:
    """Remove an employee and their records; paid payrolls block the delete."""
    employee = await get_employee(db, employee_id)
    paid = await db.scalar(
        select(func.count())
        .select_from(Payroll)
        .where(Payroll.employee_id == employee.id, Payroll.status == PayrollStatus.PAID)
    )
    if paid:
        raise InvalidState("Cannot delete an employee with paid payroll records")

    batch_ids = (
        await db.execute(
            select(Payroll.batch_id)
            .where(Payroll.employee_id == employee.id, Payroll.batch_id.is_not(None))
            .distinct()
        )
    ).scalars().all()
    try:
        for table in (Payroll, Attendance, EmployeeEarning, EmployeeDeduction):
            await db.execute(delete(table).where(table.employee_id == employee.id))
        await db.execute(
            delete(payroll_batch_employees).where(
                payroll_batch_employees.c.employee_id == employee.id
            )
        )
        for batch_id in batch_ids:
            await refresh_batch_totals(db, batch_id)
        await db.delete(employee)
        await db.commit()
    except StaleDataError as e:
        await db.rollback()
        raise InvalidState("Payroll batch was modified by another request") from e
    except SQLAlchemyError as e:
        await db.rollback()
        raise UpstreamFailure(f"Failed to delete employee: {e}") from e


async def get_earnings(db: AsyncSession, employee_id: int) -> list[EmployeeEarning]:
    await get_employee(db, employee_id)
    result = await db.execute(
        select(EmployeeEarning)
        .where(EmployeeEarning.employee_id == employee_id)
        .order_by(EmployeeEarning.effective_date.desc(), EmployeeEarning.id)
    )
    return result.scalars().all()


async def create_earning(
    db: AsyncSession, employee_id: int, data: EarningCreate
) -> EmployeeEarning:
    await get_employee(db, employee_id)
    earning = EmployeeEarning(employee_id=employee_id, **data.model_dump())
    db.add(earning)
    return await _commit(db, earning, "create earning")


async def _get_earning(
    db: AsyncSession, employee_id: int, earning_id: int
) -> EmployeeEarning:
    earning = await db.get(EmployeeEarning, earning_id)
    if earning is None or earning.employee_id != employee_id:
        raise NotFound("Earning not found")
    return earning


async def update_earning(
    db: AsyncSession, employee_id: int, earning_id: int, data: EarningUpdate
) -> EmployeeEarning:
    earning = await _get_earning(db, employee_id, earning_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(earning, key, value)
    try:
        if earning.amount is None or earning.amount <= 0:
            raise ValidationError("Earning amount must be positive")
        _check_window(earning)
    except ValidationError:
        await db.rollback()
        raise
    return await _commit(db, earning, "update earning")


async def delete_earning(db: AsyncSession, employee_id: int, earning_id: int) -> None:
    earning = await _get_earning(db, employee_id, earning_id)
    await db.delete(earning)
    await db.commit()


def _check_window(row) -> None:
    if row.effective_date and row.end_date and row.end_date < row.effective_date:
        raise ValidationError("end_date must not be before effective_date")


def validate_deduction(row) -> None:
    deduction_basis(row.amount, row.percentage)
    if row.frequency == Frequency.HOURLY:
        raise ValidationError("Deductions cannot be hourly")
    _check_window(row)


async def get_deductions(
    db: AsyncSession, employee_id: int
) -> list[EmployeeDeduction]:
    await get_employee(db, employee_id)
    result = await db.execute(
        select(EmployeeDeduction)
        .where(EmployeeDeduction.employee_id == employee_id)
        .order_by(EmployeeDeduction.effective_date.desc(), EmployeeDeduction.id)
    )
    return result.scalars().all()


async def create_deduction(
    db: AsyncSession, employee_id: int, data: DeductionCreate
) -> EmployeeDeduction:
    validate_deduction(data)
    await get_employee(db, employee_id)
    deduction = EmployeeDeduction(employee_id=employee_id, **data.model_dump())
    db.add(deduction)
    return await _commit(db, deduction, "create deduction")


async def _get_deduction(
    db: AsyncSession, employee_id: int, deduction_id: int
) -> EmployeeDeduction:
    deduction = await db.get(EmployeeDeduction, deduction_id)
    if deduction is None or deduction.employee_id != employee_id:
        raise NotFound("Deduction not found")
    return deduction


async def update_deduction(
    db: AsyncSession, employee_id: int, deduction_id: int, data: DeductionUpdate
) -> EmployeeDeduction:
    deduction = await _get_deduction(db, employee_id, deduction_id)
    changes = data.model_dump(exclude_unset=True)
    # switching basis: setting one side clears the other
    if changes.get("amount") is not None and "percentage" not in changes:
        changes["percentage"] = None
    if changes.get("percentage") is not None and "amount" not in changes:
        changes["amount"] = None
    for key, value in changes.items():
        setattr(deduction, key, value)
    try:
        validate_deduction(deduction)
    except ValidationError:
        await db.rollback()
        raise
    return await _commit(db, deduction, "update deduction")


async def delete_deduction(
    db: AsyncSession, employee_id: int, deduction_id: int
) -> None:
    deduction = await _get_deduction(db, employee_id, deduction_id)
    await db.delete(deduction)
    await db.commit()
