from datetime import datetime, timezone
from decimal import Decimal

import logfire
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from backoffice.models.models import (
    Employee,
    Payroll,
    PayrollBatch,
    payroll_batch_employees,
)
from backoffice.schemas.employee_schema import EmployeeStatus
from backoffice.schemas.payroll_schema import (
    EmployeeResult,
    PayrollBatchCreate,
    PayrollBatchUpdate,
    PayrollStatus,
    SelectionMode,
)
from backoffice.services.payroll_calculator import PayrollPolicy
from backoffice.services.payroll_service import (
    PayrollCalculator,
    apply_result,
    validate_period,
)
from backoffice.utils.exceptions import (
    BackofficeError,
    InvalidState,
    NotFound,
    UpstreamFailure,
    ValidationError,
)
from backoffice.utils.utils import page_count, paginate

# Batches in these states are never recalculated
LOCKED_STATUSES = (PayrollStatus.APPROVED, PayrollStatus.PAID, PayrollStatus.CANCELLED)


def selection_mode(data: PayrollBatchCreate) -> SelectionMode:
    chosen = [
        mode
        for mode, present in (
            (SelectionMode.EMPLOYEES, bool(data.employee_ids)),
            (SelectionMode.DEPARTMENTS, bool(data.departments)),
            (SelectionMode.ALL_ACTIVE, bool(data.select_all)),
        )
        if present
    ]
    if not chosen:
        raise ValidationError(
            "Select employees by employee_ids, departments or select_all"
        )
    if len(chosen) > 1:
        raise ValidationError(
            "employee_ids, departments and select_all are mutually exclusive"
        )
    return chosen[0]


async def resolve_selection(
    db: AsyncSession, mode: SelectionMode, data: PayrollBatchCreate
) -> list[Employee]:
    active = Employee.status == EmployeeStatus.ACTIVE
    if mode == SelectionMode.EMPLOYEES:
        ids = set(data.employee_ids)
        result = await db.execute(select(Employee).where(Employee.id.in_(ids)))
        employees = result.scalars().all()
        missing = ids - {employee.id for employee in employees}
        if missing:
            raise NotFound(f"Employees not found: {sorted(missing)}")
        return sorted(
            (e for e in employees if e.status == EmployeeStatus.ACTIVE),
            key=lambda e: e.id,
        )
    if mode == SelectionMode.DEPARTMENTS:
        result = await db.execute(
            select(Employee)
            .where(active, Employee.department.in_(data.departments))
            .order_by(Employee.id)
        )
        return list(result.scalars().all())
    result = await db.execute(select(Employee).where(active).order_by(Employee.id))
    return list(result.scalars().all())


async def batch_roster(db: AsyncSession, batch: PayrollBatch) -> list[Employee]:
    """Employees a batch pays; ALL_ACTIVE batches pick up roster changes here."""
    if batch.selection_mode == SelectionMode.ALL_ACTIVE:
        stmt = select(Employee).where(Employee.status == EmployeeStatus.ACTIVE)
    else:
        stmt = (
            select(Employee)
            .join(
                payroll_batch_employees,
                payroll_batch_employees.c.employee_id == Employee.id,
            )
            .where(payroll_batch_employees.c.batch_id == batch.id)
        )
    result = await db.execute(stmt.order_by(Employee.id))
    return list(result.scalars().all())


async def get_batch(db: AsyncSession, batch_id: int) -> PayrollBatch:
    batch = await db.get(PayrollBatch, batch_id)
    if batch is None:
        raise NotFound("Payroll batch not found")
    return batch


async def get_batches(db: AsyncSession, page: int = 1, limit: int = 20) -> dict:
    offset, limit = paginate(page, limit)
    total = await db.scalar(select(func.count()).select_from(PayrollBatch))
    result = await db.execute(
        select(PayrollBatch)
        .order_by(PayrollBatch.created_at.desc(), PayrollBatch.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return {
        "batches": result.scalars().all(),
        "total": total,
        "page": page,
        "limit": limit,
        "pages": page_count(total, limit),
    }


async def create_batch(db: AsyncSession, data: PayrollBatchCreate) -> PayrollBatch:
    validate_period(data.pay_period_start, data.pay_period_end)
    mode = selection_mode(data)
    employees = await resolve_selection(db, mode, data)
    if not employees:
        raise InvalidState("No employees found matching criteria")

    batch = PayrollBatch(
        batch_name=data.batch_name,
        pay_period_start=data.pay_period_start,
        pay_period_end=data.pay_period_end,
        pay_date=data.pay_date,
        status=PayrollStatus.DRAFT,
        selection_mode=mode,
        departments=data.departments if mode == SelectionMode.DEPARTMENTS else None,
    )
    # ALL_ACTIVE batches resolve their roster when processed
    if mode != SelectionMode.ALL_ACTIVE:
        batch.employees = employees

    try:
        db.add(batch)
        await db.commit()
        await db.refresh(batch)
    except SQLAlchemyError as e:
        await db.rollback()
        raise UpstreamFailure(f"Failed to create payroll batch: {e}") from e

    logfire.info(
        "payroll batch {batch_id} created",
        batch_id=batch.id,
        selection_mode=mode.value,
        employees=len(employees),
    )
    return batch


async def _lock_batch(db: AsyncSession, batch_id: int) -> PayrollBatch:
    result = await db.execute(
        select(PayrollBatch)
        .where(PayrollBatch.id == batch_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    batch = result.scalar_one_or_none()
    if batch is None:
        raise NotFound("Payroll batch not found")
    return batch


async def process_batch(
    db: AsyncSession, batch_id: int, policy: PayrollPolicy | None = None
) -> tuple[PayrollBatch, list[EmployeeResult]]:
    """
    Recalculate every employee of a batch and roll up its totals.

    Employees whose own data cannot be calculated are reported as failed and
    left out of the totals. Everything else is written in one transaction:
    a database error leaves the batch exactly as it was.
    """
    results: list[EmployeeResult] = []
    try:
        batch = await _lock_batch(db, batch_id)
        if batch.status in LOCKED_STATUSES:
            raise InvalidState(
                f"Cannot process a payroll batch with status {batch.status.value}"
            )
        employees = await batch_roster(db, batch)
        if not employees:
            raise InvalidState("Payroll batch has no employees to process")

        batch.status = PayrollStatus.PROCESSING
        await db.flush()

        calculator = PayrollCalculator(db, policy)
        calculated = []
        for employee in employees:
            try:
                result = await calculator.calculate(
                    employee, batch.pay_period_start, batch.pay_period_end
                )
            except ValidationError as e:
                logfire.warn(
                    "payroll failed for employee {employee_id}",
                    employee_id=employee.id,
                    batch_id=batch.id,
                    reason=e.message,
                )
                results.append(
                    EmployeeResult(employee_id=employee.id, status="ERROR", reason=e.message)
                )
                continue
            calculated.append((employee, result))

        existing = await db.execute(select(Payroll).where(Payroll.batch_id == batch.id))
        rows = {payroll.employee_id: payroll for payroll in existing.scalars().all()}

        payrolls = []
        for employee, result in calculated:
            payroll = rows.pop(employee.id, None)
            if payroll is None:
                payroll = Payroll(employee_id=employee.id, batch_id=batch.id)
                db.add(payroll)
            apply_result(payroll, result)
            payroll.pay_period_start = batch.pay_period_start
            payroll.pay_period_end = batch.pay_period_end
            payroll.pay_date = batch.pay_date
            payroll.status = PayrollStatus.CALCULATED
            payrolls.append(payroll)

        # rows of employees that left the roster or failed this run
        for stale in rows.values():
            await db.delete(stale)

        batch.total_employees = len(payrolls)
        batch.total_gross_pay = sum((p.gross_pay for p in payrolls), Decimal("0"))
        batch.total_deductions = sum((p.total_deductions for p in payrolls), Decimal("0"))
        batch.total_net_pay = sum((p.net_pay for p in payrolls), Decimal("0"))
        batch.status = PayrollStatus.CALCULATED
        batch.processed_at = datetime.now(timezone.utc)

        await db.commit()
    except StaleDataError as e:
        await db.rollback()
        raise InvalidState("Payroll batch was modified by another request") from e
    except SQLAlchemyError as e:
        await db.rollback()
        raise UpstreamFailure(f"Failed to process payroll batch: {e}") from e
    except BackofficeError:
        await db.rollback()
        raise

    await db.refresh(batch)
    for payroll in payrolls:
        results.append(
            EmployeeResult(
                employee_id=payroll.employee_id,
                status="SUCCESS",
                payroll_id=payroll.id,
                gross_pay=payroll.gross_pay,
                net_pay=payroll.net_pay,
            )
        )
    results.sort(key=lambda r: r.employee_id)

    logfire.info(
        "payroll batch {batch_id} processed",
        batch_id=batch.id,
        successful=len(payrolls),
        failed=len(employees) - len(payrolls),
        total_gross_pay=str(batch.total_gross_pay),
        total_net_pay=str(batch.total_net_pay),
    )
    return batch, results


async def _set_status(
    db: AsyncSession, batch: PayrollBatch, status: PayrollStatus
) -> None:
    now = datetime.now(timezone.utc)
    batch.status = status
    if status == PayrollStatus.APPROVED:
        batch.approved_at = now
    elif status == PayrollStatus.PAID:
        batch.paid_at = now
    await db.execute(
        update(Payroll).where(Payroll.batch_id == batch.id).values(status=status)
    )


async def _commit_batch(db: AsyncSession, batch: PayrollBatch) -> PayrollBatch:
    try:
        await db.commit()
    except StaleDataError as e:
        await db.rollback()
        raise InvalidState("Payroll batch was modified by another request") from e
    except SQLAlchemyError as e:
        await db.rollback()
        raise UpstreamFailure(f"Failed to update payroll batch: {e}") from e
    await db.refresh(batch)
    return batch


async def update_batch(
    db: AsyncSession, batch_id: int, data: PayrollBatchUpdate
) -> PayrollBatch:
    """Administrative edit: only the name, pay date and status can change."""
    batch = await get_batch(db, batch_id)
    changes = data.model_dump(exclude_unset=True)
    if "batch_name" in changes:
        batch.batch_name = changes["batch_name"]
    if "pay_date" in changes:
        batch.pay_date = changes["pay_date"]
        await db.execute(
            update(Payroll)
            .where(Payroll.batch_id == batch.id)
            .values(pay_date=changes["pay_date"])
        )
    if changes.get("status") is not None and changes["status"] != batch.status:
        previous = batch.status
        await _set_status(db, batch, changes["status"])
        logfire.info(
            "payroll batch {batch_id} status changed",
            batch_id=batch.id,
            previous=previous.value,
            status=batch.status.value,
        )
    return await _commit_batch(db, batch)


async def transition_batch(
    db: AsyncSession,
    batch_id: int,
    allowed_from: tuple[PayrollStatus, ...],
    status: PayrollStatus,
) -> PayrollBatch:
    batch = await get_batch(db, batch_id)
    if batch.status not in allowed_from:
        raise InvalidState(
            f"Cannot move payroll batch from {batch.status.value} to {status.value}"
        )
    previous = batch.status
    await _set_status(db, batch, status)
    batch = await _commit_batch(db, batch)
    logfire.info(
        "payroll batch {batch_id} status changed",
        batch_id=batch.id,
        previous=previous.value,
        status=status.value,
    )
    return batch


async def approve_batch(db: AsyncSession, batch_id: int) -> PayrollBatch:
    return await transition_batch(
        db, batch_id, (PayrollStatus.CALCULATED,), PayrollStatus.APPROVED
    )


async def pay_batch(db: AsyncSession, batch_id: int) -> PayrollBatch:
    return await transition_batch(
        db, batch_id, (PayrollStatus.APPROVED,), PayrollStatus.PAID
    )


async def cancel_batch(db: AsyncSession, batch_id: int) -> PayrollBatch:
    return await transition_batch(
        db,
        batch_id,
        (
            PayrollStatus.DRAFT,
            PayrollStatus.PROCESSING,
            PayrollStatus.CALCULATED,
            PayrollStatus.APPROVED,
        ),
        PayrollStatus.CANCELLED,
    )


async def delete_batch(db: AsyncSession, batch_id: int) -> None:
    batch = await get_batch(db, batch_id)
    if batch.status == PayrollStatus.PAID:
        raise InvalidState("Cannot delete paid payroll batches")

    try:
        # payroll rows first so none are left pointing at a missing batch
        deleted = await db.execute(delete(Payroll).where(Payroll.batch_id == batch.id))
        await db.delete(batch)
        await db.commit()
    except StaleDataError as e:
        await db.rollback()
        raise InvalidState("Payroll batch was modified by another request") from e
    except SQLAlchemyError as e:
        await db.rollback()
        raise UpstreamFailure(f"Failed to delete payroll batch: {e}") from e

    logfire.info(
        "payroll batch {batch_id} deleted",
        batch_id=batch_id,
        payrolls_deleted=deleted.rowcount,
    )
