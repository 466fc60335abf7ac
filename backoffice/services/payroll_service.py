from datetime import date, datetime, timezone
from decimal import Decimal
from functools import lru_cache

import logfire
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from backoffice.config.config import settings
from backoffice.models.models import (
    Attendance,
    Employee,
    EmployeeDeduction,
    EmployeeEarning,
    Payroll,
    PayrollBatch,
)
from backoffice.schemas.payroll_schema import (
    PayrollCalculateRequest,
    PayrollStatus,
    PayrollUpdate,
    Payslip,
    PayslipCompany,
    PayslipEmployee,
)
from backoffice.services.payroll_calculator import (
    AttendanceSummary,
    DeductionBreakdown,
    EarningsResolution,
    PayrollPolicy,
    PayrollResult,
    aggregate_attendance,
    calculate_payroll,
    resolve_deductions,
    resolve_earnings,
)
from backoffice.utils.exceptions import (
    InvalidState,
    NotFound,
    UpstreamFailure,
    ValidationError,
)
from backoffice.utils.utils import page_count, paginate

PAYSLIP_STATUSES = (PayrollStatus.CALCULATED, PayrollStatus.APPROVED, PayrollStatus.PAID)


@lru_cache
def get_payroll_policy() -> PayrollPolicy:
    return PayrollPolicy.from_settings(settings)


def validate_period(period_start: date, period_end: date) -> None:
    if period_end <= period_start:
        raise ValidationError("Pay period end must be after pay period start")


def apply_result(payroll: Payroll, result: PayrollResult) -> Payroll:
    for key, value in result.as_record().items():
        setattr(payroll, key, value)
    payroll.processed_at = datetime.now(timezone.utc)
    return payroll


async def refresh_batch_totals(db: AsyncSession, batch_id: int) -> None:
    """Recompute a batch's totals from the payroll rows it still holds."""
    batch = await db.get(PayrollBatch, batch_id)
    if batch is None:
        return
    rows = (
        await db.execute(
            select(Payroll.gross_pay, Payroll.total_deductions, Payroll.net_pay).where(
                Payroll.batch_id == batch_id
            )
        )
    ).all()
    batch.total_employees = len(rows)
    batch.total_gross_pay = sum((row.gross_pay for row in rows), Decimal("0"))
    batch.total_deductions = sum((row.total_deductions for row in rows), Decimal("0"))
    batch.total_net_pay = sum((row.net_pay for row in rows), Decimal("0"))


class AttendanceAggregator:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def aggregate(
        self, employee_id: int, period_start: date, period_end: date
    ) -> AttendanceSummary:
        result = await self.db.execute(
            select(Attendance).where(
                Attendance.employee_id == employee_id,
                Attendance.date >= period_start,
                Attendance.date <= period_end,
            )
        )
        return aggregate_attendance(result.scalars().all())


class EarningsResolver:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(
        self, employee_id: int, period_start: date, period_end: date
    ) -> EarningsResolution:
        result = await self.db.execute(
            select(EmployeeEarning)
            .where(
                EmployeeEarning.employee_id == employee_id,
                EmployeeEarning.is_active.is_(True),
                or_(
                    EmployeeEarning.effective_date.is_(None),
                    EmployeeEarning.effective_date <= period_end,
                ),
                or_(
                    EmployeeEarning.end_date.is_(None),
                    EmployeeEarning.end_date >= period_start,
                ),
            )
            .order_by(EmployeeEarning.id)
        )
        return resolve_earnings(result.scalars().all(), period_start, period_end)


class DeductionResolver:
    def __init__(self, db: AsyncSession, policy: PayrollPolicy):
        self.db = db
        self.policy = policy

    async def resolve(
        self, employee_id: int, base_salary, period_start: date, period_end: date
    ) -> DeductionBreakdown:
        result = await self.db.execute(
            select(EmployeeDeduction)
            .where(
                EmployeeDeduction.employee_id == employee_id,
                EmployeeDeduction.is_active.is_(True),
                or_(
                    EmployeeDeduction.effective_date.is_(None),
                    EmployeeDeduction.effective_date <= period_end,
                ),
                or_(
                    EmployeeDeduction.end_date.is_(None),
                    EmployeeDeduction.end_date >= period_start,
                ),
            )
            .order_by(EmployeeDeduction.id)
        )
        return resolve_deductions(
            result.scalars().all(), base_salary, period_start, period_end, self.policy
        )


class PayrollCalculator:
    """Loads one employee's period data and runs the calculation engine."""

    def __init__(self, db: AsyncSession, policy: PayrollPolicy | None = None):
        self.policy = policy or get_payroll_policy()
        self.attendance = AttendanceAggregator(db)
        self.earnings = EarningsResolver(db)
        self.deductions = DeductionResolver(db, self.policy)

    async def calculate(
        self, employee: Employee, period_start: date, period_end: date
    ) -> PayrollResult:
        if employee.base_salary is None:
            raise ValidationError(f"Employee {employee.id} has no base salary")
        attendance = await self.attendance.aggregate(employee.id, period_start, period_end)
        earnings = await self.earnings.resolve(employee.id, period_start, period_end)
        deductions = await self.deductions.resolve(
            employee.id, employee.base_salary, period_start, period_end
        )
        return calculate_payroll(
            employee.base_salary, attendance, earnings, deductions, self.policy
        )


class PayrollService:
    def __init__(self, db: AsyncSession, policy: PayrollPolicy | None = None):
        self.db = db
        self.policy = policy or get_payroll_policy()

    async def calculate_employee_payroll(
        self, data: PayrollCalculateRequest
    ) -> tuple[Payroll, PayrollResult]:
        """Calculate one employee outside any batch and upsert the period's row."""
        validate_period(data.pay_period_start, data.pay_period_end)
        employee = await self.db.get(Employee, data.employee_id)
        if employee is None:
            raise NotFound("Employee not found")

        result = await PayrollCalculator(self.db, self.policy).calculate(
            employee, data.pay_period_start, data.pay_period_end
        )

        try:
            existing = await self.db.execute(
                select(Payroll).where(
                    Payroll.employee_id == employee.id,
                    Payroll.batch_id.is_(None),
                    Payroll.pay_period_start == data.pay_period_start,
                    Payroll.pay_period_end == data.pay_period_end,
                )
            )
            payroll = existing.scalar_one_or_none()
            if payroll is None:
                payroll = Payroll(
                    employee_id=employee.id,
                    pay_period_start=data.pay_period_start,
                    pay_period_end=data.pay_period_end,
                )
                self.db.add(payroll)
            apply_result(payroll, result)
            payroll.pay_date = data.pay_date
            payroll.status = PayrollStatus.CALCULATED
            await self.db.commit()
            await self.db.refresh(payroll)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UpstreamFailure(f"Failed to save payroll: {e}") from e

        logfire.info(
            "payroll calculated for employee {employee_id}",
            employee_id=employee.id,
            gross_pay=str(result.gross_pay),
            net_pay=str(result.net_pay),
        )
        return payroll, result

    async def get_payroll(self, payroll_id: int) -> Payroll:
        payroll = await self.db.get(Payroll, payroll_id)
        if payroll is None:
            raise NotFound("Payroll record not found")
        return payroll

    async def update_payroll(self, payroll_id: int, data: PayrollUpdate) -> Payroll:
        """Edit the pay date, status or notes; calculated figures stay as computed."""
        payroll = await self.get_payroll(payroll_id)
        changes = data.model_dump(exclude_unset=True)
        if "pay_date" in changes:
            payroll.pay_date = changes["pay_date"]
        if "notes" in changes:
            payroll.notes = changes["notes"]
        if changes.get("status") is not None:
            payroll.status = changes["status"]
            if payroll.status in (PayrollStatus.CALCULATED, PayrollStatus.APPROVED):
                payroll.processed_at = datetime.now(timezone.utc)

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UpstreamFailure(f"Failed to update payroll: {e}") from e
        await self.db.refresh(payroll)
        return payroll

    async def delete_payroll(self, payroll_id: int) -> None:
        payroll = await self.get_payroll(payroll_id)
        if payroll.status == PayrollStatus.PAID:
            raise InvalidState("Cannot delete paid payroll records")

        batch_id = payroll.batch_id
        try:
            await self.db.delete(payroll)
            await self.db.flush()
            if batch_id is not None:
                await refresh_batch_totals(self.db, batch_id)
            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            raise InvalidState("Payroll batch was modified by another request") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UpstreamFailure(f"Failed to delete payroll: {e}") from e

        logfire.info(
            "payroll {payroll_id} deleted", payroll_id=payroll_id, batch_id=batch_id
        )

    async def get_payrolls(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        employee_id: int | None = None,
        status: PayrollStatus | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> dict:
        filters = []
        if employee_id is not None:
            filters.append(Payroll.employee_id == employee_id)
        if status is not None:
            filters.append(Payroll.status == status)
        if start_date is not None:
            filters.append(Payroll.pay_period_start >= start_date)
        if end_date is not None:
            filters.append(Payroll.pay_period_start <= end_date)

        offset, limit = paginate(page, limit)
        total = await self.db.scalar(
            select(func.count()).select_from(Payroll).where(*filters)
        )
        result = await self.db.execute(
            select(Payroll)
            .where(*filters)
            .order_by(Payroll.pay_period_start.desc(), Payroll.id)
            .offset(offset)
            .limit(limit)
        )
        return {
            "payrolls": result.scalars().all(),
            "total": total,
            "page": page,
            "limit": limit,
            "pages": page_count(total, limit),
        }

    async def build_payslips(
        self, batch_id: int | None = None, payroll_id: int | None = None
    ) -> list[Payslip]:
        if batch_id is None and payroll_id is None:
            raise ValidationError("Either batch_id or payroll_id is required")

        stmt = select(Payroll).options(selectinload(Payroll.employee))
        if batch_id is not None:
            if await self.db.get(PayrollBatch, batch_id) is None:
                raise NotFound("Payroll batch not found")
            stmt = stmt.where(
                Payroll.batch_id == batch_id, Payroll.status.in_(PAYSLIP_STATUSES)
            ).order_by(Payroll.employee_id)
        else:
            stmt = stmt.where(Payroll.id == payroll_id)

        payrolls = (await self.db.execute(stmt)).scalars().all()
        if payroll_id is not None and not payrolls:
            raise NotFound("Payroll record not found")

        company = PayslipCompany(
            name=settings.COMPANY_NAME,
            address=settings.COMPANY_ADDRESS,
            phone=settings.COMPANY_PHONE,
            email=settings.COMPANY_EMAIL,
        )
        return [payslip_from_payroll(payroll, company) for payroll in payrolls]


def payslip_from_payroll(payroll: Payroll, company: PayslipCompany) -> Payslip:
    employee = payroll.employee
    return Payslip(
        payroll_id=payroll.id,
        employee=PayslipEmployee(
            name=employee.full_name,
            employee_code=employee.employee_code,
            department=employee.department,
            position=employee.position,
            email=employee.email,
        ),
        company=company,
        pay_period_start=payroll.pay_period_start,
        pay_period_end=payroll.pay_period_end,
        pay_date=payroll.pay_date,
        currency=employee.currency,
        status=payroll.status,
        total_work_days=payroll.total_work_days,
        regular_hours=payroll.regular_hours,
        overtime_hours=payroll.overtime_hours,
        hourly_rate=payroll.hourly_rate,
        base_salary=payroll.base_salary,
        regular_pay=payroll.regular_pay,
        overtime_pay=payroll.overtime_pay,
        earnings=payroll.earnings_data or [],
        deductions=payroll.deductions_data or [],
        gross_pay=payroll.gross_pay,
        total_deductions=payroll.total_deductions,
        taxable_income=payroll.taxable_income,
        withholding_tax=payroll.withholding_tax,
        net_pay=payroll.net_pay,
    )
