"""
Payroll calculation engine.

Pure functions that turn an employee's base salary, attendance rows,
earnings and deductions into one period's payroll figures. Nothing here
touches the database, the clock or the settings store: the policy
(contribution rates and caps, overtime multiplier, tax brackets) is passed
in as a ``PayrollPolicy`` value.

All money is ``Decimal`` and every intermediate value keeps full
precision. Rounding to the cent (ROUND_HALF_UP) happens once, in
``PayrollResult.as_record``, when the figures are about to be stored; the
stored totals are sums of the rounded parts.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable

from backoffice.schemas.attendance_schema import WORKED_STATUSES
from backoffice.utils.exceptions import ValidationError
from backoffice.utils.utils import quantize_money, to_decimal

ZERO = Decimal("0")

GOVERNMENT = "government"
CUSTOM = "custom"
TAX = "tax"


@dataclass(frozen=True)
class TaxBracket:
    lower: Decimal
    upper: Decimal | None
    rate: Decimal


@dataclass(frozen=True)
class ContributionRule:
    name: str
    rate: Decimal
    cap: Decimal

    def amount(self, base_salary: Decimal) -> Decimal:
        return min(base_salary, self.cap) * self.rate


@dataclass(frozen=True)
class PayrollPolicy:
    working_days_per_month: int = 22
    working_hours_per_day: int = 8
    overtime_multiplier: Decimal = Decimal("1.25")
    contributions: tuple[ContributionRule, ...] = (
        ContributionRule("SSS Contribution", Decimal("0.045"), Decimal("25000")),
        ContributionRule("PhilHealth Contribution", Decimal("0.0275"), Decimal("100000")),
        ContributionRule("Pag-IBIG Contribution", Decimal("0.02"), Decimal("5000")),
    )
    tax_brackets: tuple[TaxBracket, ...] = (
        TaxBracket(Decimal("0"), Decimal("250000"), Decimal("0")),
        TaxBracket(Decimal("250000"), Decimal("400000"), Decimal("0.20")),
        TaxBracket(Decimal("400000"), Decimal("800000"), Decimal("0.25")),
        TaxBracket(Decimal("800000"), Decimal("2000000"), Decimal("0.30")),
        TaxBracket(Decimal("2000000"), Decimal("8000000"), Decimal("0.32")),
        TaxBracket(Decimal("8000000"), None, Decimal("0.35")),
    )
    annualization_periods: int = 12
    custom_deductions_tax_deductible: bool = False

    @property
    def standard_monthly_hours(self) -> Decimal:
        return Decimal(self.working_days_per_month * self.working_hours_per_day)

    @classmethod
    def from_settings(cls, settings) -> "PayrollPolicy":
        brackets = tuple(
            TaxBracket(
                lower=to_decimal(bracket["min"]),
                upper=None if bracket.get("max") is None else to_decimal(bracket["max"]),
                rate=to_decimal(bracket["rate"]),
            )
            for bracket in settings.TAX_BRACKETS
        )
        return cls(
            working_days_per_month=settings.WORKING_DAYS_PER_MONTH,
            working_hours_per_day=settings.WORKING_HOURS_PER_DAY,
            overtime_multiplier=to_decimal(settings.OVERTIME_MULTIPLIER),
            contributions=(
                ContributionRule("SSS Contribution", settings.SSS_RATE, settings.SSS_CAP),
                ContributionRule(
                    "PhilHealth Contribution",
                    settings.PHILHEALTH_RATE,
                    settings.PHILHEALTH_CAP,
                ),
                ContributionRule(
                    "Pag-IBIG Contribution", settings.PAGIBIG_RATE, settings.PAGIBIG_CAP
                ),
            ),
            tax_brackets=tuple(sorted(brackets, key=lambda b: b.lower)),
            annualization_periods=settings.TAX_ANNUALIZATION_PERIODS,
            custom_deductions_tax_deductible=settings.CUSTOM_DEDUCTIONS_TAX_DEDUCTIBLE,
        )


@dataclass(frozen=True)
class FixedAmount:
    value: Decimal

    def resolve(self, base_salary: Decimal) -> Decimal:
        return self.value


@dataclass(frozen=True)
class Percentage:
    value: Decimal

    def resolve(self, base_salary: Decimal) -> Decimal:
        return base_salary * self.value / 100


DeductionBasis = FixedAmount | Percentage


def deduction_basis(amount, percentage) -> DeductionBasis:
    """Turn the stored amount/percentage pair into exactly one basis."""
    if amount is not None and percentage is not None:
        raise ValidationError("A deduction cannot have both an amount and a percentage")
    if amount is None and percentage is None:
        raise ValidationError("A deduction needs either an amount or a percentage")
    if amount is not None:
        return FixedAmount(to_decimal(amount))
    return Percentage(to_decimal(percentage))


@dataclass(frozen=True)
class LineItem:
    type: str
    amount: Decimal
    frequency: str
    category: str | None = None

    def as_dict(self) -> dict:
        data = {
            "type": self.type,
            "amount": str(quantize_money(self.amount)),
            "frequency": self.frequency,
        }
        if self.category:
            data["category"] = self.category
        return data


@dataclass(frozen=True)
class AttendanceSummary:
    work_days: int = 0
    total_hours: Decimal = ZERO
    regular_hours: Decimal = ZERO
    overtime_hours: Decimal = ZERO


@dataclass(frozen=True)
class EarningsResolution:
    items: tuple[LineItem, ...] = ()

    @property
    def total(self) -> Decimal:
        return sum((item.amount for item in self.items), ZERO)


@dataclass(frozen=True)
class DeductionBreakdown:
    government: tuple[LineItem, ...] = ()
    custom: tuple[LineItem, ...] = ()

    @property
    def government_total(self) -> Decimal:
        return sum((item.amount for item in self.government), ZERO)

    @property
    def custom_total(self) -> Decimal:
        return sum((item.amount for item in self.custom), ZERO)

    @property
    def total(self) -> Decimal:
        return self.government_total + self.custom_total


@dataclass(frozen=True)
class PayrollResult:
    base_salary: Decimal
    attendance: AttendanceSummary
    hourly_rate: Decimal
    regular_pay: Decimal
    overtime_pay: Decimal
    total_earnings: Decimal
    gross_pay: Decimal
    government_contributions: Decimal
    custom_deductions: Decimal
    taxable_income: Decimal
    withholding_tax: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    earnings: tuple[LineItem, ...] = field(default_factory=tuple)
    deductions: tuple[LineItem, ...] = field(default_factory=tuple)

    def as_record(self) -> dict:
        """
        Column values for a ``Payroll`` row, rounded for storage.

        Components and line items are rounded individually; totals, gross
        and net are then summed from the rounded parts so the stored row
        adds up to the cent.
        """

        def rounded_total(category: str) -> Decimal:
            return sum(
                (
                    quantize_money(item.amount)
                    for item in self.deductions
                    if item.category == category
                ),
                ZERO,
            )

        base_salary = quantize_money(self.base_salary)
        regular_pay = quantize_money(self.regular_pay)
        overtime_pay = quantize_money(self.overtime_pay)
        total_earnings = sum(
            (quantize_money(item.amount) for item in self.earnings), ZERO
        )
        gross_pay = base_salary + regular_pay + overtime_pay + total_earnings

        government = rounded_total(GOVERNMENT)
        custom = rounded_total(CUSTOM)
        tax = rounded_total(TAX)
        total_deductions = government + custom + tax

        return {
            "base_salary": base_salary,
            "total_work_days": self.attendance.work_days,
            "regular_hours": quantize_money(self.attendance.regular_hours),
            "overtime_hours": quantize_money(self.attendance.overtime_hours),
            "hourly_rate": quantize_money(self.hourly_rate),
            "regular_pay": regular_pay,
            "overtime_pay": overtime_pay,
            "total_earnings": total_earnings,
            "government_contributions": government,
            "custom_deductions": custom,
            "total_deductions": total_deductions,
            "gross_pay": gross_pay,
            "taxable_income": quantize_money(self.taxable_income),
            "withholding_tax": tax,
            "net_pay": gross_pay - total_deductions,
            "earnings_data": [item.as_dict() for item in self.earnings],
            "deductions_data": [item.as_dict() for item in self.deductions],
        }


def in_pay_window(row, period_start: date, period_end: date) -> bool:
    if not row.is_active:
        return False
    if row.effective_date is not None and row.effective_date > period_end:
        return False
    if row.end_date is not None and row.end_date < period_start:
        return False
    return True


def _frequency(row) -> str:
    frequency = getattr(row, "frequency", None)
    return getattr(frequency, "value", frequency) or "MONTHLY"


def aggregate_attendance(records: Iterable) -> AttendanceSummary:
    work_days = 0
    total_hours = regular_hours = overtime_hours = ZERO
    for record in records:
        if record.status in WORKED_STATUSES:
            work_days += 1
        total_hours += to_decimal(record.total_hours)
        regular_hours += to_decimal(record.regular_hours)
        overtime_hours += to_decimal(record.overtime_hours)
    return AttendanceSummary(work_days, total_hours, regular_hours, overtime_hours)


def resolve_earnings(
    earnings: Iterable, period_start: date, period_end: date
) -> EarningsResolution:
    # frequency is display metadata; every active earning counts once per period
    items = tuple(
        LineItem(row.type, to_decimal(row.amount), _frequency(row))
        for row in earnings
        if in_pay_window(row, period_start, period_end)
    )
    return EarningsResolution(items)


def government_contributions(
    base_salary: Decimal, policy: PayrollPolicy
) -> tuple[LineItem, ...]:
    return tuple(
        LineItem(rule.name, rule.amount(base_salary), "MONTHLY", GOVERNMENT)
        for rule in policy.contributions
    )


def resolve_deductions(
    deductions: Iterable,
    base_salary: Decimal,
    period_start: date,
    period_end: date,
    policy: PayrollPolicy,
) -> DeductionBreakdown:
    base_salary = to_decimal(base_salary)
    custom = []
    for row in deductions:
        if not in_pay_window(row, period_start, period_end):
            continue
        basis = deduction_basis(row.amount, row.percentage)
        custom.append(
            LineItem(
                row.type,
                basis.resolve(base_salary),
                _frequency(row),
                CUSTOM,
            )
        )
    return DeductionBreakdown(
        government=government_contributions(base_salary, policy), custom=tuple(custom)
    )


def progressive_tax(income: Decimal, brackets: Iterable[TaxBracket]) -> Decimal:
    tax = ZERO
    for bracket in brackets:
        if income <= bracket.lower:
            break
        top = income if bracket.upper is None else min(income, bracket.upper)
        tax += (top - bracket.lower) * bracket.rate
    return tax


def withholding_tax(taxable_income: Decimal, policy: PayrollPolicy) -> Decimal:
    periods = Decimal(policy.annualization_periods)
    annual_tax = progressive_tax(taxable_income * periods, policy.tax_brackets)
    return annual_tax / periods


def calculate_payroll(
    base_salary,
    attendance: AttendanceSummary,
    earnings: EarningsResolution,
    deductions: DeductionBreakdown,
    policy: PayrollPolicy,
) -> PayrollResult:
    if base_salary is None or to_decimal(base_salary) < 0:
        raise ValidationError("Employee has no valid base salary")
    base_salary = to_decimal(base_salary)

    hourly_rate = base_salary / policy.standard_monthly_hours
    regular_pay = attendance.regular_hours * hourly_rate
    overtime_pay = attendance.overtime_hours * hourly_rate * policy.overtime_multiplier
    total_earnings = earnings.total

    gross_pay = base_salary + regular_pay + overtime_pay + total_earnings

    non_taxable = deductions.government_total
    if policy.custom_deductions_tax_deductible:
        non_taxable += deductions.custom_total
    taxable_income = max(gross_pay - non_taxable, ZERO)
    tax = withholding_tax(taxable_income, policy)

    total_deductions = deductions.total + tax
    net_pay = gross_pay - total_deductions

    return PayrollResult(
        base_salary=base_salary,
        attendance=attendance,
        hourly_rate=hourly_rate,
        regular_pay=regular_pay,
        overtime_pay=overtime_pay,
        total_earnings=total_earnings,
        gross_pay=gross_pay,
        government_contributions=deductions.government_total,
        custom_deductions=deductions.custom_total,
        taxable_income=taxable_income,
        withholding_tax=tax,
        total_deductions=total_deductions,
        net_pay=net_pay,
        earnings=earnings.items,
        deductions=deductions.government
        + deductions.custom
        + (LineItem("Withholding Tax", tax, "MONTHLY", TAX),),
    )


def calculate_from_records(
    base_salary,
    attendance_records: Iterable,
    earnings: Iterable,
    deductions: Iterable,
    period_start: date,
    period_end: date,
    policy: PayrollPolicy,
) -> PayrollResult:
    """Run the three resolvers over raw rows and calculate one period."""
    if base_salary is None:
        raise ValidationError("Employee has no valid base salary")
    return calculate_payroll(
        base_salary,
        aggregate_attendance(attendance_records),
        resolve_earnings(earnings, period_start, period_end),
        resolve_deductions(deductions, base_salary, period_start, period_end, policy),
        policy,
    )
