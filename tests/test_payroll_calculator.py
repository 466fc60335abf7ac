from datetime import date
from decimal import Decimal

import pytest

from backoffice.config.config import Settings
from backoffice.models.models import Attendance, EmployeeDeduction, EmployeeEarning
from backoffice.schemas.attendance_schema import AttendanceStatus
from backoffice.schemas.employee_schema import Frequency
from backoffice.services.payroll_calculator import (
    AttendanceSummary,
    DeductionBreakdown,
    EarningsResolution,
    FixedAmount,
    PayrollPolicy,
    Percentage,
    aggregate_attendance,
    calculate_from_records,
    calculate_payroll,
    deduction_basis,
    government_contributions,
    progressive_tax,
    resolve_deductions,
    resolve_earnings,
    withholding_tax,
)
from backoffice.utils.exceptions import ValidationError
from backoffice.utils.utils import quantize_money

START = date(2024, 1, 1)
END = date(2024, 1, 31)
POLICY = PayrollPolicy()


def earning(type_, amount, is_active=True, effective_date=None, end_date=None):
    return EmployeeEarning(
        type=type_,
        amount=Decimal(amount),
        frequency=Frequency.MONTHLY,
        is_active=is_active,
        effective_date=effective_date,
        end_date=end_date,
    )


def deduction(type_, amount=None, percentage=None, is_active=True, end_date=None):
    return EmployeeDeduction(
        type=type_,
        amount=None if amount is None else Decimal(amount),
        percentage=None if percentage is None else Decimal(percentage),
        frequency=Frequency.MONTHLY,
        is_active=is_active,
        effective_date=None,
        end_date=end_date,
    )


def attendance(status, regular=None, overtime=None):
    return Attendance(
        status=status,
        regular_hours=None if regular is None else Decimal(regular),
        overtime_hours=None if overtime is None else Decimal(overtime),
    )


def test_base_salary_only():
    result = calculate_from_records(Decimal("25000"), [], [], [], START, END, POLICY)
    record = result.as_record()

    assert record["gross_pay"] == Decimal("25000.00")
    assert record["government_contributions"] == Decimal("1912.50")
    assert record["taxable_income"] == Decimal("23087.50")
    assert record["withholding_tax"] == Decimal("450.83")
    assert record["total_deductions"] == Decimal("2363.33")
    assert record["net_pay"] == Decimal("22636.67")

    amounts = {item["type"]: item["amount"] for item in record["deductions_data"]}
    assert amounts == {
        "SSS Contribution": "1125.00",
        "PhilHealth Contribution": "687.50",
        "Pag-IBIG Contribution": "100.00",
        "Withholding Tax": "450.83",
    }


def test_contributions_are_capped():
    items = government_contributions(Decimal("200000"), POLICY)

    assert [item.amount for item in items] == [
        Decimal("1125.00"),
        Decimal("2750.00"),
        Decimal("100.00"),
    ]
    assert all(item.category == "government" for item in items)


def test_high_earner_crosses_several_brackets():
    result = calculate_from_records(Decimal("200000"), [], [], [], START, END, POLICY)

    assert result.government_contributions == Decimal("3975.00")
    assert result.taxable_income == Decimal("196025.00")
    assert result.withholding_tax == Decimal("50228.00")
    assert result.net_pay == Decimal("145797.00")


def test_attendance_earnings_and_custom_deductions():
    records = [
        attendance(AttendanceStatus.PRESENT, "8", "2"),
        attendance(AttendanceStatus.LATE, "8", "0"),
        attendance(AttendanceStatus.ABSENT),
        attendance(AttendanceStatus.PRESENT),
    ]
    earnings = [
        earning("Bonus", "1000", effective_date=date(2023, 12, 1)),
        earning("Allowance", "500", is_active=False),
        earning("Old Allowance", "300", end_date=date(2023, 12, 31)),
    ]
    deductions = [
        deduction("Loan", amount="500"),
        deduction("Coop", percentage="2"),
    ]

    result = calculate_from_records(
        Decimal("17600"), records, earnings, deductions, START, END, POLICY
    )

    assert result.attendance.work_days == 3
    assert result.attendance.regular_hours == Decimal("16")
    assert result.attendance.overtime_hours == Decimal("2")
    assert result.hourly_rate == Decimal("100")
    assert result.regular_pay == Decimal("1600.00")
    assert result.overtime_pay == Decimal("250.00")
    assert result.total_earnings == Decimal("1000.00")
    assert result.gross_pay == Decimal("20450.00")
    assert result.government_contributions == Decimal("1376.00")
    assert result.custom_deductions == Decimal("852.00")
    assert result.taxable_income == Decimal("19074.00")
    assert result.withholding_tax == Decimal("0.00")
    assert result.total_deductions == Decimal("2228.00")
    assert result.net_pay == Decimal("18222.00")


def test_full_precision_until_stored():
    earnings = resolve_earnings(
        [earning("Transport", "333.33"), earning("Meal", "1234.56")], START, END
    )
    deductions = resolve_deductions(
        [deduction("Coop", percentage="2.5")], Decimal("12345.67"), START, END, POLICY
    )
    summary = AttendanceSummary(
        work_days=2, regular_hours=Decimal("7.5"), overtime_hours=Decimal("1.33")
    )

    result = calculate_payroll(Decimal("12345.67"), summary, earnings, deductions, POLICY)

    assert result.gross_pay == (
        result.base_salary + result.regular_pay + result.overtime_pay + result.total_earnings
    )
    assert result.total_earnings == sum(item.amount for item in result.earnings)
    assert result.total_deductions == sum(item.amount for item in result.deductions)
    assert result.net_pay == result.gross_pay - result.total_deductions
    assert result.regular_pay != result.regular_pay.quantize(Decimal("0.01"))

    record = result.as_record()
    for key in ("regular_pay", "overtime_pay", "gross_pay", "withholding_tax", "net_pay"):
        assert record[key] == record[key].quantize(Decimal("0.01"))


def test_stored_row_adds_up_to_the_cent():
    # 35.5113... and 310.7244... round to 35.51 and 310.72 but their sum rounds up
    summary = AttendanceSummary(
        work_days=1, regular_hours=Decimal("0.25"), overtime_hours=Decimal("1.75")
    )
    result = calculate_payroll(
        Decimal("25000"),
        summary,
        EarningsResolution(),
        resolve_deductions([], Decimal("25000"), START, END, POLICY),
        POLICY,
    )
    record = result.as_record()

    assert quantize_money(result.gross_pay) == Decimal("25346.24")
    assert record["regular_pay"] == Decimal("35.51")
    assert record["overtime_pay"] == Decimal("310.72")
    assert record["gross_pay"] == Decimal("25346.23")
    assert record["gross_pay"] == (
        record["base_salary"]
        + record["regular_pay"]
        + record["overtime_pay"]
        + record["total_earnings"]
    )
    assert record["total_deductions"] == (
        record["government_contributions"]
        + record["custom_deductions"]
        + record["withholding_tax"]
    )
    assert record["withholding_tax"] == Decimal("520.08")
    assert record["net_pay"] == Decimal("22913.65")
    assert record["net_pay"] == record["gross_pay"] - record["total_deductions"]
    assert record["total_deductions"] == sum(
        Decimal(item["amount"]) for item in record["deductions_data"]
    )


def test_custom_deductions_reduce_taxable_income_when_configured():
    deductions = [deduction("Loan", amount="1000")]

    default = calculate_from_records(
        Decimal("25000"), [], [], deductions, START, END, POLICY
    )
    deductible = calculate_from_records(
        Decimal("25000"),
        [],
        [],
        deductions,
        START,
        END,
        PayrollPolicy(custom_deductions_tax_deductible=True),
    )

    assert default.as_record()["withholding_tax"] == Decimal("450.83")
    assert deductible.taxable_income == Decimal("22087.50")
    assert deductible.as_record()["withholding_tax"] == Decimal("250.83")


def test_taxable_income_never_negative():
    deductions = DeductionBreakdown(government=government_contributions(Decimal("100"), POLICY))
    policy = PayrollPolicy(custom_deductions_tax_deductible=True)

    result = calculate_payroll(
        Decimal("0"), AttendanceSummary(), EarningsResolution(), deductions, policy
    )

    assert result.taxable_income == Decimal("0")
    assert result.withholding_tax == Decimal("0.00")


def test_negative_or_missing_salary_rejected():
    with pytest.raises(ValidationError):
        calculate_from_records(Decimal("-1"), [], [], [], START, END, POLICY)
    with pytest.raises(ValidationError):
        calculate_from_records(None, [], [], [], START, END, POLICY)


def test_deduction_basis_is_exclusive():
    assert deduction_basis(Decimal("100"), None) == FixedAmount(Decimal("100"))
    assert deduction_basis(None, Decimal("5")) == Percentage(Decimal("5"))
    with pytest.raises(ValidationError):
        deduction_basis(Decimal("100"), Decimal("5"))
    with pytest.raises(ValidationError):
        deduction_basis(None, None)


def test_percentage_deduction_uses_base_salary():
    breakdown = resolve_deductions(
        [deduction("Coop", percentage="2.5")], Decimal("12345.67"), START, END, POLICY
    )

    assert [item.amount for item in breakdown.custom] == [Decimal("308.64175")]
    assert breakdown.custom[0].as_dict()["amount"] == "308.64"


def test_inactive_and_expired_deductions_skipped():
    breakdown = resolve_deductions(
        [
            deduction("Paused", amount="100", is_active=False),
            deduction("Finished", amount="100", end_date=date(2023, 12, 31)),
            deduction("Loan", amount="250"),
        ],
        Decimal("25000"),
        START,
        END,
        POLICY,
    )

    assert [item.type for item in breakdown.custom] == ["Loan"]
    assert breakdown.custom_total == Decimal("250.00")


def test_earning_starting_after_period_skipped():
    resolution = resolve_earnings(
        [earning("Future", "100", effective_date=date(2024, 2, 1))], START, END
    )

    assert resolution.items == ()
    assert resolution.total == Decimal("0")


def test_attendance_aggregation_counts_present_and_late_only():
    summary = aggregate_attendance(
        [
            attendance(AttendanceStatus.PRESENT, "8"),
            attendance(AttendanceStatus.LATE, "7", "1"),
            attendance(AttendanceStatus.HALF_DAY, "4"),
            attendance(AttendanceStatus.SICK_LEAVE),
            attendance(AttendanceStatus.HOLIDAY),
        ]
    )

    assert summary.work_days == 2
    # hours still count on every row
    assert summary.regular_hours == Decimal("19")
    assert summary.overtime_hours == Decimal("1")


def test_progressive_tax_brackets():
    brackets = POLICY.tax_brackets

    assert progressive_tax(Decimal("250000"), brackets) == Decimal("0")
    assert progressive_tax(Decimal("500000"), brackets) == Decimal("55000")
    assert quantize_money(withholding_tax(Decimal("23087.50"), POLICY)) == Decimal("450.83")


def test_policy_from_settings_matches_defaults():
    policy = PayrollPolicy.from_settings(Settings())

    assert policy.standard_monthly_hours == Decimal("176")
    assert policy.overtime_multiplier == Decimal("1.25")
    assert policy.tax_brackets[-1].upper is None
    assert [rule.cap for rule in policy.contributions] == [
        Decimal("25000"),
        Decimal("100000"),
        Decimal("5000"),
    ]
