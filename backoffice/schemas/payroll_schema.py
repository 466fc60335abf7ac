from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PayrollStatus(str, Enum):
    DRAFT = "DRAFT"
    PROCESSING = "PROCESSING"
    CALCULATED = "CALCULATED"
    APPROVED = "APPROVED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class SelectionMode(str, Enum):
    EMPLOYEES = "EMPLOYEES"
    DEPARTMENTS = "DEPARTMENTS"
    ALL_ACTIVE = "ALL_ACTIVE"


# Request bodies accept camelCase keys as well as field names
REQUEST_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PayrollBatchCreate(BaseModel):
    batch_name: str = Field(min_length=1)
    pay_period_start: date
    pay_period_end: date
    pay_date: date | None = None
    employee_ids: list[int] | None = None
    departments: list[str] | None = None
    select_all: bool | None = None

    model_config = REQUEST_CONFIG


class PayrollBatchUpdate(BaseModel):
    batch_name: str | None = Field(default=None, min_length=1)
    pay_date: date | None = None
    status: PayrollStatus | None = None

    model_config = REQUEST_CONFIG


class PayrollBatchResponse(BaseModel):
    id: int
    batch_name: str
    pay_period_start: date
    pay_period_end: date
    pay_date: date | None = None
    status: PayrollStatus
    selection_mode: SelectionMode
    departments: list[str] | None = None
    total_employees: int
    total_gross_pay: Decimal
    total_deductions: Decimal
    total_net_pay: Decimal
    processed_at: datetime | None = None
    approved_at: datetime | None = None
    paid_at: datetime | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class EmployeeResult(BaseModel):
    employee_id: int
    status: str
    payroll_id: int | None = None
    gross_pay: Decimal | None = None
    net_pay: Decimal | None = None
    reason: str | None = None


class BatchSummary(BaseModel):
    total_processed: int
    successful: int
    failed: int


class BatchProcessResponse(BaseModel):
    batch: PayrollBatchResponse
    summary: BatchSummary
    results: list[EmployeeResult]


class PayrollBatchListResponse(BaseModel):
    batches: list[PayrollBatchResponse]
    total: int
    page: int
    limit: int
    pages: int


class LineItem(BaseModel):
    type: str
    amount: Decimal
    frequency: str | None = None
    category: str | None = None


class PayrollResponse(BaseModel):
    id: int
    employee_id: int
    batch_id: int | None = None
    pay_period_start: date
    pay_period_end: date
    pay_date: date | None = None
    status: PayrollStatus
    base_salary: Decimal
    total_work_days: int
    regular_hours: Decimal
    overtime_hours: Decimal
    hourly_rate: Decimal
    regular_pay: Decimal
    overtime_pay: Decimal
    total_earnings: Decimal
    government_contributions: Decimal
    custom_deductions: Decimal
    total_deductions: Decimal
    gross_pay: Decimal
    taxable_income: Decimal
    withholding_tax: Decimal
    net_pay: Decimal
    earnings_data: list[LineItem] | None = None
    deductions_data: list[LineItem] | None = None
    notes: str | None = None
    processed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class PayrollListResponse(BaseModel):
    payrolls: list[PayrollResponse]
    total: int
    page: int
    limit: int
    pages: int


class PayrollCalculateRequest(BaseModel):
    employee_id: int
    pay_period_start: date
    pay_period_end: date
    pay_date: date | None = None

    model_config = REQUEST_CONFIG


class PayrollUpdate(BaseModel):
    pay_date: date | None = None
    status: PayrollStatus | None = None
    notes: str | None = None

    model_config = REQUEST_CONFIG


class PayslipRequest(BaseModel):
    batch_id: int | None = None
    payroll_id: int | None = None

    model_config = REQUEST_CONFIG


class PayslipEmployee(BaseModel):
    name: str
    employee_code: str
    department: str
    position: str
    email: str


class PayslipCompany(BaseModel):
    name: str
    address: str
    phone: str
    email: str


class Payslip(BaseModel):
    payroll_id: int
    employee: PayslipEmployee
    company: PayslipCompany
    pay_period_start: date
    pay_period_end: date
    pay_date: date | None = None
    currency: str
    status: PayrollStatus
    total_work_days: int
    regular_hours: Decimal
    overtime_hours: Decimal
    hourly_rate: Decimal
    base_salary: Decimal
    regular_pay: Decimal
    overtime_pay: Decimal
    earnings: list[LineItem]
    deductions: list[LineItem]
    gross_pay: Decimal
    total_deductions: Decimal
    taxable_income: Decimal
    withholding_tax: Decimal
    net_pay: Decimal
