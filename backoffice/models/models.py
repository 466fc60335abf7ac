import datetime as dt
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Table,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from backoffice.database.database import Base
from backoffice.schemas.attendance_schema import AttendanceStatus
from backoffice.schemas.employee_schema import (
    EmployeeStatus,
    EmploymentType,
    Frequency,
)
from backoffice.schemas.payroll_schema import PayrollStatus, SelectionMode

Money = Numeric(12, 2)
Hours = Numeric(8, 2)


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(
        primary_key=True, autoincrement=True, nullable=False, index=True
    )
    employee_code: Mapped[str] = mapped_column(unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(nullable=False)
    last_name: Mapped[str] = mapped_column(nullable=False)
    email: Mapped[str] = mapped_column(unique=True, nullable=False)
    department: Mapped[str] = mapped_column(nullable=False, index=True)
    position: Mapped[str] = mapped_column(nullable=False)
    employment_type: Mapped[EmploymentType] = mapped_column(
        default=EmploymentType.FULL_TIME
    )
    status: Mapped[EmployeeStatus] = mapped_column(
        default=EmployeeStatus.ACTIVE, index=True
    )
    base_salary: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(default="PHP")
    hire_date: Mapped[date] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=func.now()
    )

    attendances: Mapped[list["Attendance"]] = relationship(
        back_populates="employee", cascade="all, delete-orphan", passive_deletes=True
    )
    earnings: Mapped[list["EmployeeEarning"]] = relationship(
        back_populates="employee", cascade="all, delete-orphan", passive_deletes=True
    )
    deductions: Mapped[list["EmployeeDeduction"]] = relationship(
        back_populates="employee", cascade="all, delete-orphan", passive_deletes=True
    )
    payrolls: Mapped[list["Payroll"]] = relationship(
        back_populates="employee", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Attendance(Base):
    __tablename__ = "attendance"
    __table_args__ = (
        UniqueConstraint("employee_id", "date", name="unique_employee_attendance_day"),
    )

    id: Mapped[int] = mapped_column(
        primary_key=True, autoincrement=True, nullable=False
    )
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date: Mapped[dt.date] = mapped_column(nullable=False)
    status: Mapped[AttendanceStatus] = mapped_column(default=AttendanceStatus.PRESENT)
    clock_in: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    clock_out: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    break_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    break_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    total_hours: Mapped[Decimal] = mapped_column(Hours, nullable=True)
    regular_hours: Mapped[Decimal] = mapped_column(Hours, nullable=True)
    overtime_hours: Mapped[Decimal] = mapped_column(Hours, nullable=True)
    notes: Mapped[str] = mapped_column(nullable=True)

    employee: Mapped["Employee"] = relationship(back_populates="attendances")


class EmployeeEarning(Base):
    __tablename__ = "employee_earnings"

    id: Mapped[int] = mapped_column(
        primary_key=True, autoincrement=True, nullable=False
    )
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(nullable=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    frequency: Mapped[Frequency] = mapped_column(default=Frequency.MONTHLY)
    effective_date: Mapped[date] = mapped_column(nullable=True)
    end_date: Mapped[date] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True)

    employee: Mapped["Employee"] = relationship(back_populates="earnings")


class EmployeeDeduction(Base):
    __tablename__ = "employee_deductions"
    __table_args__ = (
        CheckConstraint(
            "(amount IS NULL) <> (percentage IS NULL)",
            name="deduction_amount_xor_percentage",
        ),
    )

    id: Mapped[int] = mapped_column(
        primary_key=True, autoincrement=True, nullable=False
    )
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(nullable=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=True)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=True)
    frequency: Mapped[Frequency] = mapped_column(default=Frequency.MONTHLY)
    effective_date: Mapped[date] = mapped_column(nullable=True)
    end_date: Mapped[date] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True)

    employee: Mapped["Employee"] = relationship(back_populates="deductions")


payroll_batch_employees = Table(
    "payroll_batch_employees",
    Base.metadata,
    Column(
        "batch_id",
        Integer,
        ForeignKey("payroll_batches.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "employee_id",
        Integer,
        ForeignKey("employees.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class PayrollBatch(Base):
    __tablename__ = "payroll_batches"

    id: Mapped[int] = mapped_column(
        primary_key=True, autoincrement=True, nullable=False, index=True
    )
    batch_name: Mapped[str] = mapped_column(nullable=False)
    pay_period_start: Mapped[date] = mapped_column(nullable=False)
    pay_period_end: Mapped[date] = mapped_column(nullable=False)
    pay_date: Mapped[date] = mapped_column(nullable=True)
    status: Mapped[PayrollStatus] = mapped_column(default=PayrollStatus.DRAFT)
    selection_mode: Mapped[SelectionMode] = mapped_column(nullable=False)
    departments: Mapped[list] = mapped_column(JSON, nullable=True)

    total_employees: Mapped[int] = mapped_column(default=0)
    total_gross_pay: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    total_net_pay: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))

    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    approved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=func.now()
    )

    employees: Mapped[list["Employee"]] = relationship(
        secondary=payroll_batch_employees, lazy="selectin"
    )
    payrolls: Mapped[list["Payroll"]] = relationship(
        back_populates="batch", passive_deletes=True
    )

    __mapper_args__ = {"version_id_col": version}


class Payroll(Base):
    __tablename__ = "payrolls"
    __table_args__ = (
        UniqueConstraint("employee_id", "batch_id", name="unique_employee_batch"),
    )

    id: Mapped[int] = mapped_column(
        primary_key=True, autoincrement=True, nullable=False
    )
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True
    )
    batch_id: Mapped[int] = mapped_column(
        ForeignKey("payroll_batches.id", ondelete="CASCADE"), nullable=True, index=True
    )
    pay_period_start: Mapped[date] = mapped_column(nullable=False)
    pay_period_end: Mapped[date] = mapped_column(nullable=False)
    pay_date: Mapped[date] = mapped_column(nullable=True)
    status: Mapped[PayrollStatus] = mapped_column(default=PayrollStatus.DRAFT)

    base_salary: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_work_days: Mapped[int] = mapped_column(default=0)
    regular_hours: Mapped[Decimal] = mapped_column(Hours, default=Decimal("0"))
    overtime_hours: Mapped[Decimal] = mapped_column(Hours, default=Decimal("0"))
    hourly_rate: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    regular_pay: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    overtime_pay: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    total_earnings: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    government_contributions: Mapped[Decimal] = mapped_column(
        Money, default=Decimal("0")
    )
    custom_deductions: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    gross_pay: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    taxable_income: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    withholding_tax: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    net_pay: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))

    earnings_data: Mapped[list] = mapped_column(JSON, nullable=True)
    deductions_data: Mapped[list] = mapped_column(JSON, nullable=True)
    notes: Mapped[str] = mapped_column(nullable=True)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    employee: Mapped["Employee"] = relationship(back_populates="payrolls")
    batch: Mapped["PayrollBatch"] = relationship(back_populates="payrolls")
