from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict


class AttendanceStatus(str, Enum):
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    LATE = "LATE"
    HALF_DAY = "HALF_DAY"
    SICK_LEAVE = "SICK_LEAVE"
    VACATION_LEAVE = "VACATION_LEAVE"
    PERSONAL_LEAVE = "PERSONAL_LEAVE"
    EMERGENCY_LEAVE = "EMERGENCY_LEAVE"
    UNPAID_LEAVE = "UNPAID_LEAVE"
    HOLIDAY = "HOLIDAY"
    WEEKEND = "WEEKEND"


WORKED_STATUSES = frozenset({AttendanceStatus.PRESENT, AttendanceStatus.LATE})


class ClockAction(str, Enum):
    CLOCK_IN = "clock_in"
    CLOCK_OUT = "clock_out"
    BREAK_START = "break_start"
    BREAK_END = "break_end"


class AttendanceCreate(BaseModel):
    employee_id: int
    date: date
    status: AttendanceStatus = AttendanceStatus.PRESENT
    clock_in: datetime | None = None
    clock_out: datetime | None = None
    break_start: datetime | None = None
    break_end: datetime | None = None
    regular_hours: Decimal | None = None
    overtime_hours: Decimal | None = None
    notes: str | None = None


class AttendanceUpdate(BaseModel):
    status: AttendanceStatus | None = None
    clock_in: datetime | None = None
    clock_out: datetime | None = None
    break_start: datetime | None = None
    break_end: datetime | None = None
    regular_hours: Decimal | None = None
    overtime_hours: Decimal | None = None
    notes: str | None = None


class AttendanceResponse(BaseModel):
    id: int
    employee_id: int
    date: date
    status: AttendanceStatus
    clock_in: datetime | None = None
    clock_out: datetime | None = None
    break_start: datetime | None = None
    break_end: datetime | None = None
    total_hours: Decimal | None = None
    regular_hours: Decimal | None = None
    overtime_hours: Decimal | None = None
    notes: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ClockRequest(BaseModel):
    employee_id: int
    action: ClockAction
    timestamp: datetime | None = None


class AttendanceReportRow(BaseModel):
    employee_id: int
    employee_code: str
    name: str
    department: str
    total_days: int
    work_days: int
    total_hours: Decimal
    regular_hours: Decimal
    overtime_hours: Decimal
