from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


class EmployeeStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    TERMINATED = "TERMINATED"
    ON_LEAVE = "ON_LEAVE"


class EmploymentType(str, Enum):
    FULL_TIME = "FULL_TIME"
    PART_TIME = "PART_TIME"
    CONTRACT = "CONTRACT"
    INTERN = "INTERN"
    CONSULTANT = "CONSULTANT"


class Frequency(str, Enum):
    HOURLY = "HOURLY"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    ANNUALLY = "ANNUALLY"
    ONE_TIME = "ONE_TIME"


class EmployeeCreate(BaseModel):
    employee_code: str | None = None
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    department: str = Field(min_length=1)
    position: str = Field(min_length=1)
    employment_type: EmploymentType = EmploymentType.FULL_TIME
    status: EmployeeStatus = EmployeeStatus.ACTIVE
    base_salary: Decimal = Field(gt=0)
    currency: str | None = None
    hire_date: date | None = None


class EmployeeUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: EmailStr | None = None
    department: str | None = None
    position: str | None = None
    employment_type: EmploymentType | None = None
    status: EmployeeStatus | None = None
    base_salary: Decimal | None = Field(default=None, gt=0)
    currency: str | None = None
    hire_date: date | None = None


class EmployeeResponse(BaseModel):
    id: int
    employee_code: str
    first_name: str
    last_name: str
    email: str
    department: str
    position: str
    employment_type: EmploymentType
    status: EmployeeStatus
    base_salary: Decimal
    currency: str
    hire_date: date | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class EmployeeListResponse(BaseModel):
    employees: list[EmployeeResponse]
    total: int
    page: int
    limit: int
    pages: int


class EarningCreate(BaseModel):
    type: str = Field(min_length=1)
    description: str | None = None
    amount: Decimal = Field(gt=0)
    frequency: Frequency = Frequency.MONTHLY
    effective_date: date | None = None
    end_date: date | None = None
    is_active: bool = True

    @model_validator(mode="after")
    def check_dates(self):
        if self.effective_date and self.end_date and self.end_date < self.effective_date:
            raise ValueError("end_date must not be before effective_date")
        return self


class EarningUpdate(BaseModel):
    type: str | None = None
    description: str | None = None
    amount: Decimal | None = Field(default=None, gt=0)
    frequency: Frequency | None = None
    effective_date: date | None = None
    end_date: date | None = None
    is_active: bool | None = None


class EarningResponse(BaseModel):
    id: int
    employee_id: int
    type: str
    description: str | None = None
    amount: Decimal
    frequency: Frequency
    effective_date: date | None = None
    end_date: date | None = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class DeductionCreate(BaseModel):
    type: str = Field(min_length=1)
    description: str | None = None
    amount: Decimal | None = Field(default=None, gt=0)
    percentage: Decimal | None = Field(default=None, gt=0, le=100)
    frequency: Frequency = Frequency.MONTHLY
    effective_date: date | None = None
    end_date: date | None = None
    is_active: bool = True


class DeductionUpdate(BaseModel):
    type: str | None = None
    description: str | None = None
    amount: Decimal | None = Field(default=None, gt=0)
    percentage: Decimal | None = Field(default=None, gt=0, le=100)
    frequency: Frequency | None = None
    effective_date: date | None = None
    end_date: date | None = None
    is_active: bool | None = None


class DeductionResponse(BaseModel):
    id: int
    employee_id: int
    type: str
    description: str | None = None
    amount: Decimal | None = None
    percentage: Decimal | None = None
    frequency: Frequency
    effective_date: date | None = None
    end_date: date | None = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)
