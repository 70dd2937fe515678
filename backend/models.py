from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator
from typing import Optional, List, Literal
from datetime import datetime

from core.ledger_models import (
    naive_utc,
    ClientInstallmentCreate,
    EmployeePaymentCreate,
    ExpenseCreate,
    PaymentMethod,
    ExpenseCategory,
)

ProjectStatus = Literal["planning", "active", "on_hold", "completed", "cancelled"]

# ============================================
# CLIENT MODELS
# ============================================
class ClientCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    company_name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phones: List[str] = Field(default_factory=list)
    industry: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("phones")
    @classmethod
    def check_phones(cls, v: List[str]) -> List[str]:
        for phone in v:
            digits = "".join(ch for ch in phone if ch.isdigit())
            if not 10 <= len(digits) <= 15:
                raise ValueError(f"Invalid phone number format: {phone}")
        return v

# ============================================
# EMPLOYEE MODELS
# ============================================
class EmployeeCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    position: Optional[str] = None
    department: Optional[str] = None

# ============================================
# PROJECT MODELS
# ============================================
class EmployeeAssignment(BaseModel):
    employee_id: str = Field(..., min_length=1)
    role: Optional[str] = Field(default=None, max_length=100)
    compensation: float = Field(..., ge=0)
    hours_worked: float = Field(default=0, ge=0)

    model_config = {"allow_inf_nan": False}


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    client_id: str
    budget: float = Field(..., ge=0)
    deposit: float = Field(default=0, ge=0)
    start_date: datetime
    end_date: Optional[datetime] = None
    status: ProjectStatus = "planning"
    employees: List[EmployeeAssignment] = Field(default_factory=list)
    service_ids: List[str] = Field(default_factory=list)

    model_config = {"allow_inf_nan": False}

    normalize_dates = field_validator("start_date", "end_date")(naive_utc)

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    @field_validator("employees")
    @classmethod
    def unique_assignments(cls, v: List[EmployeeAssignment]) -> List[EmployeeAssignment]:
        ids = [a.employee_id for a in v]
        if len(ids) != len(set(ids)):
            raise ValueError("An employee can only be assigned once per project")
        return v


class ProjectUpdate(BaseModel):
    """Metadata edits. The ledger and the deposit are never editable."""
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    client_id: Optional[str] = None
    budget: Optional[float] = Field(default=None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: Optional[ProjectStatus] = None
    employees: Optional[List[EmployeeAssignment]] = None
    service_ids: Optional[List[str]] = None

    model_config = {"extra": "forbid", "allow_inf_nan": False}

    normalize_dates = field_validator("start_date", "end_date")(naive_utc)

    @field_validator("employees")
    @classmethod
    def unique_assignments(cls, v: Optional[List[EmployeeAssignment]]):
        if v is not None:
            ids = [a.employee_id for a in v]
            if len(ids) != len(set(ids)):
                raise ValueError("An employee can only be assigned once per project")
        return v


class ProjectFilters(BaseModel):
    client_id: Optional[str] = None
    status: Optional[ProjectStatus] = None
    is_active: Optional[bool] = None
    min_budget: Optional[float] = Field(default=None, ge=0)
    max_budget: Optional[float] = Field(default=None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    search: Optional[str] = Field(default=None, min_length=1, max_length=100)

    model_config = {"allow_inf_nan": False}

    normalize_dates = field_validator("start_date", "end_date")(naive_utc)

# ============================================
# FINANCIAL SUMMARY (RESPONSE)
# ============================================
class FinancialSummary(BaseModel):
    project_id: Optional[str] = None
    serial_id: Optional[int] = None
    budget: float
    deposit: float
    money_collected: float
    money_paid: float
    total_expenses: float
    total_employee_compensation: float
    total_cost: float
    gross_profit: float
    net_profit_to_date: float
    client_balance_due: float
    employee_balance_due: float
    collection_rate: float
    installment_count: int
    employee_payment_count: int
    expense_count: int


__all__ = [
    "ClientCreate",
    "EmployeeCreate",
    "EmployeeAssignment",
    "ProjectCreate",
    "ProjectUpdate",
    "ProjectFilters",
    "FinancialSummary",
    "ClientInstallmentCreate",
    "EmployeePaymentCreate",
    "ExpenseCreate",
    "PaymentMethod",
    "ExpenseCategory",
    "ProjectStatus",
]
