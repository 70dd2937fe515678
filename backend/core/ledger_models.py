"""
Ledger transaction payloads.

One explicit model per transaction kind, discriminated by ``kind``. Each model
owns its required-field set so malformed payloads are rejected before they
reach the Ledger Store.
"""

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator
from typing import Annotated, Literal, Optional, Union
from datetime import datetime, timezone

PaymentMethod = Literal["cash", "bank_transfer", "check", "credit_card", "other"]
ExpenseCategory = Literal["equipment", "software", "travel", "marketing", "office", "other"]

TRANSACTION_KINDS = ("client_installment", "employee_payment", "expense")


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # MongoDB stores naive UTC datetimes
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class _TransactionBase(BaseModel):
    amount: float
    date: Optional[datetime] = None

    model_config = {"extra": "forbid", "allow_inf_nan": False}

    normalize_date = field_validator("date")(naive_utc)


class ClientInstallmentCreate(_TransactionBase):
    kind: Literal["client_installment"] = "client_installment"
    amount: float = Field(..., ge=0)
    method: PaymentMethod = "bank_transfer"
    reference: Optional[str] = Field(default=None, max_length=100)
    note: Optional[str] = Field(default=None, max_length=500)


class EmployeePaymentCreate(_TransactionBase):
    kind: Literal["employee_payment"] = "employee_payment"
    employee_id: str = Field(..., min_length=1)
    method: PaymentMethod = "bank_transfer"
    note: Optional[str] = Field(default=None, max_length=500)
    # Corrections (clawbacks) are the only way to record a negative payment
    correction: bool = False

    @model_validator(mode="after")
    def check_amount_sign(self):
        if self.amount < 0 and not self.correction:
            raise ValueError("Negative employee payments must be flagged as a correction")
        return self


class ExpenseCreate(_TransactionBase):
    kind: Literal["expense"] = "expense"
    description: str = Field(..., min_length=2, max_length=200)
    amount: float = Field(..., ge=0)
    category: ExpenseCategory
    receipt: Optional[str] = Field(default=None, max_length=500)

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Description must have at least 2 characters")
        return v


LedgerTransaction = Annotated[
    Union[ClientInstallmentCreate, EmployeePaymentCreate, ExpenseCreate],
    Field(discriminator="kind")
]

ledger_transaction_adapter = TypeAdapter(LedgerTransaction)
