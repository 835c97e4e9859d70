import datetime as dt
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import (
    BillFrequency,
    BillStatus,
    PaymentMethod,
    Recurrence,
    RecurringFrequency,
    TransactionType,
)


class BudgetIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., gt=0)
    currency: str = Field(..., min_length=3, max_length=3)
    from_rate: Optional[float] = Field(default=None, gt=0)
    to_rate: Optional[float] = Field(default=None, gt=0)
    recurrence: Recurrence
    start_date: datetime
    category: str = Field(..., min_length=1, max_length=100)
    reason: Optional[str] = Field(default=None, max_length=500)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class TransactionIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    date: dt.date
    type: TransactionType = TransactionType.expense
    amount_cents: int = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=100)
    currency: str = Field(default="INR", min_length=3, max_length=3)
    from_rate: float = Field(default=1.0, gt=0)
    to_rate: float = Field(default=1.0, gt=0)
    is_recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    end_date: Optional[dt.date] = None

    @model_validator(mode="after")
    def _frequency_for_recurring(self) -> "TransactionIn":
        if self.is_recurring and self.recurring_frequency is None:
            raise ValueError("Recurring transactions need a recurring_frequency")
        return self


class BillIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    amount_cents: int = Field(..., ge=0)
    category: str = Field(default="Bill", min_length=1, max_length=100)
    currency: str = Field(default="INR", min_length=3, max_length=3)
    from_rate: float = Field(default=1.0, gt=0)
    to_rate: float = Field(default=1.0, gt=0)
    bill_provider: str = Field(..., min_length=1, max_length=120)
    due_date: date
    bill_status: BillStatus = BillStatus.unpaid
    bill_frequency: BillFrequency = BillFrequency.monthly
    is_recurring: bool = True
    payment_method: PaymentMethod = PaymentMethod.manual
    reminder_days: int = Field(default=3, ge=0, le=365)
    end_date: Optional[date] = None


class BillStatusIn(BaseModel):
    status: BillStatus
