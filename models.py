import datetime as dt
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from config import local_now
from database import Base


ALL_CATEGORIES = "All Categories"


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class Recurrence(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class RecurringFrequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class BillFrequency(str, Enum):
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"
    one_time = "one-time"


class BillStatus(str, Enum):
    unpaid = "unpaid"
    paid = "paid"
    overdue = "overdue"
    pending = "pending"


class PaymentMethod(str, Enum):
    manual = "manual"
    auto_pay = "auto-pay"
    bank_transfer = "bank-transfer"
    credit_card = "credit-card"
    debit_card = "debit-card"
    cash = "cash"


class ChangeAction(str, Enum):
    created = "created"
    updated = "updated"
    deleted = "deleted"


def _values_enum(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda cls: [member.value for member in cls],
    )


# Stored as naive local time in the configured zone, like budget start dates.
class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=local_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=local_now, onupdate=local_now, nullable=False
    )


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    title: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    from_rate: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    to_rate: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    # Plain string: rows carrying an unexpected value still resolve to a period.
    recurrence: Mapped[str] = mapped_column(String(20), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_budget_amount_positive"),
        Index("ix_budgets_user", "user_id"),
    )


class BudgetLog(Base):
    __tablename__ = "budget_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # No FK: log rows outlive the budget they describe.
    budget_id: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    action: Mapped[ChangeAction] = mapped_column(
        _values_enum(ChangeAction, "changeaction"), nullable=False
    )
    changes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, default=local_now, nullable=False
    )

    __table_args__ = (
        Index("ix_budget_logs_user_timestamp", "user_id", "timestamp"),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False, default=TransactionType.expense
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    from_rate: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    to_rate: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)

    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurring_frequency: Mapped[Optional[RecurringFrequency]] = mapped_column(
        SAEnum(RecurringFrequency)
    )
    end_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    template_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("transactions.id", ondelete="SET NULL")
    )

    due_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    bill_status: Mapped[Optional[BillStatus]] = mapped_column(SAEnum(BillStatus))
    bill_frequency: Mapped[Optional[BillFrequency]] = mapped_column(
        _values_enum(BillFrequency, "billfrequency")
    )
    next_due_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    last_paid_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    bill_provider: Mapped[Optional[str]] = mapped_column(String(120))
    reminder_days: Mapped[Optional[int]] = mapped_column(Integer)
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        _values_enum(PaymentMethod, "paymentmethod")
    )

    template: Mapped[Optional["Transaction"]] = relationship(
        "Transaction", remote_side=[id], back_populates="instances"
    )
    instances: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="template"
    )

    __table_args__ = (
        UniqueConstraint("template_id", "date", name="uq_txn_template_date"),
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_type_date", "user_id", "type", "date"),
        Index("ix_transactions_user_due_date", "user_id", "due_date"),
        CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
    )

    @property
    def is_bill(self) -> bool:
        return self.due_date is not None

    @property
    def is_template(self) -> bool:
        return bool(self.is_recurring) and self.template_id is None
