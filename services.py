from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime, timedelta
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import ValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from audit import TRACKED_FIELDS, detect_budget_changes, lifecycle_change
from config import get_settings, local_now, local_today
from models import (
    BillFrequency,
    BillStatus,
    Budget,
    BudgetLog,
    ChangeAction,
    Transaction,
    TransactionType,
)
from progress import build_budget_progress, summarize_portfolio
from recurrence import RecurringEngine, next_due_date
from schemas import BillIn, BudgetIn, TransactionIn
from storage import BudgetStore


logger = logging.getLogger(__name__)

REQUIRED_BUDGET_FIELDS = (
    "title",
    "amount_cents",
    "currency",
    "recurrence",
    "start_date",
    "category",
)
REQUIRED_BUDGET_MESSAGE = (
    "Title, amount, currency, recurrence, start date, and category are required."
)
OPEN_BILL_STATUSES = (BillStatus.unpaid, BillStatus.pending)


class BudgetValidationError(ValueError):
    pass


class BudgetNotFound(ValueError):
    pass


class TransactionNotFound(ValueError):
    pass


class BillNotFound(ValueError):
    pass


def get_current_user_id() -> int:
    return 1


def to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    tz = ZoneInfo(get_settings().timezone)
    return value.astimezone(tz).replace(tzinfo=None)


def parse_budget_payload(data: Union[BudgetIn, Mapping[str, Any]]) -> BudgetIn:
    if isinstance(data, BudgetIn):
        return data

    def blank(value: Any) -> bool:
        return value is None or (isinstance(value, str) and not value.strip())

    if any(blank(data.get(name)) for name in REQUIRED_BUDGET_FIELDS):
        raise BudgetValidationError(REQUIRED_BUDGET_MESSAGE)
    try:
        return BudgetIn.model_validate(dict(data))
    except ValidationError as exc:
        raise BudgetValidationError(str(exc)) from exc


def parse_record_id(value: Union[int, str], label: str = "budget") -> int:
    if isinstance(value, bool):
        raise BudgetValidationError(f"Invalid {label} id")
    try:
        record_id = int(value)
    except (TypeError, ValueError) as exc:
        raise BudgetValidationError(f"Invalid {label} id") from exc
    if record_id <= 0:
        raise BudgetValidationError(f"Invalid {label} id")
    return record_id


class BudgetService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.store = BudgetStore(session)

    @staticmethod
    def _fields_from(payload: BudgetIn) -> dict[str, Any]:
        return {
            "title": payload.title,
            "amount_cents": payload.amount_cents,
            "currency": payload.currency,
            "from_rate": payload.from_rate or 1.0,
            "to_rate": payload.to_rate or 1.0,
            "recurrence": payload.recurrence.value,
            "start_date": to_local_naive(payload.start_date),
            "category": payload.category,
        }

    def _append_log(
        self,
        budget_id: int,
        action: ChangeAction,
        changes: list,
        reason: str,
    ) -> BudgetLog:
        entry = BudgetLog(
            budget_id=budget_id,
            user_id=self.user_id,
            action=action,
            changes=[change.to_json() for change in changes],
            reason=reason,
        )
        return self.store.append_change_log(entry)

    def list_all(self) -> list[Budget]:
        return self.store.find_budgets_by_user_id(self.user_id)

    def get(self, budget_id: Union[int, str]) -> Budget:
        budget = self.store.find_budget(self.user_id, parse_record_id(budget_id))
        if budget is None:
            raise BudgetNotFound("Budget not found.")
        return budget

    def create(
        self, data: Union[BudgetIn, Mapping[str, Any]], reason: Optional[str] = None
    ) -> Budget:
        payload = parse_budget_payload(data)
        budget = Budget(user_id=self.user_id, **self._fields_from(payload))
        self.store.create_budget(budget)
        self._append_log(
            budget.id,
            ChangeAction.created,
            [lifecycle_change(new=budget)],
            reason or payload.reason or "Initial budget creation",
        )
        self.session.commit()
        self.session.refresh(budget)
        logger.info(f"budget_created: budget_id={budget.id} user_id={self.user_id}")
        return budget

    def update(
        self,
        budget_id: Union[int, str],
        data: Union[BudgetIn, Mapping[str, Any]],
        reason: Optional[str] = None,
    ) -> Budget:
        payload = parse_budget_payload(data)
        record_id = parse_record_id(budget_id)
        existing = self.store.find_budget(self.user_id, record_id)
        if existing is None:
            raise BudgetNotFound("Budget not found.")
        before = {name: getattr(existing, name) for name in TRACKED_FIELDS}

        budget = self.store.update_budget(
            self.user_id, record_id, self._fields_from(payload)
        )
        if budget is None:
            raise BudgetNotFound("Budget not found.")

        changes = detect_budget_changes(before, budget)
        if changes:
            self._append_log(
                budget.id,
                ChangeAction.updated,
                changes,
                reason or payload.reason or "Budget update",
            )
        self.session.commit()
        self.session.refresh(budget)
        logger.info(
            f"budget_updated: budget_id={budget.id} fields_changed={len(changes)}"
        )
        return budget

    def delete(
        self, budget_id: Union[int, str], reason: Optional[str] = None
    ) -> dict[str, str]:
        record_id = parse_record_id(budget_id)
        budget = self.store.delete_budget(self.user_id, record_id)
        if budget is None:
            raise BudgetNotFound("Budget not found.")
        change = lifecycle_change(old=budget)
        self.session.commit()
        logger.info(f"budget_deleted: budget_id={record_id} user_id={self.user_id}")

        # The deletion stands even if the audit row cannot be written.
        try:
            self._append_log(
                record_id, ChangeAction.deleted, [change], reason or "Budget deletion"
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.exception(f"budget_delete_log_failed: budget_id={record_id}")

        return {"message": "Budget deleted successfully."}

    def logs(self) -> list[BudgetLog]:
        return self.store.list_change_logs(self.user_id)

    def get_budget_progress(self, now: Optional[datetime] = None) -> dict[str, object]:
        now = now or local_now()
        budgets = self.store.find_budgets_by_user_id(self.user_id)
        expenses = self.store.get_user_expenses(self.user_id) if budgets else []
        progress = [build_budget_progress(budget, expenses, now) for budget in budgets]
        return summarize_portfolio(progress, now)


class RecurringService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.engine = RecurringEngine(session)

    def generate_for(self, template: Transaction, today: Optional[date] = None) -> int:
        created = self.engine.generate_instances(template, today or local_today())
        self.session.commit()
        return created

    def trigger(self, today: Optional[date] = None) -> dict[str, object]:
        today = today or local_today()
        created = self.engine.catch_up_all(today, user_id=self.user_id)
        self.session.commit()
        logger.info(
            f"recurring_trigger: user_id={self.user_id} instances_created={created}"
        )
        return {"success": True, "created_count": created}

    def catch_up_all(self, today: Optional[date] = None) -> int:
        created = self.engine.catch_up_all(today or local_today())
        self.session.commit()
        return created

    def list_templates(self) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.is_recurring.is_(True),
                Transaction.template_id.is_(None),
            )
            .order_by(Transaction.date)
        )
        return list(self.session.scalars(stmt).all())

    def delete_template(self, template_id: Union[int, str]) -> dict[str, object]:
        record_id = parse_record_id(template_id, "template")
        template = self.session.get(Transaction, record_id)
        if not template or template.user_id != self.user_id or not template.is_template:
            raise TransactionNotFound("Recurring transaction template not found")
        result = self.session.execute(
            delete(Transaction).where(
                Transaction.user_id == self.user_id,
                Transaction.template_id == record_id,
            )
        )
        self.session.delete(template)
        self.session.commit()
        deleted = result.rowcount or 0
        return {
            "message": f"Recurring transaction and {deleted} instances deleted successfully",
            "deleted_instances": deleted,
        }


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.store = BudgetStore(session)

    def get(self, transaction_id: Union[int, str]) -> Transaction:
        txn = self.session.get(
            Transaction, parse_record_id(transaction_id, "transaction")
        )
        if not txn or txn.user_id != self.user_id:
            raise TransactionNotFound("Transaction not found")
        return txn

    def list(self, limit: int = 200) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def _after_save(self, txn: Transaction, today: Optional[date]) -> None:
        if txn.is_template:
            RecurringEngine(self.session).generate_instances(
                txn, today or local_today()
            )

    def create(self, data: TransactionIn, today: Optional[date] = None) -> Transaction:
        txn = Transaction(user_id=self.user_id, **data.model_dump())
        txn.currency = txn.currency.upper()
        self.store.insert_transaction(txn)
        self._after_save(txn, today)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def update(
        self,
        transaction_id: Union[int, str],
        data: TransactionIn,
        today: Optional[date] = None,
    ) -> Transaction:
        txn = self.get(transaction_id)
        for field, value in data.model_dump().items():
            setattr(txn, field, value)
        txn.currency = txn.currency.upper()
        self.session.flush()
        self._after_save(txn, today)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: Union[int, str]) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()


class BillService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.store = BudgetStore(session)

    def _bills(self):
        return (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.due_date.is_not(None),
            )
            .order_by(Transaction.due_date, Transaction.id)
        )

    def get(self, bill_id: Union[int, str]) -> Transaction:
        bill = self.session.get(Transaction, parse_record_id(bill_id, "bill"))
        if not bill or bill.user_id != self.user_id or not bill.is_bill:
            raise BillNotFound("Bill not found")
        return bill

    def list(self, status: Optional[BillStatus] = None) -> list[Transaction]:
        stmt = self._bills()
        if status is not None:
            stmt = stmt.where(Transaction.bill_status == status)
        return list(self.session.scalars(stmt).all())

    @staticmethod
    def _fields_from(data: BillIn) -> dict[str, Any]:
        fields = data.model_dump()
        fields["currency"] = fields["currency"].upper()
        fields["date"] = data.due_date
        fields["type"] = TransactionType.expense
        return fields

    def _after_save(self, bill: Transaction, today: Optional[date]) -> None:
        if bill.is_template:
            RecurringEngine(self.session).generate_instances(
                bill, today or local_today()
            )

    def create(self, data: BillIn, today: Optional[date] = None) -> Transaction:
        bill = Transaction(user_id=self.user_id, **self._fields_from(data))
        self.store.insert_transaction(bill)
        self._after_save(bill, today)
        self.session.commit()
        self.session.refresh(bill)
        return bill

    def update(
        self, bill_id: Union[int, str], data: BillIn, today: Optional[date] = None
    ) -> Transaction:
        bill = self.get(bill_id)
        for field, value in self._fields_from(data).items():
            setattr(bill, field, value)
        self.session.flush()
        self._after_save(bill, today)
        self.session.commit()
        self.session.refresh(bill)
        return bill

    def delete(self, bill_id: Union[int, str]) -> None:
        bill = self.get(bill_id)
        self.session.delete(bill)
        self.session.commit()

    def set_status(
        self,
        bill_id: Union[int, str],
        status: Union[BillStatus, str],
        today: Optional[date] = None,
    ) -> Transaction:
        try:
            new_status = BillStatus(status)
        except ValueError as exc:
            raise BudgetValidationError("Invalid status") from exc
        bill = self.get(bill_id)
        bill.bill_status = new_status

        if new_status == BillStatus.paid:
            bill.last_paid_date = today or local_today()
            if bill.is_recurring and bill.bill_frequency != BillFrequency.one_time:
                advanced = next_due_date(bill.due_date, bill.bill_frequency)
                bill.next_due_date = advanced
                bill.due_date = advanced

        self.session.commit()
        self.session.refresh(bill)
        return bill

    def overdue(self, today: Optional[date] = None) -> list[Transaction]:
        today = today or local_today()
        stmt = self._bills().where(
            Transaction.due_date < today,
            Transaction.bill_status.in_(OPEN_BILL_STATUSES),
        )
        return list(self.session.scalars(stmt).all())

    def upcoming(self, today: Optional[date] = None, days: int = 7) -> list[Transaction]:
        today = today or local_today()
        stmt = self._bills().where(
            Transaction.due_date.between(today, today + timedelta(days=days)),
            Transaction.bill_status.in_(OPEN_BILL_STATUSES),
        )
        return list(self.session.scalars(stmt).all())

    def stats(self, today: Optional[date] = None) -> dict[str, int]:
        today = today or local_today()

        def count(*conditions) -> int:
            stmt = select(func.count(Transaction.id)).where(
                Transaction.user_id == self.user_id,
                Transaction.due_date.is_not(None),
                *conditions,
            )
            return int(self.session.scalar(stmt) or 0)

        return {
            "total_bills": count(),
            "unpaid_bills": count(Transaction.bill_status == BillStatus.unpaid),
            "overdue_bills": count(
                Transaction.due_date < today,
                Transaction.bill_status.in_(OPEN_BILL_STATUSES),
            ),
            "upcoming_bills": count(
                Transaction.due_date.between(today, today + timedelta(days=7)),
                Transaction.bill_status.in_(OPEN_BILL_STATUSES),
            ),
        }
