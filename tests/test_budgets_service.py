from datetime import date, datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from config import local_now
from database import Base
from models import Budget, ChangeAction, Transaction, TransactionType
from services import (
    REQUIRED_BUDGET_MESSAGE,
    BudgetNotFound,
    BudgetService,
    BudgetValidationError,
)
from storage import BudgetStore


PAYLOAD = {
    "title": "Groceries",
    "amount_cents": 100000,
    "currency": "usd",
    "recurrence": "monthly",
    "start_date": "2024-03-01T00:00:00",
    "category": "Food",
}


def _engine():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


def test_create_budget_writes_creation_log():
    with Session(_engine()) as session:
        service = BudgetService(session)
        budget = service.create(PAYLOAD)

        assert budget.currency == "USD"
        assert budget.start_date == datetime(2024, 3, 1)
        logs = service.logs()
        assert len(logs) == 1
        entry = logs[0]
        assert entry.action == ChangeAction.created
        assert entry.budget_id == budget.id
        assert entry.reason == "Initial budget creation"
        assert entry.changes[0]["field"] == "budget"
        assert entry.changes[0]["old_value"] is None
        assert entry.changes[0]["new_value"]["title"] == "Groceries"


@pytest.mark.parametrize("missing", ["title", "category", "start_date"])
def test_create_requires_fields(missing):
    with Session(_engine()) as session:
        payload = dict(PAYLOAD)
        payload.pop(missing)
        with pytest.raises(BudgetValidationError) as exc:
            BudgetService(session).create(payload)
        assert str(exc.value) == REQUIRED_BUDGET_MESSAGE


def test_create_rejects_blank_title_and_bad_amount():
    with Session(_engine()) as session:
        service = BudgetService(session)
        with pytest.raises(BudgetValidationError, match="required"):
            service.create(dict(PAYLOAD, title="   "))
        with pytest.raises(BudgetValidationError):
            service.create(dict(PAYLOAD, amount_cents=0))
        assert service.list_all() == []


def test_update_logs_only_real_changes():
    with Session(_engine()) as session:
        service = BudgetService(session)
        budget = service.create(PAYLOAD)

        service.update(budget.id, PAYLOAD)
        assert len(service.logs()) == 1

        service.update(str(budget.id), dict(PAYLOAD, title="Food budget"), "Rename")
        logs = service.logs()
        assert len(logs) == 2
        assert logs[0].action == ChangeAction.updated
        assert logs[0].reason == "Rename"
        assert logs[0].changes == [
            {"field": "title", "old_value": "Groceries", "new_value": "Food budget"}
        ]


def test_update_unknown_or_invalid_id():
    with Session(_engine()) as session:
        service = BudgetService(session)
        with pytest.raises(BudgetNotFound):
            service.update(999, PAYLOAD)
        with pytest.raises(BudgetValidationError, match="Invalid budget id"):
            service.update("abc", PAYLOAD)


def test_delete_budget_logs_snapshot():
    with Session(_engine()) as session:
        service = BudgetService(session)
        budget = service.create(PAYLOAD)
        budget_id = budget.id

        result = service.delete(budget_id, "No longer needed")
        assert result == {"message": "Budget deleted successfully."}
        assert service.list_all() == []

        entry = service.logs()[0]
        assert entry.action == ChangeAction.deleted
        assert entry.budget_id == budget_id
        assert entry.reason == "No longer needed"
        assert entry.changes[0]["old_value"]["title"] == "Groceries"
        assert entry.changes[0]["new_value"] is None


def test_delete_rejects_bad_ids():
    with Session(_engine()) as session:
        service = BudgetService(session)
        with pytest.raises(BudgetValidationError):
            service.delete("abc")
        with pytest.raises(BudgetValidationError):
            service.delete(0)
        with pytest.raises(BudgetNotFound):
            service.delete(42)


def test_delete_survives_log_failure(monkeypatch):
    with Session(_engine()) as session:
        service = BudgetService(session)
        budget_id = service.create(PAYLOAD).id

        def broken(self, entry):
            raise RuntimeError("log store unavailable")

        monkeypatch.setattr(BudgetStore, "append_change_log", broken)
        result = service.delete(budget_id)

        assert result["message"] == "Budget deleted successfully."
        assert service.list_all() == []
        assert session.get(Budget, budget_id) is None


def test_budgets_are_scoped_to_user():
    with Session(_engine()) as session:
        BudgetService(session, user_id=2).create(PAYLOAD)
        assert BudgetService(session).list_all() == []
        assert len(BudgetService(session, user_id=2).list_all()) == 1


def test_budget_progress_summary():
    with Session(_engine()) as session:
        service = BudgetService(session)
        service.create(PAYLOAD)
        session.add_all(
            [
                Transaction(
                    user_id=1,
                    title="Market",
                    date=date(2024, 3, 5),
                    type=TransactionType.expense,
                    amount_cents=30000,
                    category="Food",
                ),
                Transaction(
                    user_id=1,
                    title="Bakery",
                    date=date(2024, 3, 10),
                    type=TransactionType.expense,
                    amount_cents=15000,
                    category="Food",
                ),
                Transaction(
                    user_id=1,
                    title="Refund",
                    date=date(2024, 3, 11),
                    type=TransactionType.income,
                    amount_cents=5000,
                    category="Food",
                ),
                Transaction(
                    user_id=1,
                    title="Before start",
                    date=date(2024, 2, 28),
                    type=TransactionType.expense,
                    amount_cents=9000,
                    category="Food",
                ),
            ]
        )
        session.commit()

        summary = service.get_budget_progress(now=datetime(2024, 3, 15, 12, 0))
        (progress,) = summary["budgets"]
        assert progress["total_spent_cents"] == 45000
        assert progress["progress"] == 45.0
        assert progress["expenses_count"] == 2
        assert summary["days_until_reset"] == 17
        assert summary["savings_achieved_cents"] == 55000


def test_budget_progress_without_budgets():
    with Session(_engine()) as session:
        summary = BudgetService(session).get_budget_progress(
            now=datetime(2024, 3, 15)
        )
        assert summary["budgets"] == []
        assert summary["budget_health"]["label"] == "No Data"


def test_log_and_record_timestamps_use_local_clock():
    with Session(_engine()) as session:
        service = BudgetService(session)
        before = local_now()
        budget = service.create(PAYLOAD)
        after = local_now()

        assert before <= service.logs()[0].timestamp <= after
        assert before <= budget.created_at <= after
