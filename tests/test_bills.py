from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import BillStatus
from schemas import BillIn, TransactionIn
from services import (
    BillNotFound,
    BillService,
    BudgetValidationError,
    RecurringService,
    TransactionService,
)


def _engine():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


def _bill(**overrides) -> BillIn:
    values = dict(
        title="Electricity",
        amount_cents=8000,
        bill_provider="City Power",
        due_date=date(2024, 3, 10),
        bill_frequency="monthly",
    )
    values.update(overrides)
    return BillIn(**values)


def test_mark_paid_advances_recurring_bill():
    with Session(_engine()) as session:
        service = BillService(session)
        bill = service.create(_bill(), today=date(2024, 3, 1))

        paid = service.set_status(bill.id, "paid", today=date(2024, 3, 9))
        assert paid.bill_status == BillStatus.paid
        assert paid.last_paid_date == date(2024, 3, 9)
        assert paid.due_date == date(2024, 4, 10)
        assert paid.next_due_date == date(2024, 4, 10)


def test_mark_paid_keeps_one_time_due_date():
    with Session(_engine()) as session:
        service = BillService(session)
        bill = service.create(
            _bill(bill_frequency="one-time", is_recurring=False), today=date(2024, 3, 1)
        )
        paid = service.set_status(bill.id, BillStatus.paid, today=date(2024, 3, 2))
        assert paid.due_date == date(2024, 3, 10)
        assert paid.next_due_date is None


def test_invalid_status_and_missing_bill():
    with Session(_engine()) as session:
        service = BillService(session)
        bill = service.create(_bill(), today=date(2024, 3, 1))
        with pytest.raises(BudgetValidationError, match="Invalid status"):
            service.set_status(bill.id, "lost")
        with pytest.raises(BillNotFound):
            service.set_status(999, "paid")


def test_recurring_bill_catches_up_on_create():
    with Session(_engine()) as session:
        service = BillService(session)
        service.create(_bill(due_date=date(2024, 1, 15)), today=date(2024, 4, 20))
        due_dates = [b.due_date for b in service.list()]
        assert due_dates == [
            date(2024, 1, 15),
            date(2024, 2, 15),
            date(2024, 3, 15),
            date(2024, 4, 15),
        ]


def test_overdue_upcoming_and_stats():
    today = date(2024, 3, 15)
    with Session(_engine()) as session:
        service = BillService(session)
        for title, due, status in [
            ("Water", date(2024, 3, 10), BillStatus.unpaid),
            ("Internet", date(2024, 3, 18), BillStatus.pending),
            ("Phone", date(2024, 3, 12), BillStatus.paid),
            ("Insurance", date(2024, 4, 30), BillStatus.unpaid),
        ]:
            service.create(
                _bill(title=title, due_date=due, bill_status=status, is_recurring=False),
                today=today,
            )

        assert [b.title for b in service.overdue(today)] == ["Water"]
        assert [b.title for b in service.upcoming(today)] == ["Internet"]
        assert service.stats(today) == {
            "total_bills": 4,
            "unpaid_bills": 2,
            "overdue_bills": 1,
            "upcoming_bills": 1,
        }
        assert [b.title for b in service.list(BillStatus.paid)] == ["Phone"]


def test_delete_recurring_template_removes_instances():
    with Session(_engine()) as session:
        template = TransactionService(session).create(
            TransactionIn(
                title="Streaming",
                date=date(2024, 1, 1),
                amount_cents=1299,
                category="Entertainment",
                is_recurring=True,
                recurring_frequency="monthly",
            ),
            today=date(2024, 3, 1),
        )
        recurring = RecurringService(session)
        assert [t.id for t in recurring.list_templates()] == [template.id]

        result = recurring.delete_template(template.id)
        assert result["deleted_instances"] == 2
        assert TransactionService(session).list() == []


def test_trigger_reports_created_count():
    with Session(_engine()) as session:
        TransactionService(session).create(
            TransactionIn(
                title="Salary",
                date=date(2024, 1, 25),
                type="income",
                amount_cents=300000,
                category="Work",
                is_recurring=True,
                recurring_frequency="monthly",
            ),
            today=date(2024, 1, 25),
        )
        result = RecurringService(session).trigger(today=date(2024, 3, 31))
        assert result == {"success": True, "created_count": 2}
