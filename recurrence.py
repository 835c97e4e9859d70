import logging
from datetime import date, timedelta
from typing import Iterator, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from audit import plain_value
from models import Transaction
from periods import days_in_month
from storage import BudgetStore


logger = logging.getLogger(__name__)

MAX_ITERATIONS = 1000  # ~83 years of monthly ticks

DAY_STEPS = {"daily": 1, "weekly": 7}
MONTH_STEPS = {"monthly": 1, "quarterly": 3, "yearly": 12}

# Columns an instance never inherits from its template.
_INSTANCE_OWN_COLUMNS = frozenset(
    {"id", "created_at", "updated_at", "template_id", "is_recurring", "date", "due_date"}
)


def add_months(base: date, months: int, *, desired_day: Optional[int] = None) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(desired_day or base.day, days_in_month(year, month))
    return date(year, month, day)


def advance(current: date, frequency, *, anchor_day: Optional[int] = None) -> Optional[date]:
    """One cadence step forward, or None for one-time/unknown cadences.

    Month-based steps aim for ``anchor_day`` and clamp to the month's last
    day, so a schedule anchored on the 31st returns to the 31st.
    """
    key = plain_value(frequency)
    if key in DAY_STEPS:
        return current + timedelta(days=DAY_STEPS[key])
    if key in MONTH_STEPS:
        return add_months(current, MONTH_STEPS[key], desired_day=anchor_day)
    return None


def iter_occurrences(anchor: date, frequency, until: date) -> Iterator[date]:
    """Tick dates after ``anchor`` up to and including ``until``."""
    current = anchor
    for _ in range(MAX_ITERATIONS):
        current = advance(current, frequency, anchor_day=anchor.day)
        if current is None or current > until:
            return
        yield current
    logger.warning(
        f"recurring_iteration_limit: anchor={anchor} frequency={plain_value(frequency)}"
    )


def next_due_date(due_date: date, frequency) -> date:
    next_date = advance(due_date, frequency, anchor_day=due_date.day)
    return next_date if next_date is not None else due_date


def build_instance(template: Transaction, occurrence: date) -> Transaction:
    values = {
        column.key: getattr(template, column.key)
        for column in Transaction.__table__.columns
        if column.key not in _INSTANCE_OWN_COLUMNS
    }
    return Transaction(
        **values,
        date=occurrence,
        due_date=occurrence if template.is_bill else None,
        template_id=template.id,
        is_recurring=False,
    )


class RecurringEngine:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.store = BudgetStore(session)

    def generate_instances(self, template: Transaction, today: date) -> int:
        if template.is_bill:
            anchor, frequency = template.due_date, template.bill_frequency
        else:
            anchor, frequency = template.date, template.recurring_frequency
        if anchor is None or frequency is None:
            return 0

        boundary = today
        if template.end_date and template.end_date < boundary:
            boundary = template.end_date

        created = 0
        for occurrence in iter_occurrences(anchor, frequency, boundary):
            if self.store.find_instance(template.id, occurrence) is not None:
                continue
            if self._insert_instance(template, occurrence):
                created += 1
        if created:
            logger.info(
                f"recurring_generate: template_id={template.id} "
                f"instances_created={created} through={boundary}"
            )
        return created

    def _insert_instance(self, template: Transaction, occurrence: date) -> bool:
        instance = build_instance(template, occurrence)
        try:
            with self.session.begin_nested():
                self.store.insert_transaction(instance)
        except IntegrityError:
            # Another run inserted the same (template, day) first.
            logger.info(
                f"recurring_instance_exists: template_id={template.id} date={occurrence}"
            )
            return False
        return True

    def catch_up_all(self, today: date, user_id: Optional[int] = None) -> int:
        stmt = (
            select(Transaction)
            .where(
                Transaction.is_recurring.is_(True),
                Transaction.template_id.is_(None),
            )
            .order_by(Transaction.id)
        )
        if user_id is not None:
            stmt = stmt.where(Transaction.user_id == user_id)
        templates = self.session.scalars(stmt).all()

        total = 0
        for template in templates:
            template_id = template.id
            try:
                # A failing template leaves none of its instances behind.
                with self.session.begin_nested():
                    total += self.generate_instances(template, today)
            except Exception:
                logger.exception(f"recurring_generate_failed: template_id={template_id}")
        return total
