from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence

from models import ALL_CATEGORIES, Budget, Transaction
from periods import calculate_period


ON_TRACK_THRESHOLD = 80.0
HIGH_USAGE_THRESHOLD = 80.0
MEDIUM_USAGE_THRESHOLD = 60.0
LOW_USAGE_THRESHOLD = 40.0


def _calendar_day(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def match_expenses(
    transactions: Iterable[Transaction],
    budget: Budget,
    budget_start: datetime,
    now: datetime,
) -> list[Transaction]:
    """Transactions counted against ``budget`` from its start date up to now.

    The window is lifetime-to-date, not the current period. Days are compared
    without time-of-day and category matching is exact.
    """
    first_day = _calendar_day(budget_start)
    last_day = _calendar_day(now)
    return [
        txn
        for txn in transactions
        if first_day <= _calendar_day(txn.date) <= last_day
        and (budget.category == ALL_CATEGORIES or txn.category == budget.category)
    ]


def total_spent(transactions: Iterable[Transaction]) -> int:
    # Nominal sum: amounts in different currencies are not converted.
    return sum(txn.amount_cents for txn in transactions)


@dataclass(frozen=True)
class BudgetProgress:
    id: int
    title: str
    amount_cents: int
    currency: str
    from_rate: float
    to_rate: float
    recurrence: str
    start_date: datetime
    category: str
    created_at: Optional[datetime]
    period_start: datetime
    total_spent_cents: int
    remaining_cents: int
    progress: float
    is_over_budget: bool
    expenses_count: int


def build_budget_progress(
    budget: Budget, transactions: Sequence[Transaction], now: datetime
) -> BudgetProgress:
    period = calculate_period(budget.recurrence, now)
    matched = match_expenses(transactions, budget, budget.start_date, now)
    spent = total_spent(matched)
    raw_progress = spent / budget.amount_cents * 100
    return BudgetProgress(
        id=budget.id,
        title=budget.title,
        amount_cents=budget.amount_cents,
        currency=budget.currency,
        from_rate=budget.from_rate or 1.0,
        to_rate=budget.to_rate or 1.0,
        recurrence=budget.recurrence,
        start_date=budget.start_date,
        category=budget.category,
        created_at=budget.created_at,
        period_start=period.start,
        total_spent_cents=spent,
        remaining_cents=budget.amount_cents - spent,
        progress=min(raw_progress, 100.0),
        is_over_budget=spent > budget.amount_cents,
        expenses_count=len(matched),
    )


@dataclass(frozen=True)
class HealthBreakdown:
    base_score: int = 0
    over_budget_penalty: int = 0
    high_usage_penalty: int = 0
    medium_usage_penalty: int = 0
    low_usage_bonus: int = 0
    perfect_record_bonus: int = 0
    over_budget_count: int = 0
    high_usage_count: int = 0
    medium_usage_count: int = 0
    low_usage_count: int = 0


@dataclass(frozen=True)
class BudgetHealth:
    score: int
    label: str
    color: str
    breakdown: HealthBreakdown = field(default_factory=HealthBreakdown)


NO_DATA_HEALTH = BudgetHealth(score=0, label="No Data", color="gray")

# Lower bound of each band, highest first.
HEALTH_BANDS: tuple[tuple[int, str, str], ...] = (
    (90, "Excellent!", "green"),
    (75, "Great!", "green"),
    (60, "Good", "blue"),
    (40, "Fair", "yellow"),
    (20, "Poor", "orange"),
    (0, "Critical", "red"),
)


def health_band(score: int) -> tuple[str, str]:
    for floor, label, color in HEALTH_BANDS:
        if score >= floor:
            return label, color
    return HEALTH_BANDS[-1][1], HEALTH_BANDS[-1][2]


def calculate_budget_health(budgets: Sequence[BudgetProgress]) -> BudgetHealth:
    """Weighted 0-100 score over a user's budgets.

    The low-usage bucket is counted independently of the over/high/medium
    buckets rather than as a partition.
    """
    if not budgets:
        return NO_DATA_HEALTH

    base_score = 100
    over_count = sum(1 for b in budgets if b.is_over_budget)
    high_count = sum(
        1 for b in budgets if not b.is_over_budget and b.progress >= HIGH_USAGE_THRESHOLD
    )
    medium_count = sum(
        1
        for b in budgets
        if not b.is_over_budget
        and MEDIUM_USAGE_THRESHOLD <= b.progress < HIGH_USAGE_THRESHOLD
    )
    low_count = sum(1 for b in budgets if b.progress < LOW_USAGE_THRESHOLD)

    breakdown = HealthBreakdown(
        base_score=base_score,
        over_budget_penalty=over_count * 20,
        high_usage_penalty=high_count * 10,
        medium_usage_penalty=medium_count * 5,
        low_usage_bonus=low_count * 5,
        perfect_record_bonus=10 if over_count == 0 else 0,
        over_budget_count=over_count,
        high_usage_count=high_count,
        medium_usage_count=medium_count,
        low_usage_count=low_count,
    )
    raw = (
        base_score
        - breakdown.over_budget_penalty
        - breakdown.high_usage_penalty
        - breakdown.medium_usage_penalty
        + breakdown.low_usage_bonus
        + breakdown.perfect_record_bonus
    )
    score = max(0, min(100, raw))
    label, color = health_band(score)
    return BudgetHealth(score=score, label=label, color=color, breakdown=breakdown)


def days_until_reset(
    budgets: Sequence[BudgetProgress], now: datetime
) -> Optional[int]:
    if not budgets:
        return None
    earliest = min(calculate_period(b.recurrence, now).end for b in budgets)
    return math.ceil((earliest - now) / timedelta(days=1))


def summarize_portfolio(
    budgets: Sequence[BudgetProgress], now: datetime
) -> dict[str, object]:
    total_amount = sum(b.amount_cents for b in budgets)
    spent = sum(b.total_spent_cents for b in budgets)
    total_progress = (
        min(spent / total_amount * 100, 100.0) if total_amount > 0 else 0.0
    )
    active_this_month = sum(
        1
        for b in budgets
        if b.period_start.year == now.year
        and b.period_start.month == now.month
        and b.start_date <= now
    )
    savings = sum(max(0, b.remaining_cents) for b in budgets)
    on_track = sum(
        1 for b in budgets if not b.is_over_budget and b.progress < ON_TRACK_THRESHOLD
    )
    return {
        "budgets": [asdict(b) for b in budgets],
        "total_progress": total_progress,
        "total_budget_amount_cents": total_amount,
        "total_spent_cents": spent,
        "active_budgets_this_month": active_this_month,
        "savings_achieved_cents": savings,
        "days_until_reset": days_until_reset(budgets, now),
        "on_track_budgets": on_track,
        "budget_health": asdict(calculate_budget_health(budgets)),
    }
