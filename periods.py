import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from models import Recurrence


logger = logging.getLogger(__name__)

# Recurrence tags outside the known set resolve to the calendar month.
FALLBACK_RECURRENCE = Recurrence.monthly


@dataclass(frozen=True)
class Period:
    slug: str
    start: datetime
    end: datetime


def start_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.min)


def end_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.max)


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _month_period(now: datetime) -> Period:
    first = now.date().replace(day=1)
    last = first.replace(day=days_in_month(first.year, first.month))
    return Period(
        Recurrence.monthly.value,
        datetime.combine(first, time.min),
        datetime.combine(last, time.max),
    )


def calculate_period(recurrence: str, now: datetime) -> Period:
    """Return the inclusive accounting period containing ``now``.

    Weeks start on Monday. Any tag other than daily, weekly or yearly gets
    the calendar month, including ``monthly`` itself.
    """
    if recurrence == Recurrence.daily:
        return Period(Recurrence.daily.value, start_of_day(now), end_of_day(now))
    if recurrence == Recurrence.weekly:
        monday = now.date() - timedelta(days=now.weekday())
        sunday = monday + timedelta(days=6)
        return Period(
            Recurrence.weekly.value,
            datetime.combine(monday, time.min),
            datetime.combine(sunday, time.max),
        )
    if recurrence == Recurrence.yearly:
        return Period(
            Recurrence.yearly.value,
            datetime(now.year, 1, 1),
            datetime.combine(date(now.year, 12, 31), time.max),
        )
    if recurrence == Recurrence.monthly:
        return _month_period(now)

    logger.debug(
        f"period_fallback: recurrence={recurrence!r} using={FALLBACK_RECURRENCE.value}"
    )
    return _month_period(now)
