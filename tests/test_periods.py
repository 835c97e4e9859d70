from datetime import date, datetime, time

import pytest

from models import Recurrence
from periods import FALLBACK_RECURRENCE, calculate_period, days_in_month


NOW = datetime(2024, 3, 15, 10, 30)  # a Friday


def test_monthly_period_covers_calendar_month():
    period = calculate_period("monthly", NOW)
    assert period.slug == "monthly"
    assert period.start == datetime(2024, 3, 1)
    assert period.end == datetime.combine(datetime(2024, 3, 31).date(), time.max)


@pytest.mark.parametrize(
    "now, monday, sunday",
    [
        (datetime(2024, 3, day, 10, 30), date(2024, 3, 11), date(2024, 3, 17))
        for day in range(11, 18)
    ]
    + [
        (datetime(2024, 12, 30, 0, 0), date(2024, 12, 30), date(2025, 1, 5)),
        (datetime(2024, 12, 31, 23, 59), date(2024, 12, 30), date(2025, 1, 5)),
        (datetime(2025, 1, 1, 8, 0), date(2024, 12, 30), date(2025, 1, 5)),
        (datetime(2025, 1, 5, 23, 59), date(2024, 12, 30), date(2025, 1, 5)),
        (datetime(2025, 1, 6, 0, 0), date(2025, 1, 6), date(2025, 1, 12)),
    ],
)
def test_weekly_period_runs_monday_to_sunday(now, monday, sunday):
    period = calculate_period(Recurrence.weekly, now)
    assert period.start == datetime.combine(monday, time.min)
    assert period.end == datetime.combine(sunday, time.max)
    assert period.start.weekday() == 0
    assert period.end.weekday() == 6


def test_daily_period_is_the_current_day():
    period = calculate_period("daily", NOW)
    assert period.start == datetime(2024, 3, 15)
    assert period.end.date() == NOW.date()


def test_yearly_period_is_calendar_year():
    period = calculate_period("yearly", NOW)
    assert period.start == datetime(2024, 1, 1)
    assert period.end.date() == datetime(2024, 12, 31).date()


def test_unknown_recurrence_falls_back_to_month():
    assert FALLBACK_RECURRENCE == Recurrence.monthly
    period = calculate_period("fortnightly", NOW)
    assert period == calculate_period("monthly", NOW)


def test_leap_february():
    assert days_in_month(2024, 2) == 29
    assert days_in_month(2023, 2) == 28
    period = calculate_period("monthly", datetime(2024, 2, 10))
    assert period.end.date() == datetime(2024, 2, 29).date()
