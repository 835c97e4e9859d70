from datetime import datetime

from audit import budget_snapshot, detect_budget_changes, lifecycle_change
from models import Recurrence


BASE = {
    "title": "Groceries",
    "amount_cents": 50000,
    "recurrence": "monthly",
    "start_date": datetime(2024, 3, 1),
    "category": "Food",
}


def test_identical_records_have_no_changes():
    assert detect_budget_changes(BASE, dict(BASE)) == []


def test_changes_follow_field_order():
    updated = dict(BASE, amount_cents=60000, title="Food")
    changes = detect_budget_changes(BASE, updated)
    assert [c.field for c in changes] == ["title", "amount_cents"]
    assert changes[1].old_value == 50000
    assert changes[1].new_value == 60000


def test_every_tracked_field_reported_in_fixed_order():
    updated = {
        "category": "Travel",
        "start_date": datetime(2024, 4, 1),
        "recurrence": "weekly",
        "amount_cents": 1,
        "title": "Trips",
    }
    changes = detect_budget_changes(BASE, updated)
    assert [c.field for c in changes] == [
        "title",
        "amount_cents",
        "recurrence",
        "start_date",
        "category",
    ]
    assert [c.new_value for c in changes] == [
        "Trips",
        1,
        "weekly",
        datetime(2024, 4, 1),
        "Travel",
    ]


def test_start_date_compared_as_instant():
    updated = dict(BASE, start_date="2024-03-01T00:00:00")
    assert detect_budget_changes(BASE, updated) == []

    moved = dict(BASE, start_date="2024-03-02T00:00:00")
    assert [c.field for c in detect_budget_changes(BASE, moved)] == ["start_date"]


def test_enum_and_string_recurrence_are_equal():
    updated = dict(BASE, recurrence=Recurrence.monthly)
    assert detect_budget_changes(BASE, updated) == []


def test_change_serializes_dates():
    moved = dict(BASE, start_date=datetime(2024, 4, 1))
    (change,) = detect_budget_changes(BASE, moved)
    assert change.to_json() == {
        "field": "start_date",
        "old_value": "2024-03-01T00:00:00",
        "new_value": "2024-04-01T00:00:00",
    }


def test_lifecycle_change_snapshots_record():
    created = lifecycle_change(new=BASE)
    assert created.field == "budget"
    assert created.old_value is None
    assert created.new_value == budget_snapshot(BASE)

    deleted = lifecycle_change(old=BASE).to_json()
    assert deleted["old_value"]["start_date"] == "2024-03-01T00:00:00"
    assert deleted["new_value"] is None
