from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Optional


TRACKED_FIELDS: tuple[str, ...] = (
    "title",
    "amount_cents",
    "recurrence",
    "start_date",
    "category",
)


@dataclass(frozen=True)
class BudgetChange:
    field: str
    old_value: Any
    new_value: Any

    def to_json(self) -> dict[str, Any]:
        return {key: _json_value(value) for key, value in asdict(self).items()}


def _read(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _as_instant(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return value
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    return value


def plain_value(value: Any) -> Any:
    # Enum members compare by value so "monthly" and Recurrence.monthly match.
    return getattr(value, "value", value)


def _json_value(value: Any) -> Any:
    value = plain_value(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _json_value(item) for key, item in value.items()}
    return value


def detect_budget_changes(old: Any, new: Any) -> list[BudgetChange]:
    """Field-by-field diff of the tracked budget fields, in a fixed order.

    Start dates are compared as instants, so an ISO string and the equal
    datetime are not a change. Returns an empty list when nothing differs.
    """
    changes: list[BudgetChange] = []
    for name in TRACKED_FIELDS:
        old_value = plain_value(_read(old, name))
        new_value = plain_value(_read(new, name))
        if name == "start_date":
            differs = _as_instant(old_value) != _as_instant(new_value)
        else:
            differs = old_value != new_value
        if differs:
            changes.append(BudgetChange(name, old_value, new_value))
    return changes


def budget_snapshot(record: Any) -> dict[str, Any]:
    return {name: _json_value(_read(record, name)) for name in TRACKED_FIELDS}


def lifecycle_change(
    old: Optional[Any] = None, new: Optional[Any] = None
) -> BudgetChange:
    """Single whole-record change used for creation and deletion entries."""
    return BudgetChange(
        "budget",
        budget_snapshot(old) if old is not None else None,
        budget_snapshot(new) if new is not None else None,
    )
