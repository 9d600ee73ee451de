"""Per machine, per day load against configured daily capacity."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping

from printapp.normalize import parse_number


@dataclass(frozen=True)
class CapacitySnapshot:
    machine_id: Any
    day: date
    capacity: float
    used: float
    remaining: float
    overloaded: bool
    operation_count: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "machine_id": self.machine_id,
            "date": self.day.isoformat(),
            "capacity": self.capacity,
            "used": self.used,
            "remaining": self.remaining,
            "overloaded": self.overloaded,
            "operation_count": self.operation_count,
        }


def _attr(row: Any, name: str):
    if isinstance(row, Mapping):
        return row.get(name)
    return getattr(row, name, None)


def as_date(value) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def _minutes_sum(values: Iterable) -> float:
    total = sum((Decimal(str(parse_number(value))) for value in values), Decimal("0"))
    return float(total)


def capacity(machine, day, assigned_ops: Iterable[Any]) -> CapacitySnapshot:
    """Sum the minutes booked on ``machine`` for ``day``.

    Only rows whose machine and date both match are counted. The result is
    advisory: an overloaded day is reported, never refused.
    """

    target_day = as_date(day)
    machine_id = _attr(machine, "id")
    matching = [
        op
        for op in assigned_ops
        if _attr(op, "production_machine_id") is not None
        and _attr(op, "production_machine_id") == machine_id
        and as_date(_attr(op, "scheduled_date")) == target_day
    ]
    daily_minutes = parse_number(_attr(machine, "daily_minutes"))
    used = _minutes_sum(_attr(op, "total_time_min") for op in matching)
    remaining = float(Decimal(str(daily_minutes)) - Decimal(str(used)))
    return CapacitySnapshot(
        machine_id=machine_id,
        day=target_day,
        capacity=daily_minutes,
        used=used,
        remaining=remaining,
        overloaded=remaining < 0,
        operation_count=len(matching),
    )


def usage_by_machine_day(ops: Iterable[Any]) -> dict[tuple[Any, date], float]:
    """Booked minutes keyed by ``(machine_id, date)`` for every scheduled row."""

    buckets: dict[tuple[Any, date], list] = defaultdict(list)
    for op in ops:
        machine_id = _attr(op, "production_machine_id")
        day = as_date(_attr(op, "scheduled_date"))
        if machine_id is None or day is None:
            continue
        buckets[(machine_id, day)].append(_attr(op, "total_time_min"))
    return {key: _minutes_sum(values) for key, values in buckets.items()}


def capacity_snapshot(machine, days: Iterable, ops: Iterable[Any]) -> list[CapacitySnapshot]:
    rows = list(ops)
    return [capacity(machine, day, rows) for day in days]
