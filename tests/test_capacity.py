import os
import sys
from datetime import date

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from printapp.capacity import capacity, capacity_snapshot, usage_by_machine_day
from printapp.records import Machine

MONDAY = date(2024, 5, 6)
TUESDAY = date(2024, 5, 7)


def _op(op_id, machine_id, day, minutes):
    return {
        "id": op_id,
        "production_machine_id": machine_id,
        "scheduled_date": day,
        "total_time_min": minutes,
    }


def _ops():
    return [
        _op(1, 1, MONDAY, 200),
        _op(2, 1, MONDAY, 120.5),
        _op(3, 1, TUESDAY, 60),
        _op(4, 2, MONDAY, 300),
        _op(5, None, None, 999),
        _op(6, 1, None, 50),
    ]


def test_capacity_sums_only_matching_machine_and_day():
    machine = Machine(id=1, name="HP Indigo", daily_minutes=480)

    snapshot = capacity(machine, MONDAY, _ops())

    assert snapshot.used == 320.5
    assert snapshot.remaining == 159.5
    assert not snapshot.overloaded
    assert snapshot.operation_count == 2


def test_capacity_flags_overload_without_blocking():
    machine = Machine(id=2, name="Laser", daily_minutes=240)
    snapshot = capacity(machine, "2024-05-06", _ops())
    assert snapshot.used == 300
    assert snapshot.remaining == -60
    assert snapshot.overloaded


def test_empty_day_has_full_capacity():
    machine = Machine(id=1, name="HP Indigo", daily_minutes=480)
    snapshot = capacity(machine, date(2024, 5, 8), _ops())
    assert snapshot.used == 0
    assert snapshot.remaining == 480


def test_reassignment_changes_exactly_two_aggregates():
    before = usage_by_machine_day(_ops())

    moved = _ops()
    moved[1] = _op(2, 2, TUESDAY, 120.5)
    after = usage_by_machine_day(moved)

    changed = {key for key in set(before) | set(after) if before.get(key) != after.get(key)}
    assert changed == {(1, MONDAY), (2, TUESDAY)}
    assert after[(1, MONDAY)] == 200
    assert after[(2, TUESDAY)] == 120.5


def test_unscheduling_removes_minutes_from_the_old_day():
    ops = _ops()
    ops[0] = _op(1, None, None, 200)
    machine = Machine(id=1, name="HP Indigo", daily_minutes=480)
    assert capacity(machine, MONDAY, ops).used == 120.5


def test_capacity_snapshot_covers_each_day():
    machine = Machine(id=1, name="HP Indigo", daily_minutes=480)
    snapshots = capacity_snapshot(machine, [MONDAY, TUESDAY], _ops())
    assert [item.used for item in snapshots] == [320.5, 60]
    assert snapshots[0].as_dict()["date"] == "2024-05-06"
