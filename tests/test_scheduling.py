import os
import sys
from datetime import date

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from printapp import create_app
from printapp.extensions import db
from printapp.models import DailyOrder, FactoryCalendarDay, StationTimeSummary
from printapp.records import OrderRecord
from printapp.services.scheduling import (
    HOLIDAY_NOTE,
    MAKEUP_DAY_NOTE,
    SchedulingError,
    SchedulingNotFoundError,
    assign_sections,
    board_days,
    create_machine,
    delete_machine,
    list_assigned_operations,
    list_machines,
    list_unassigned_operations,
    machine_capacity,
    schedule_operation,
    section_board,
    toggle_holiday,
    update_machine,
)

MONDAY = date(2026, 10, 19)
SATURDAY = date(2026, 10, 24)


@pytest.fixture
def app():
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})
    with app.app_context():
        db.create_all()
        db.session.expire_on_commit = False
        yield app
        db.session.remove()
        db.drop_all()


def _operations(minutes=(300, 250)):
    order = DailyOrder.from_record(
        OrderRecord(order_number="W001", item_code="AB-100", item_name="海報", quantity=10),
        is_converted=True,
    )
    db.session.add(order)
    db.session.commit()
    rows = []
    for position, total in enumerate(minutes, start=1):
        row = StationTimeSummary(
            source_order_id=order.id,
            order_number="W001",
            item_name="海報",
            sequence=position * 10,
            station="印刷站2F",
            op_name=f"印刷{position}",
            total_time_min=total,
        )
        db.session.add(row)
        rows.append(row)
    db.session.commit()
    return rows


def test_assign_sections_moves_rows_out_of_unassigned(app):
    with app.app_context():
        first, second = _operations()

        groups = list_unassigned_operations()
        assert len(groups) == 1
        assert [op["id"] for op in groups[0]["operations"]] == [first.id, second.id]

        assert assign_sections({str(first.id): "printing"}) == 1
        remaining = list_unassigned_operations()
        assert [op["id"] for op in remaining[0]["operations"]] == [second.id]
        assert list_unassigned_operations(search="nothing") == []


def test_assign_sections_rejects_unknown_sections_and_rows(app):
    with app.app_context():
        first, _ = _operations()

        with pytest.raises(SchedulingError):
            assign_sections({first.id: "painting"})
        with pytest.raises(SchedulingNotFoundError):
            assign_sections({999: "printing"})
        assert db.session.get(StationTimeSummary, first.id).assigned_section is None


def test_schedule_and_capacity(app):
    with app.app_context():
        first, second = _operations()
        machine = create_machine({"name": "Heidelberg", "category": "印刷"})

        schedule_operation(first.id, machine.id, MONDAY.isoformat())
        schedule_operation(second.id, str(machine.id), MONDAY)

        snapshot = machine_capacity(machine.id, MONDAY)
        assert snapshot["capacity"] == 480
        assert snapshot["used"] == 550
        assert snapshot["remaining"] == -70
        assert snapshot["overloaded"] is True
        assert snapshot["operation_count"] == 2

        schedule_operation(second.id)
        snapshot = machine_capacity(machine.id, MONDAY)
        assert snapshot["used"] == 300
        assert snapshot["overloaded"] is False
        row = db.session.get(StationTimeSummary, second.id)
        assert row.scheduled_date is None
        assert row.production_machine_id is None


def test_schedule_requires_machine_and_date_together(app):
    with app.app_context():
        first, _ = _operations()
        machine = create_machine({"name": "Heidelberg", "category": "印刷"})

        with pytest.raises(SchedulingError):
            schedule_operation(first.id, machine.id, None)
        with pytest.raises(SchedulingError):
            schedule_operation(first.id, machine.id, "next tuesday")
        with pytest.raises(SchedulingNotFoundError):
            schedule_operation(first.id, 999, MONDAY)
        with pytest.raises(SchedulingNotFoundError):
            schedule_operation(999, machine.id, MONDAY)


def test_board_days_skip_weekends_unless_requested():
    days = board_days(date(2026, 10, 21), 1, show_weekends=False)
    assert days[0] == MONDAY
    assert len(days) == 5

    assert len(board_days(MONDAY, 2, show_weekends=True)) == 14


def test_section_board(app):
    with app.app_context():
        first, second = _operations()
        machine = create_machine({"name": "Heidelberg", "category": "印刷"})
        assign_sections({first.id: "printing", second.id: "printing"})
        schedule_operation(first.id, machine.id, MONDAY)

        board = section_board("printing", start="2026-10-21", weeks=1, show_weekends=True)

        assert board["machine"]["id"] == machine.id
        assert [op["id"] for op in board["unscheduled"]] == [second.id]
        assert [day["date"] for day in board["days"]][0] == "2026-10-19"
        monday = board["days"][0]
        assert [op["id"] for op in monday["operations"]] == [first.id]
        assert monday["capacity"]["used"] == 300
        assert monday["is_holiday"] is False
        assert board["days"][5]["is_holiday"] is True

        with pytest.raises(SchedulingNotFoundError):
            section_board("painting")


def test_toggle_holiday_stores_only_overrides(app):
    with app.app_context():
        result = toggle_holiday(MONDAY)
        assert result == {"date": "2026-10-19", "is_holiday": True, "note": HOLIDAY_NOTE}
        assert FactoryCalendarDay.query.count() == 1

        result = toggle_holiday(MONDAY)
        assert result["is_holiday"] is False
        assert FactoryCalendarDay.query.count() == 0

        result = toggle_holiday(SATURDAY.isoformat())
        assert result == {"date": "2026-10-24", "is_holiday": False, "note": MAKEUP_DAY_NOTE}

        board = section_board("printing", start=SATURDAY, weeks=1, show_weekends=True)
        by_date = {day["date"]: day["is_holiday"] for day in board["days"]}
        assert by_date["2026-10-24"] is False
        assert by_date["2026-10-25"] is True


def test_machine_crud(app):
    with app.app_context():
        machine = create_machine({"name": "Trotec", "category": "雷切", "daily_minutes": 600})

        assert machine.section_id == "laser"
        assert machine.station_type == "雷切站"
        assert machine.daily_minutes == 600
        assert [item.id for item in list_machines("laser")] == [machine.id]

        update_machine(machine.id, {"daily_minutes": "420", "is_active": False})
        assert machine.daily_minutes == 420
        assert machine.is_active is False

        with pytest.raises(SchedulingError):
            update_machine(machine.id, {"daily_minutes": -1})
        with pytest.raises(SchedulingError):
            update_machine(machine.id, {"section_id": "painting"})
        with pytest.raises(SchedulingError):
            create_machine({"category": "雷切"})
        with pytest.raises(SchedulingError):
            create_machine({"name": "Mystery", "category": "焊接"})


def test_delete_machine_unschedules_its_operations(app):
    with app.app_context():
        first, _ = _operations()
        machine = create_machine({"name": "Heidelberg", "category": "印刷"})
        schedule_operation(first.id, machine.id, MONDAY)

        delete_machine(machine.id)

        row = db.session.get(StationTimeSummary, first.id)
        db.session.refresh(row)
        assert row.production_machine_id is None
        assert row.scheduled_date is None
        assert list_machines() == []


def test_unassign_returns_operation_to_the_queue(app):
    with app.app_context():
        first, second = _operations()
        machine = create_machine({"name": "Heidelberg", "category": "印刷"})
        assign_sections({first.id: "printing", second.id: "laser"})
        schedule_operation(first.id, machine.id, MONDAY)

        assert [row.id for row in list_assigned_operations()] == [second.id, first.id]
        assert [row.id for row in list_assigned_operations("laser")] == [second.id]

        assert assign_sections({str(first.id): None, second.id: ""}) == 2

        assert list_assigned_operations() == []
        row = db.session.get(StationTimeSummary, first.id)
        assert row.assigned_section is None
        assert row.production_machine_id is None
        assert row.scheduled_date is None
        assert machine_capacity(machine.id, MONDAY)["used"] == 0
        queued = list_unassigned_operations()
        assert [op["id"] for op in queued[0]["operations"]] == [first.id, second.id]

        with pytest.raises(SchedulingNotFoundError):
            list_assigned_operations("painting")


def test_non_numeric_ids_are_rejected(app):
    with app.app_context():
        first, _ = _operations()

        with pytest.raises(SchedulingError):
            assign_sections({"abc": "printing"})
        with pytest.raises(SchedulingError):
            schedule_operation(first.id, "press-1", MONDAY)
        with pytest.raises(SchedulingError):
            machine_capacity("press-1", MONDAY)
        with pytest.raises(SchedulingError):
            section_board("printing", machine_id="press-1")
