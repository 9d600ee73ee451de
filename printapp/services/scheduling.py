"""Section assignment, machine/day scheduling and the capacity board."""

from __future__ import annotations

import logging
from datetime import date, timedelta

from flask import current_app
from sqlalchemy import or_

from printapp.capacity import as_date, capacity
from printapp.extensions import db
from printapp.models import FactoryCalendarDay, ProductionMachine, StationTimeSummary
from printapp.normalize import normalize_text, parse_number
from printapp.services.errors import NotFoundError, ServiceError

logger = logging.getLogger(__name__)

PRODUCTION_SECTIONS = (
    {"id": "printing", "name": "印刷"},
    {"id": "laser", "name": "雷切"},
    {"id": "post", "name": "後加工"},
    {"id": "packaging", "name": "包裝"},
    {"id": "outsourced", "name": "委外"},
    {"id": "changping", "name": "常平"},
)
SECTION_IDS = tuple(section["id"] for section in PRODUCTION_SECTIONS)

# Machine category → the station types a machine in that category can serve.
STATION_MAPPING = {
    "印刷": ("印刷站2F", "印刷站6F"),
    "雷切": ("雷切站",),
    "後加工": ("後加工站",),
    "包裝": ("包裝站",),
    "委外": ("轉運站",),
    "常平": ("印刷站(常平)", "雷切站(常平)", "後加工站(常平)", "包裝站(常平)"),
}

CATEGORY_SECTIONS = {section["name"]: section["id"] for section in PRODUCTION_SECTIONS}

HOLIDAY_NOTE = "休假"
MAKEUP_DAY_NOTE = "補班/加班"

MACHINE_FIELDS = ("name", "category", "station_type", "section_id", "daily_minutes", "is_active")


class SchedulingError(ServiceError):
    pass


class SchedulingNotFoundError(NotFoundError):
    pass


def _get_operation(op_id: int) -> StationTimeSummary:
    row = db.session.get(StationTimeSummary, op_id)
    if row is None:
        raise SchedulingNotFoundError(f"Operation {op_id} was not found.")
    return row


def _get_machine(machine_id: int) -> ProductionMachine:
    machine = db.session.get(ProductionMachine, machine_id)
    if machine is None:
        raise SchedulingNotFoundError(f"Machine {machine_id} was not found.")
    return machine


def _coerce_id(value, label: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise SchedulingError(f"{label} id must be an integer, not {value!r}.") from exc


def _parse_day(value) -> date:
    try:
        day = as_date(value)
    except ValueError as exc:
        raise SchedulingError(f"{value!r} is not a valid date (use YYYY-MM-DD).") from exc
    if day is None:
        raise SchedulingError("A date is required.")
    return day


def week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def list_unassigned_operations(search: str | None = None) -> list[dict]:
    """Converted operations that have not been given a section, by order."""

    query = StationTimeSummary.query.filter(StationTimeSummary.assigned_section.is_(None))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                StationTimeSummary.order_number.ilike(pattern),
                StationTimeSummary.item_name.ilike(pattern),
                StationTimeSummary.station.ilike(pattern),
                StationTimeSummary.customer.ilike(pattern),
            )
        )
    rows = query.order_by(
        StationTimeSummary.source_order_id, StationTimeSummary.sequence, StationTimeSummary.id
    ).all()

    groups: dict = {}
    for row in rows:
        group = groups.setdefault(
            row.source_order_id,
            {
                "source_order_id": row.source_order_id,
                "order_number": row.order_number,
                "item_name": row.item_name,
                "customer": row.customer,
                "delivery_date": row.delivery_date,
                "operations": [],
            },
        )
        group["operations"].append(row.to_dict())
    return list(groups.values())


def assign_sections(selections: dict) -> int:
    """Apply ``{operation_id: section_id}``; every section must be known.

    A ``None`` or blank section sends the operation back to the unassigned
    queue and drops any machine/day booking it had.
    """

    selections = {
        _coerce_id(op_id, "Operation"): normalize_text(section) or None
        for op_id, section in selections.items()
    }
    unknown = sorted(
        {section for section in selections.values() if section is not None} - set(SECTION_IDS)
    )
    if unknown:
        raise SchedulingError("Unknown production section(s): " + ", ".join(unknown))

    rows = {
        row.id: row
        for row in StationTimeSummary.query.filter(StationTimeSummary.id.in_(list(selections)))
    }
    missing = sorted(op_id for op_id in selections if op_id not in rows)
    if missing:
        raise SchedulingNotFoundError(
            "Operation(s) not found: " + ", ".join(str(op_id) for op_id in missing)
        )

    released = 0
    for op_id, section_id in selections.items():
        row = rows[op_id]
        row.assigned_section = section_id
        if section_id is None:
            row.production_machine_id = None
            row.scheduled_date = None
            released += 1
    db.session.commit()
    logger.info(
        "Assigned %s operations to sections (%s sent back to unassigned)",
        len(selections) - released,
        released,
    )
    return len(selections)


def list_assigned_operations(section_id: str | None = None) -> list[StationTimeSummary]:
    """Every operation already given a section, newest first."""

    query = StationTimeSummary.query.filter(StationTimeSummary.assigned_section.isnot(None))
    if section_id:
        if section_id not in SECTION_IDS:
            raise SchedulingNotFoundError(f"Unknown production section {section_id}.")
        query = query.filter(StationTimeSummary.assigned_section == section_id)
    return query.order_by(
        StationTimeSummary.created_at.desc(), StationTimeSummary.id.desc()
    ).all()


def schedule_operation(op_id: int, machine_id=None, scheduled_date=None) -> StationTimeSummary:
    """Place an operation on a machine/day, or clear both to unschedule it.

    Overloading a day is allowed; the board reports it.
    """

    row = _get_operation(op_id)
    if machine_id in (None, "") and scheduled_date in (None, ""):
        row.production_machine_id = None
        row.scheduled_date = None
        db.session.commit()
        logger.info("Operation %s returned to unscheduled", op_id)
        return row

    if machine_id in (None, "") or scheduled_date in (None, ""):
        raise SchedulingError("Select both a machine and a date, or clear both to unschedule.")

    machine = _get_machine(_coerce_id(machine_id, "Machine"))
    day = _parse_day(scheduled_date)
    row.production_machine_id = machine.id
    row.scheduled_date = day
    db.session.commit()

    snapshot = machine_capacity(machine.id, row.scheduled_date)
    if snapshot["overloaded"]:
        logger.warning(
            "Machine %s is over capacity on %s by %.2f minutes",
            machine.name,
            row.scheduled_date.isoformat(),
            -snapshot["remaining"],
        )
    return row


def machine_capacity(machine_id: int, day) -> dict:
    """Recompute one machine's load for one day from the stored rows."""

    machine = _get_machine(_coerce_id(machine_id, "Machine"))
    target = _parse_day(day)
    rows = StationTimeSummary.query.filter_by(
        production_machine_id=machine.id, scheduled_date=target
    ).all()
    return capacity(machine.to_record(), target, rows).as_dict()


def holiday_overrides(start: date, end: date) -> dict[date, FactoryCalendarDay]:
    rows = FactoryCalendarDay.query.filter(
        FactoryCalendarDay.date >= start, FactoryCalendarDay.date <= end
    ).all()
    return {row.date: row for row in rows}


def is_holiday(day: date, overrides: dict[date, FactoryCalendarDay]) -> bool:
    override = overrides.get(day)
    if override is not None:
        return bool(override.is_holiday)
    return day.weekday() >= 5


def board_days(start: date, weeks: int, show_weekends: bool) -> list[date]:
    first = week_start(start)
    days = [first + timedelta(days=offset) for offset in range(weeks * 7)]
    if show_weekends:
        return days
    return [day for day in days if day.weekday() < 5]


def section_board(
    section_id: str,
    machine_id=None,
    start=None,
    weeks: int | None = None,
    show_weekends: bool = False,
) -> dict:
    """Everything the drag-and-drop board for one section needs.

    The window starts on the Monday of ``start`` (today by default).
    """

    if section_id not in SECTION_IDS:
        raise SchedulingNotFoundError(f"Unknown production section {section_id}.")
    weeks = weeks or current_app.config.get("SCHEDULE_WEEKS", 2)
    start_day = _parse_day(start) if start else date.today()
    days = board_days(start_day, weeks, show_weekends)

    machines = (
        ProductionMachine.query.filter_by(section_id=section_id)
        .order_by(ProductionMachine.id)
        .all()
    )
    machine = None
    if machine_id not in (None, ""):
        machine = _get_machine(_coerce_id(machine_id, "Machine"))
    elif machines:
        machine = machines[0]

    rows = StationTimeSummary.query.filter_by(assigned_section=section_id).all()
    unscheduled = [row.to_dict() for row in rows if row.scheduled_date is None]

    overrides = holiday_overrides(days[0], days[-1]) if days else {}
    # Capacity counts everything booked on the machine, whatever its section.
    booked = []
    if machine is not None and days:
        booked = StationTimeSummary.query.filter(
            StationTimeSummary.production_machine_id == machine.id,
            StationTimeSummary.scheduled_date >= days[0],
            StationTimeSummary.scheduled_date <= days[-1],
        ).order_by(StationTimeSummary.id).all()

    calendar = []
    for day in days:
        entry = {"date": day.isoformat(), "is_holiday": is_holiday(day, overrides)}
        if machine is not None:
            entry["operations"] = [row.to_dict() for row in booked if row.scheduled_date == day]
            entry["capacity"] = capacity(machine.to_record(), day, booked).as_dict()
        calendar.append(entry)

    return {
        "section_id": section_id,
        "machines": [item.to_dict() for item in machines],
        "machine": machine.to_dict() if machine else None,
        "unscheduled": unscheduled,
        "days": calendar,
    }


def list_machines(section_id: str | None = None) -> list[ProductionMachine]:
    query = ProductionMachine.query
    if section_id:
        query = query.filter_by(section_id=section_id)
    return query.order_by(
        ProductionMachine.category, ProductionMachine.station_type, ProductionMachine.id
    ).all()


def _apply_machine_fields(machine: ProductionMachine, fields: dict) -> None:
    unknown = sorted(set(fields) - set(MACHINE_FIELDS))
    if unknown:
        raise SchedulingError("Fields cannot be edited: " + ", ".join(unknown))

    for name, value in fields.items():
        if name == "daily_minutes":
            minutes = parse_number(value, default=-1)
            if minutes < 0:
                raise SchedulingError("daily_minutes must be a non-negative number.")
            machine.daily_minutes = minutes
        elif name == "is_active":
            machine.is_active = bool(value)
        elif name == "section_id":
            section_id = normalize_text(value) or None
            if section_id is not None and section_id not in SECTION_IDS:
                raise SchedulingError(f"Unknown production section {section_id}.")
            machine.section_id = section_id
        else:
            setattr(machine, name, normalize_text(value))


def create_machine(fields: dict) -> ProductionMachine:
    name = normalize_text(fields.get("name"))
    if not name:
        raise SchedulingError("Machine name is required.")

    machine = ProductionMachine(
        daily_minutes=current_app.config.get("DEFAULT_DAILY_MINUTES", 480),
        is_active=True,
    )
    _apply_machine_fields(machine, fields)
    if machine.category and machine.category not in STATION_MAPPING:
        raise SchedulingError(f"Unknown machine category {machine.category}.")
    if not machine.station_type and machine.category:
        machine.station_type = STATION_MAPPING[machine.category][0]
    if machine.section_id is None and machine.category:
        machine.section_id = CATEGORY_SECTIONS.get(machine.category)

    db.session.add(machine)
    db.session.commit()
    logger.info("Created machine %s (%s)", machine.name, machine.section_id)
    return machine


def update_machine(machine_id: int, fields: dict) -> ProductionMachine:
    machine = _get_machine(machine_id)
    _apply_machine_fields(machine, fields)
    db.session.commit()
    return machine


def delete_machine(machine_id: int) -> None:
    """Delete a machine; anything booked on it goes back to unscheduled."""

    machine = _get_machine(machine_id)
    released = StationTimeSummary.query.filter_by(production_machine_id=machine.id).update(
        {"production_machine_id": None, "scheduled_date": None}, synchronize_session=False
    )
    db.session.delete(machine)
    db.session.commit()
    logger.info("Deleted machine %s; %s operations unscheduled", machine.name, released)


def toggle_holiday(day, note: str | None = None) -> dict:
    """Flip a day between working day and holiday.

    Weekends default to holidays and weekdays to working days; a toggle that
    lands back on the default removes the override instead of storing it.
    """

    target = _parse_day(day)
    weekend = target.weekday() >= 5
    override = FactoryCalendarDay.query.filter_by(date=target).first()
    currently_holiday = override.is_holiday if override is not None else weekend
    now_holiday = not currently_holiday

    if now_holiday == weekend:
        if override is not None:
            db.session.delete(override)
        stored_note = None
    else:
        stored_note = note or (HOLIDAY_NOTE if now_holiday else MAKEUP_DAY_NOTE)
        if override is None:
            override = FactoryCalendarDay(date=target)
            db.session.add(override)
        override.is_holiday = now_holiday
        override.note = stored_note
    db.session.commit()
    return {"date": target.isoformat(), "is_holiday": now_holiday, "note": stored_note}
