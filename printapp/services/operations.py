"""Edit the converted operation list of a single order."""

from __future__ import annotations

import logging

from sqlalchemy import or_

from printapp.conversion import MINIMUM_RUN_MINUTES, operation_minutes, select_multiplier
from printapp.extensions import db
from printapp.models import DailyOrder, StationTimeSummary
from printapp.normalize import normalize_text, parse_number
from printapp.sequencing import END, START, SequenceError, ordered, plan_insert, renumber
from printapp.services.errors import NotFoundError, ServiceError

logger = logging.getLogger(__name__)

EDITABLE_OPERATION_FIELDS = ("station", "op_name", "std_time", "total_time_min", "item_name", "basis_text")
NUMERIC_OPERATION_FIELDS = {"std_time", "total_time_min"}

MANUAL_BASIS = "manual entry"


class OperationEditError(ServiceError):
    pass


class OperationNotFoundError(NotFoundError):
    pass


def _get_operation(op_id: int) -> StationTimeSummary:
    row = db.session.get(StationTimeSummary, op_id)
    if row is None:
        raise OperationNotFoundError(f"Operation {op_id} was not found.")
    return row


def list_order_operations(source_order_id: int) -> list[StationTimeSummary]:
    rows = StationTimeSummary.query.filter_by(source_order_id=source_order_id).all()
    return ordered(rows)


def list_converted_orders(search: str | None = None, limit: int = 200) -> list[dict]:
    """Operation rows grouped by their source order, most recent first."""

    query = StationTimeSummary.query
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                StationTimeSummary.order_number.ilike(pattern),
                StationTimeSummary.item_code.ilike(pattern),
                StationTimeSummary.item_name.ilike(pattern),
                StationTimeSummary.station.ilike(pattern),
                StationTimeSummary.customer.ilike(pattern),
            )
        )
    rows = query.order_by(
        StationTimeSummary.source_order_id.desc(), StationTimeSummary.id
    ).all()

    groups: dict[int, dict] = {}
    for row in rows:
        group = groups.get(row.source_order_id)
        if group is None:
            if len(groups) >= limit:
                break
            group = {
                "source_order_id": row.source_order_id,
                "order_number": row.order_number,
                "item_code": row.item_code,
                "item_name": row.item_name,
                "delivery_date": row.delivery_date,
                "customer": row.customer,
                "operations": [],
            }
            groups[row.source_order_id] = group
        group["operations"].append(row)

    for group in groups.values():
        group["operations"] = [op.to_dict() for op in ordered(group["operations"])]
        group["total_time_min"] = round(
            sum(op["total_time_min"] for op in group["operations"]), 2
        )
    return list(groups.values())


def _manual_minutes(value) -> float:
    """Operator-entered minutes, held to the same floor and rounding as converted rows."""

    minutes = parse_number(value, default=-1)
    if minutes < 0:
        raise OperationEditError("total_time_min must be a non-negative number.")
    if minutes < MINIMUM_RUN_MINUTES:
        logger.info("Manual time %s raised to the %s minute minimum", value, MINIMUM_RUN_MINUTES)
    return operation_minutes(minutes, 1)


def _coerce_position(position):
    if position in (None, "", END):
        return END
    if position == START:
        return START
    try:
        return int(position)
    except (TypeError, ValueError) as exc:
        raise OperationEditError(
            f"Insert position must be 'start', 'end' or an operation id, not {position!r}."
        ) from exc


def insert_operation(source_order_id: int, position, fields: dict) -> StationTimeSummary:
    """Insert a manual operation and renumber the whole order to 10, 20, 30...

    ``position`` is ``"start"``, ``"end"`` or the id of the operation the new
    row should follow.
    """

    order = db.session.get(DailyOrder, source_order_id)
    if order is None:
        raise OperationNotFoundError(f"Order {source_order_id} was not found.")

    op_name = normalize_text(fields.get("op_name"))
    station = normalize_text(fields.get("station"))
    if not op_name:
        raise OperationEditError("op_name is required for a new operation.")
    if not station:
        raise OperationEditError("station is required for a new operation.")

    current = list_order_operations(source_order_id)
    try:
        plan = plan_insert(current, _coerce_position(position))
    except SequenceError as exc:
        raise OperationEditError(str(exc)) from exc

    std_time = parse_number(fields.get("std_time"))
    if fields.get("total_time_min") not in (None, ""):
        total = _manual_minutes(fields.get("total_time_min"))
        basis_text = normalize_text(fields.get("basis_text")) or MANUAL_BASIS
    else:
        multiplier = select_multiplier(station, order.quantity, order.plate_count)
        total = operation_minutes(std_time, multiplier.value)
        basis_text = multiplier.basis_text

    by_id = {row.id: row for row in current}
    for change in plan.updates:
        by_id[change.id].sequence = change.sequence

    new_row = StationTimeSummary(
        source_order_id=order.id,
        order_number=order.order_number,
        doc_type=order.doc_type,
        item_code=order.item_code,
        item_name=order.item_name,
        quantity=order.quantity,
        plate_count=order.plate_count,
        delivery_date=order.delivery_date,
        designer=order.designer,
        customer=order.customer,
        handler=order.handler,
        issuer=order.issuer,
        sequence=plan.new_sequence,
        station=station,
        op_name=op_name,
        basis_text=basis_text,
        std_time=std_time,
        total_time_min=total,
    )
    db.session.add(new_row)
    db.session.commit()
    logger.info(
        "Inserted operation %s into order %s at sequence %s (%s rows renumbered)",
        op_name,
        order.order_number,
        plan.new_sequence,
        len(plan.updates),
    )
    return new_row


def delete_operation(op_id: int) -> int:
    """Remove one operation; the remaining sequence numbers keep their gaps."""

    row = _get_operation(op_id)
    source_order_id = row.source_order_id
    db.session.delete(row)
    db.session.commit()
    return source_order_id


def renumber_order_operations(source_order_id: int) -> int:
    """Rewrite an order's sequences to 10, 20, 30... Returns rows changed."""

    rows = list_order_operations(source_order_id)
    by_id = {row.id: row for row in rows}
    changed = 0
    for change in renumber(rows):
        row = by_id[change.id]
        if row.sequence != change.sequence:
            row.sequence = change.sequence
            changed += 1
    db.session.commit()
    logger.info("Renumbered order %s: %s of %s rows changed", source_order_id, changed, len(rows))
    return changed


def update_operation(op_id: int, changes: dict) -> StationTimeSummary:
    row = _get_operation(op_id)
    unknown = sorted(set(changes) - set(EDITABLE_OPERATION_FIELDS))
    if unknown:
        raise OperationEditError("Fields cannot be edited: " + ", ".join(unknown))

    for name, value in changes.items():
        if name == "total_time_min":
            row.total_time_min = _manual_minutes(value)
        elif name in NUMERIC_OPERATION_FIELDS:
            number = parse_number(value, default=-1)
            if number < 0:
                raise OperationEditError(f"{name} must be a non-negative number.")
            setattr(row, name, number)
        else:
            setattr(row, name, normalize_text(value))
    db.session.commit()
    return row
