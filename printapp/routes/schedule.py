from __future__ import annotations

from flask import Blueprint, jsonify, request

from printapp.services import scheduling

bp = Blueprint("schedule", __name__, url_prefix="/schedule")


def _truthy(value) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


@bp.get("/sections")
def sections():
    return jsonify(
        {
            "sections": list(scheduling.PRODUCTION_SECTIONS),
            "station_mapping": {key: list(value) for key, value in scheduling.STATION_MAPPING.items()},
        }
    )


@bp.get("/unassigned")
def unassigned():
    return jsonify({"orders": scheduling.list_unassigned_operations(request.args.get("q"))})


@bp.post("/assign")
def assign():
    payload = request.get_json(silent=True) or {}
    selections = payload.get("selections") or {}
    if not isinstance(selections, dict) or not selections:
        raise scheduling.SchedulingError("Choose a section for at least one operation.")
    return jsonify({"assigned": scheduling.assign_sections(selections)})


@bp.get("/board/<section_id>")
def board(section_id: str):
    weeks = request.args.get("weeks", type=int)
    return jsonify(
        scheduling.section_board(
            section_id,
            machine_id=request.args.get("machine_id", type=int),
            start=request.args.get("start"),
            weeks=weeks,
            show_weekends=_truthy(request.args.get("show_weekends")),
        )
    )


@bp.get("/assigned")
def assigned():
    rows = scheduling.list_assigned_operations(request.args.get("section_id"))
    return jsonify({"operations": [row.to_dict() for row in rows]})


@bp.post("/operations/<int:op_id>/unassign")
def unassign(op_id: int):
    scheduling.assign_sections({op_id: None})
    return jsonify({"id": op_id, "assigned_section": None})


@bp.post("/operations/<int:op_id>")
def place_operation(op_id: int):
    payload = request.get_json(silent=True) or {}
    row = scheduling.schedule_operation(
        op_id, payload.get("machine_id"), payload.get("scheduled_date")
    )
    body = row.to_dict()
    if row.production_machine_id is not None:
        body["capacity"] = scheduling.machine_capacity(
            row.production_machine_id, row.scheduled_date
        )
    return jsonify(body)


@bp.get("/machines")
def machines():
    rows = scheduling.list_machines(request.args.get("section_id"))
    return jsonify({"machines": [row.to_dict() for row in rows]})


@bp.post("/machines")
def add_machine():
    machine = scheduling.create_machine(request.get_json(silent=True) or {})
    return jsonify(machine.to_dict()), 201


@bp.patch("/machines/<int:machine_id>")
def edit_machine(machine_id: int):
    machine = scheduling.update_machine(machine_id, request.get_json(silent=True) or {})
    return jsonify(machine.to_dict())


@bp.delete("/machines/<int:machine_id>")
def remove_machine(machine_id: int):
    scheduling.delete_machine(machine_id)
    return "", 204


@bp.get("/machines/<int:machine_id>/capacity")
def capacity(machine_id: int):
    return jsonify(scheduling.machine_capacity(machine_id, request.args.get("date")))


@bp.post("/calendar/<day>/toggle")
def toggle_day(day: str):
    payload = request.get_json(silent=True) or {}
    return jsonify(scheduling.toggle_holiday(day, payload.get("note")))
