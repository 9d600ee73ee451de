from __future__ import annotations

from flask import Blueprint, jsonify, request

from printapp.services import operations as operations_service

bp = Blueprint("operations", __name__, url_prefix="/operations")


@bp.get("")
def converted_orders():
    groups = operations_service.list_converted_orders(search=request.args.get("q"))
    return jsonify({"orders": groups})


@bp.get("/orders/<int:source_order_id>")
def order_operations(source_order_id: int):
    rows = operations_service.list_order_operations(source_order_id)
    return jsonify({"operations": [row.to_dict() for row in rows]})


@bp.post("/orders/<int:source_order_id>")
def insert_operation(source_order_id: int):
    payload = dict(request.get_json(silent=True) or {})
    position = payload.pop("position", "end")
    row = operations_service.insert_operation(source_order_id, position, payload)
    return jsonify(row.to_dict()), 201


@bp.post("/orders/<int:source_order_id>/renumber")
def renumber(source_order_id: int):
    changed = operations_service.renumber_order_operations(source_order_id)
    return jsonify({"source_order_id": source_order_id, "changed": changed})


@bp.patch("/<int:op_id>")
def edit_operation(op_id: int):
    row = operations_service.update_operation(op_id, request.get_json(silent=True) or {})
    return jsonify(row.to_dict())


@bp.delete("/<int:op_id>")
def remove_operation(op_id: int):
    operations_service.delete_operation(op_id)
    return "", 204
