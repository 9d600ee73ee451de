from __future__ import annotations

from flask import Blueprint, jsonify, request

from printapp.records import OrderRecord
from printapp.services import order_intake
from printapp.services.master_data import load_master_index
from printapp.utils.tabular_import import parse_tabular_upload
from printapp.validation import validate

bp = Blueprint("orders", __name__, url_prefix="/orders")


@bp.post("/upload")
def upload_orders():
    upload = request.files.get("file")
    csv_text = parse_tabular_upload(upload)
    records = order_intake.parse_order_rows(csv_text)
    result = order_intake.import_orders(records, filename=upload.filename)
    return jsonify(result.as_dict()), 201


@bp.get("/staging")
def staged_orders():
    rows = order_intake.list_staged_orders()
    return jsonify({"orders": [row.to_dict() for row in rows]})


@bp.patch("/staging/<int:order_id>")
def edit_staged_order(order_id: int):
    row = order_intake.update_staged_order(order_id, request.get_json(silent=True) or {})
    return jsonify(row.to_dict())


@bp.delete("/staging/<int:order_id>")
def remove_staged_order(order_id: int):
    order_intake.delete_staged_order(order_id)
    return "", 204


@bp.delete("/staging")
def clear_staged_orders():
    return jsonify({"removed": order_intake.clear_staging()})


@bp.post("/staging/commit")
def commit_staged_orders():
    return jsonify(order_intake.commit_staged_orders().as_dict())


@bp.post("/validate")
def validate_order():
    """Dry-run the routing rules for an order typed into the edit grid."""

    record = OrderRecord.from_mapping(request.get_json(silent=True) or {})
    result = validate(record, load_master_index())
    return jsonify(
        {
            "status": result.status,
            "reasons": list(result.reasons),
            "log_msg": result.log_msg,
            "route_id": result.route_id,
        }
    )


@bp.get("/history")
def order_history():
    limit = request.args.get("limit", default=500, type=int)
    rows = order_intake.list_daily_orders(request.args.get("q"), limit=limit)
    return jsonify({"orders": [row.to_dict() for row in rows]})


@bp.get("/pending")
def pending_corrections():
    queues = order_intake.list_pending_corrections()
    return jsonify({name: [row.to_dict() for row in rows] for name, rows in queues.items()})


@bp.post("/pending/<int:order_id>/return")
def return_to_staging(order_id: int):
    staged = order_intake.return_order_to_staging(order_id, request.get_json(silent=True) or {})
    return jsonify(staged.to_dict())


@bp.post("/pending/<int:order_id>/resubmit")
def resubmit_conversion(order_id: int):
    order = order_intake.resubmit_conversion(order_id, request.get_json(silent=True) or {})
    return jsonify(order.to_dict())
