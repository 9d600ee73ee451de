from __future__ import annotations

from flask import Blueprint, jsonify, request

from printapp.services import conversion as conversion_service
from printapp.services.master_data import load_master_index

bp = Blueprint("conversion", __name__, url_prefix="/conversion")


def _order_ids(payload: dict) -> list[int]:
    order_ids = payload.get("order_ids") or []
    if not isinstance(order_ids, list) or not order_ids:
        raise conversion_service.ConversionError("Select at least one order to convert.")
    try:
        return [int(order_id) for order_id in order_ids]
    except (TypeError, ValueError) as exc:
        raise conversion_service.ConversionError("order_ids must be a list of integers.") from exc


@bp.get("/candidates")
def candidates():
    orders = conversion_service.list_conversion_candidates(search=request.args.get("q"))
    return jsonify({"orders": [order.to_dict() for order in orders]})


@bp.post("/preview")
def preview():
    payload = request.get_json(silent=True) or {}
    plan = conversion_service.plan_conversion(_order_ids(payload), load_master_index())
    return jsonify(
        {
            "succeeded": [row.as_dict() for row in plan.batch.succeeded],
            "failed": [failure.as_dict() for failure in plan.failed],
            "skipped": plan.skipped,
            "summary": plan.batch.summary(),
        }
    )


@bp.post("/run")
def run():
    payload = request.get_json(silent=True) or {}
    result = conversion_service.convert_orders(_order_ids(payload))
    body = result.as_dict()
    if payload.get("route_failures"):
        body["moved_to_pending"] = conversion_service.route_failures_to_pending(result.plan.failed)
    return jsonify(body)


@bp.post("/failures")
def park_failures():
    payload = request.get_json(silent=True) or {}
    moved = conversion_service.route_failures_to_pending(payload.get("failures") or [])
    return jsonify({"moved_to_pending": moved})


@bp.post("/<int:order_id>/revert")
def revert(order_id: int):
    removed = conversion_service.revert_conversion(order_id)
    return jsonify({"order_id": order_id, "operations_removed": removed})
