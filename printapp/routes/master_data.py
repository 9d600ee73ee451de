from __future__ import annotations

from flask import Blueprint, jsonify, request

from printapp.estimation import estimate_route, plate_layout
from printapp.services import master_data
from printapp.utils.tabular_import import parse_tabular_upload

bp = Blueprint("master_data", __name__, url_prefix="/master-data")

UPLOAD_FIELDS = ("item_routes", "route_operations", "operation_times")


@bp.get("/summary")
def summary():
    return jsonify(master_data.master_data_summary())


@bp.post("/upload")
def upload():
    """Overwrite whichever master tables have a file in this request."""

    texts = {}
    for name in UPLOAD_FIELDS:
        upload_file = request.files.get(name)
        if upload_file and upload_file.filename:
            texts[f"{name}_csv"] = parse_tabular_upload(upload_file)
    result = master_data.overwrite_master_data(**texts)
    return jsonify({"replaced": result.replaced, "deleted": result.deleted})


@bp.post("/estimate")
def estimate():
    payload = request.get_json(silent=True) or {}
    result = estimate_route(
        payload.get("item_code"),
        master_data.load_master_index(),
        payload.get("quantity"),
        plate_count=payload.get("plate_count"),
        sheet_mode=bool(payload.get("sheet_mode")),
    )
    return jsonify(result.as_dict())


@bp.post("/plate-layout")
def layout():
    payload = request.get_json(silent=True) or {}
    result = plate_layout(
        payload.get("plate_length"),
        payload.get("plate_width"),
        payload.get("product_length"),
        payload.get("product_width"),
        payload.get("quantity"),
    )
    return jsonify(result.__dict__)
