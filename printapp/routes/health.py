from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from printapp.extensions import db

bp = Blueprint("health", __name__, url_prefix="/health")


@bp.get("")
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except OperationalError as exc:
        db.session.rollback()
        current_app.logger.error("Health check could not reach the database: %s", exc)
        return jsonify({"status": "DOWN", "database": False, "error": str(exc.orig)}), 503
    if not current_app.config.get("DATABASE_AVAILABLE", True):
        error = current_app.config.get("DATABASE_ERROR")
        return jsonify({"status": "DEGRADED", "database": True, "error": error}), 503
    return jsonify({"status": "OK", "database": True})
