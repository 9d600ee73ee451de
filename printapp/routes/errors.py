from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from printapp.estimation import EstimationError
from printapp.extensions import db
from printapp.sequencing import SequenceError
from printapp.services.errors import ServiceError
from printapp.utils.tabular_import import TabularImportError

bp = Blueprint("errors", __name__)


def error_response(message: str, status_code: int):
    return jsonify({"error": message}), status_code


@bp.app_errorhandler(ServiceError)
def handle_service_error(error: ServiceError):
    db.session.rollback()
    if error.status_code >= 404:
        current_app.logger.warning("%s %s: %s", request.method, request.path, error.message)
    return error_response(error.message, error.status_code)


@bp.app_errorhandler(TabularImportError)
@bp.app_errorhandler(SequenceError)
@bp.app_errorhandler(EstimationError)
def handle_bad_input(error: ValueError):
    return error_response(str(error), 400)


@bp.app_errorhandler(Exception)
def handle_exception(error: Exception):
    # Allow HTTP errors that are not 500 to propagate to their default handlers.
    if isinstance(error, HTTPException) and error.code != 500:
        return error

    db.session.rollback()
    current_app.logger.exception("Unhandled exception", exc_info=error)

    error_message = "Internal Server Error"
    if isinstance(error, HTTPException) and error.description:
        error_message = error.description
    elif str(error):
        error_message = str(error)
    return error_response(error_message, 500)
