from __future__ import annotations

import logging
import sys
import uuid
from logging.handlers import RotatingFileHandler
from pathlib import Path

from flask import Flask, g, has_request_context, request

LOG_FORMAT = "%(asctime)s [%(levelname)s] [req=%(request_id)s] %(name)s: %(message)s"
LOG_FILENAME = "printshop_ops_console.log"
REQUEST_ID_HEADER = "X-Request-ID"

# Rotate at 5 MB, keep five old files.
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 5

QUIET_LOGGERS = ("werkzeug", "gunicorn.error")


class RequestIdFilter(logging.Filter):
    """Stamp each record with the id of the request that produced it."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = getattr(g, "request_id", None) if has_request_context() else None
        record.request_id = request_id or "-"
        return True


def assign_request_id() -> None:
    """Reuse an upstream proxy's request id, or mint a short one."""

    incoming = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    g.request_id = incoming[:64] or uuid.uuid4().hex[:12]


def echo_request_id(response):
    request_id = getattr(g, "request_id", None)
    if request_id:
        response.headers[REQUEST_ID_HEADER] = request_id
    return response


def _install(root: logging.Logger, handler: logging.Handler, level: int, request_filter) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(request_filter)
    root.addHandler(handler)


def _log_path(app: Flask) -> Path:
    logs_dir = Path(app.config.get("LOG_DIR") or Path(app.root_path).parent / "logs")
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir / LOG_FILENAME


def configure_logging(app: Flask) -> Path:
    """Send application logs to stdout and a rotating file under ``LOG_DIR``.

    Safe to call for every app the factory builds: a handler is only added
    when an equivalent one is not already on the root logger.
    """

    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO
    log_path = _log_path(app)
    request_filter = RequestIdFilter()

    root = logging.getLogger()
    root.setLevel(level)

    if not any(type(handler) is logging.StreamHandler for handler in root.handlers):
        _install(root, logging.StreamHandler(sys.stdout), level, request_filter)

    file_targets = {
        getattr(handler, "baseFilename", None)
        for handler in root.handlers
        if isinstance(handler, RotatingFileHandler)
    }
    if str(log_path) not in file_targets:
        file_handler = RotatingFileHandler(
            log_path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
        )
        _install(root, file_handler, level, request_filter)

    for handler in app.logger.handlers:
        if not any(isinstance(existing, RequestIdFilter) for existing in handler.filters):
            handler.addFilter(request_filter)
    app.logger.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))
    # SQL echo stays off unless explicitly asked for.
    if not app.config.get("SQLALCHEMY_ECHO"):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    app.before_request(assign_request_id)
    app.after_request(echo_request_id)
    logging.getLogger(__name__).debug("Logging to %s", log_path)
    return log_path
