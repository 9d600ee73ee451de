from flask import Flask, current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from config import Config

from . import models  # ensure models are registered with SQLAlchemy
from .cli import register_cli
from .extensions import db
from .routes import conversion, errors, health, master_data, operations, orders, schedule
from .utils.logging import configure_logging


def create_app(config_override=None):
    app = Flask(__name__)

    # load configuration from environment variables
    app.config.from_object(Config)
    if config_override:
        app.config.update(config_override)

    app.config.setdefault("DATABASE_AVAILABLE", True)
    app.config.setdefault("DATABASE_ERROR", None)

    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if database_uri.startswith("sqlite:///:memory:"):
        engine_options = app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {})
        connect_args = engine_options.setdefault("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        engine_options.setdefault("poolclass", StaticPool)

    configure_logging(app)
    db.init_app(app)

    # create tables if they do not exist
    with app.app_context():
        try:
            db.create_all()
        except OperationalError as exc:
            root_cause = getattr(exc, "orig", exc)
            details = str(root_cause).strip()
            app.config["DATABASE_AVAILABLE"] = False
            app.config["DATABASE_ERROR"] = (
                "Unable to connect to the configured database. Start the "
                "PostgreSQL service or update the DB_URL setting, then restart."
            )
            current_app.logger.error(
                "Database connection unavailable during startup%s",
                f": {details}" if details else "",
                exc_info=current_app.debug,
            )
            db.session.remove()
        except SQLAlchemyError:
            app.config["DATABASE_AVAILABLE"] = False
            app.config["DATABASE_ERROR"] = "The database schema could not be initialized."
            current_app.logger.exception("Database initialization error")
            db.session.remove()

    app.register_blueprint(errors.bp)
    app.register_blueprint(health.bp)
    app.register_blueprint(orders.bp)
    app.register_blueprint(conversion.bp)
    app.register_blueprint(operations.bp)
    app.register_blueprint(schedule.bp)
    app.register_blueprint(master_data.bp)

    register_cli(app)

    return app
