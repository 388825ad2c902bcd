"""Flask application factory."""

from __future__ import annotations

import logging

from flask import Flask, request
from flask_login import current_user
from werkzeug.exceptions import HTTPException

from fichajes.blueprints.adjustments import bp as adjustments_bp
from fichajes.blueprints.auth import bp as auth_bp
from fichajes.blueprints.fichajes import bp as fichajes_bp
from fichajes.blueprints.late_arrivals import bp as late_arrivals_bp
from fichajes.blueprints.main import bp as main_bp
from fichajes.blueprints.schedules import bp as schedules_bp
from fichajes.config import Config
from fichajes.errors import DomainError
from fichajes.extensions import csrf, db, login_manager


def create_app(config_object: type[Config] = Config) -> Flask:
    app = Flask(__name__, instance_relative_config=False)
    app.config.from_object(config_object)
    app.json.ensure_ascii = False
    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")), logging.INFO))

    db.init_app(app)
    login_manager.init_app(app)
    csrf.init_app(app)

    # Ensure model metadata is loaded for migrations and tests.
    from fichajes import models as _models  # noqa: F401

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(fichajes_bp)
    app.register_blueprint(schedules_bp)
    app.register_blueprint(adjustments_bp)
    app.register_blueprint(late_arrivals_bp)

    register_error_handlers(app)
    return app


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def handle_domain_error(exc: DomainError):
        return {"error": exc.message}, exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return {"error": exc.description or exc.name}, exc.code or 500

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        db.session.rollback()
        user_id = current_user.get_id() if current_user and current_user.is_authenticated else None
        app.logger.exception("Unhandled error on %s %s (user=%s)", request.method, request.path, user_id)
        return {"error": "Error interno del servidor"}, 500
