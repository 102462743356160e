import logging

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from app.crm.config import is_production, load_config, validate_production_config
from app.crm.models import Base  # noqa: F401  (registers all tables on Base.metadata)
from app.crm.db import init_db, teardown_db_session
from app.crm.errors import AppError
from app.crm.schema import SchemaManager
from app.crm.tokens import token_service_from_config
from app.crm.routes import bp as routes_bp
from app.crm.auth import bp as auth_bp, load_current_user
from app.crm.modules.accounts.admin import bp as accounts_bp
from app.crm.modules.customers.admin import bp as customers_bp

_PROBE_PATHS = ("/healthz",)


def create_app(config_overrides: dict | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    if config_overrides:
        app.config.update(config_overrides)
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")

    # Production guardrails (fail fast with clear logs)
    validate_production_config(app.config)
    if not is_production(app.config.get("ENV")) and app.config.get("JWT_SECRET") == "change-me":
        app.logger.warning("JWT_SECRET is the development default; never run this profile in production.")

    init_db(app)
    engine = app.extensions["sqlalchemy_engine"]
    app.extensions["schema_manager"] = SchemaManager(engine)
    app.extensions["token_service"] = token_service_from_config(app.config)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(accounts_bp)
    app.register_blueprint(customers_bp)

    @app.before_request
    def _load_user_wrapper():
        return load_current_user()

    @app.before_request
    def _ensure_schema():
        if request.path.startswith(_PROBE_PATHS):
            return None
        app.extensions["schema_manager"].ensure()
        return None

    @app.after_request
    def _request_id_header(response):
        rid = getattr(g, "request_id", None)
        if rid:
            response.headers["X-Request-ID"] = rid
        return response

    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(AppError)
    def _app_error(e: AppError):  # type: ignore[no-redef]
        if e.status_code >= 500:
            app.logger.error("Internal error: %s (request_id=%s)", e.message, getattr(g, "request_id", None))
        return jsonify({"error": e.message}), e.status_code

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        return jsonify({"error": e.name}), e.code or 500

    @app.errorhandler(Exception)
    def _err_500(e):  # type: ignore[no-redef]
        # Stack trace goes to the logs only.
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "Internal server error"}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
