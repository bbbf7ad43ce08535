"""
Review API
Flask Application Factory.

Usage:
    from review_api import create_app
    app = create_app()           # defaults to APP_ENV, else "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import SQLAlchemyError

from review_api.config import config
from review_api.middleware.jwt_auth import init_jwt_middleware
from review_api.middleware.logging_config import configure_logging
from review_api.middleware.rate_limiter import init_rate_limit_check, init_rate_limits, rate_limit_key
from review_api.middleware.route_guards import init_route_guards
from review_api.middleware.security_headers import init_security_headers
from review_api.middleware.timing import init_request_timing
from review_api.models import db
from review_api.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[],                     # no global limit, applied per blueprint
    auto_check=False,                      # checked after JWT parsing, see init_rate_limit_check
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Security headers ─────────────────────────────────────────────────
    init_security_headers(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── JWT auth middleware (sets g.identity) ────────────────────────────
    init_jwt_middleware(app)

    # ── Rate limit check (needs g.identity) ──────────────────────────────
    init_rate_limit_check(app, limiter)

    # ── Request guards (input length + Content-Type) ─────────────────────
    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            abort(413, description="Request body too large")
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.content_length and "json" not in ct and "multipart/form-data" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from review_api.models import ai_workflow as _ai_workflow_models  # noqa: F401
    from review_api.models import contact as _contact_models          # noqa: F401
    from review_api.models import review as _review_models            # noqa: F401
    from review_api.models import submission as _submission_models    # noqa: F401

    # ── Auto-create tables outside production (migrations own production) ─
    if config_name != "production":
        with app.app_context():
            try:
                db.create_all()
                app.logger.info("db.create_all() completed successfully")
            except SQLAlchemyError as e:
                app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from review_api.blueprints.ai_workflow_bp import ai_workflow_bp
    from review_api.blueprints.contact_request_bp import contact_request_bp
    from review_api.blueprints.health_bp import health_bp
    from review_api.blueprints.review_application_bp import review_application_bp
    from review_api.blueprints.review_opportunity_bp import review_opportunity_bp
    from review_api.blueprints.submission_bp import submission_bp

    app.register_blueprint(review_opportunity_bp)
    app.register_blueprint(review_application_bp)
    app.register_blueprint(submission_bp)
    app.register_blueprint(ai_workflow_bp)
    app.register_blueprint(contact_request_bp)
    app.register_blueprint(health_bp)

    # ── Route guards (role/scope table, after blueprints registered) ────
    init_route_guards(app)

    # ── Error handlers ───────────────────────────────────────────────────
    register_error_handlers(app)

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return {"error": e.description or "Unsupported media type"}, 415

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    logger.info("Review API started (config=%s)", config_name)
    return app
