"""
Field Capture Orders
Flask Application Factory.

Usage:
    from fieldcapture import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from fieldcapture.config import config
from fieldcapture.models import db
from fieldcapture.middleware.logging_config import configure_logging
from fieldcapture.middleware.timing import init_request_timing
from fieldcapture.middleware.rate_limiter import init_rate_limits
from fieldcapture.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit: apply per-blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
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
    # Instantiate so ProductionConfig can refuse to start without its env vars
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

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from fieldcapture.models import session as _session_models        # noqa: F401
    from fieldcapture.models import capture as _capture_models        # noqa: F401
    from fieldcapture.models import station as _station_models        # noqa: F401
    from fieldcapture.models import scheduling as _scheduling_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
    if db_uri.startswith("sqlite:///") and ":memory:" not in db_uri:
        os.makedirs(os.path.dirname(db_uri[len("sqlite:///"):]) or ".", exist_ok=True)
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── External collaborators ───────────────────────────────────────────
    from fieldcapture.integrations.blob_store import init_blob_store
    from fieldcapture.integrations.extraction_gateway import init_extraction_gateway
    from fieldcapture.services.cache_service import init_cache

    init_blob_store(app)
    init_extraction_gateway(app)
    init_cache(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from fieldcapture.blueprints import all_blueprints

    for bp in all_blueprints():
        app.register_blueprint(bp)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def payload_too_large(e):
        return api_error(E.PAYLOAD_TOO_LARGE, "Request body too large")

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    import importlib
    importlib.import_module("fieldcapture.services.scheduled_jobs")  # registers @register_job handlers
    from fieldcapture.services.scheduler_service import SchedulerService as _SchedulerSvc
    _SchedulerSvc.init_app(app)
    try:
        _SchedulerSvc.ensure_jobs_registered()
    except Exception as e:
        app.logger.warning("Scheduled job registration failed: %s", e)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("cleanup-sessions")
    def cleanup_sessions_cmd():
        """Run the session retention cleanup once."""
        run = _SchedulerSvc.run_job("session_cleanup")
        logger.info("Cleanup finished: %s", run)

    return app
