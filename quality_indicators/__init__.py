"""
Quality Indicator Engine
Flask Application Factory.

Usage:
    from quality_indicators import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_migrate import Migrate

from quality_indicators.config import config
from quality_indicators.models import db
from quality_indicators.auth import init_actor_context
from quality_indicators.middleware.logging_config import configure_logging

logger = logging.getLogger(__name__)

# ── SQLite engine events (global) ───────────────────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _configure_sqlite(dbapi_conn, connection_record):
    """Enable FK enforcement and hand transaction control to SQLAlchemy."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        # pysqlite's own BEGIN handling breaks SAVEPOINT
        dbapi_conn.isolation_level = None


@_sa_event.listens_for(_sa_engine.Engine, "begin")
def _sqlite_begin(conn):
    if conn.dialect.name == "sqlite":
        conn.exec_driver_sql("BEGIN")


migrate = Migrate()


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
    # Instantiated so ProductionConfig can refuse to start without its env vars
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Actor resolution (sets g.actor from gateway headers) ─────────────
    init_actor_context(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Import all models so create_all / Alembic can see them ───────────
    from quality_indicators.models import organization as _organization_models  # noqa: F401
    from quality_indicators.models import indicator as _indicator_models        # noqa: F401
    from quality_indicators.models import entry as _entry_models                # noqa: F401
    from quality_indicators.models import pdca as _pdca_models                  # noqa: F401
    from quality_indicators.models import audit as _audit_models                # noqa: F401
    from quality_indicators.models import scheduling as _scheduling_models      # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if config_name != "production":
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from quality_indicators.blueprints.entries_bp import entries_bp
    from quality_indicators.blueprints.reports_bp import reports_bp
    from quality_indicators.blueprints.pdca_bp import pdca_bp
    from quality_indicators.blueprints.health_bp import health_bp
    from quality_indicators.blueprints.jobs_bp import jobs_bp
    from quality_indicators.blueprints.dashboard_bp import dashboard_bp
    from quality_indicators.blueprints.activity_logs_bp import activity_logs_bp

    app.register_blueprint(entries_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(pdca_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(jobs_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(activity_logs_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("cleanup-activity-logs")
    def cleanup_activity_logs_cmd():
        """Run the activity log retention job once (for cron)."""
        from quality_indicators.services.scheduler_service import SchedulerService
        SchedulerService.ensure_jobs_registered()
        result = SchedulerService.run_job("activity_log_cleanup")
        logger.info("Job %s finished with status %s", result["job_name"], result["status"])

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500

    # ── Scheduler initialization (import jobs to register them) ──────────
    import importlib
    importlib.import_module("quality_indicators.services.scheduled_jobs")  # registers @register_job handlers
    from quality_indicators.services.scheduler_service import SchedulerService as _SchedulerSvc
    _SchedulerSvc.init_app(app)

    return app
