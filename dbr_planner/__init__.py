import atexit
import os

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

# scheduler imports
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.executors.pool import ThreadPoolExecutor

from dbr_planner.api import api_bp
from dbr_planner.logging_config import configure_logging, get_logger
from dbr_planner.models import db
from dbr_planner.pass_lock import PassLockManager
from dbr_planner.scheduling.errors import DbrError

logger = get_logger(__name__)


def _run_scheduled_pass(app):
    """Periodic DBR pass; failures are logged and the next interval tries again."""
    from dbr_planner.scheduling import service
    from dbr_planner.scheduling.errors import PassAlreadyRunning, SchedulingPassError

    with app.app_context():
        try:
            summary = service.run_full_pass()
            logger.info("Scheduled DBR pass completed", run_id=summary['run_id'],
                        rows_updated=summary['rows_updated'])
        except PassAlreadyRunning as exc:
            logger.warning("Scheduled DBR pass skipped", reason=exc.message)
        except SchedulingPassError as exc:
            logger.error("Scheduled DBR pass failed", stage=exc.stage, error=exc.message)
        except DbrError as exc:
            logger.error("Scheduled DBR pass failed", error=exc.message, details=exc.details)


def init_scheduler(app):
    """Start the periodic DBR pass when DBR_AUTO_RUN_MINUTES is set."""
    minutes = app.config.get("DBR_AUTO_RUN_MINUTES") or 0
    if minutes <= 0 or app.config.get("TESTING"):
        return None

    # --- Prevent scheduler duplication in multi-worker environments ---
    # Only run the scheduler on one instance
    if app.debug and os.environ.get("WERKZEUG_RUN_MAIN") != "true":
        logger.info("Skipping scheduler startup in reloader parent process")
        return None

    executors = {"default": ThreadPoolExecutor(1)}
    scheduler = BackgroundScheduler(executors=executors)
    scheduler.add_job(
        func=_run_scheduled_pass,
        args=[app],
        trigger="interval",
        minutes=minutes,
        id="dbr_full_pass",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    atexit.register(lambda: scheduler.shutdown(wait=False))

    logger.info("Scheduler started", job="dbr_full_pass", interval_minutes=minutes)
    return scheduler


def create_app(config_overrides=None):
    # Import config after dotenv is loaded
    from dbr_planner.config import get_config
    from dbr_planner.db_config import configure_database

    # Get the appropriate config class based on environment
    config_class = get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(log_level=app.config["LOG_LEVEL"], log_file=app.config.get("LOG_FILE"))

    # Configure database separately
    configure_database(app)

    logger.info(
        "Starting DBR planner",
        environment=app.config.get("ENV", config_class.ENV),
        database=app.config["SQLALCHEMY_DATABASE_URI"].split(":", 1)[0],
    )

    # Get allowed origins from environment variable
    allowed_origins = app.config.get("CORS_ORIGINS", "*")
    if allowed_origins != "*":
        # Parse comma-separated list if provided
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",")]

    CORS(app,
         resources={r"/api/*": {"origins": allowed_origins}},
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PATCH", "OPTIONS"])

    db.init_app(app)

    # One lock per application; every DBR operation goes through it
    app.extensions["dbr_pass_lock"] = PassLockManager(
        timeout_seconds=app.config.get("DBR_PASS_LOCK_TIMEOUT", 60)
    )

    @app.cli.command("init-db")
    def init_db():
        """Create missing tables (existing tables are left untouched)."""
        db.create_all()
        logger.info("Database tables created")

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"}), 200

    # Register blueprints
    app.register_blueprint(api_bp, url_prefix="/api/v1")

    # API clients always get JSON errors
    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return jsonify({"error": e.name, "message": e.description}), e.code

    @app.errorhandler(DbrError)
    def handle_dbr_error(e):
        logger.error("DBR error reached the app", **e.to_dict())
        return jsonify({"ok": False, **e.to_dict()}), 500

    @app.errorhandler(Exception)
    def handle_exception(e):
        logger.error("Unhandled exception", error=str(e), exc_info=True)
        return jsonify({"error": str(e), "message": "An error occurred processing your request"}), 500

    # Initialize scheduler safely
    try:
        init_scheduler(app)
    except Exception as e:
        logger.error("Failed to start scheduler", error=str(e))

    return app
