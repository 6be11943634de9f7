"""Database configuration per environment.

Local and test runs use SQLite; sandbox and production expect PostgreSQL,
where a full DBR pass holds one connection for the duration of its
transaction.
"""
import os


def get_database_engine_options():
    """Engine options for PostgreSQL connections."""
    from sqlalchemy.pool import QueuePool

    return {
        "pool_pre_ping": True,        # Detect and refresh dead connections before use
        "pool_recycle": 280,
        "pool_size": 5,
        "max_overflow": 5,            # A pass holds one connection; keep bursts small
        "pool_timeout": 30,
        "pool_reset_on_return": "rollback",
        "poolclass": QueuePool,
        "connect_args": {
            "connect_timeout": 10,    # Fail fast if DB can't be reached
            "application_name": "dbr_planner",
            "options": "-c statement_timeout=120000"  # Bulk updates over large order books
        },
    }


def _required_url(*names):
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    raise ValueError(f"{' or '.join(names)} must be set for this environment")


def get_database_config(environment=None):
    """Database URI and engine options for an environment.

    Args:
        environment: 'local', 'sandbox', 'production' or 'testing'. If None,
            FLASK_ENV / ENVIRONMENT decide; unknown names fall back to local.

    Returns:
        tuple: (database_uri, engine_options or None)

    Raises:
        ValueError: If sandbox/production run without a database URL
    """
    if environment is None:
        environment = os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")
    environment = environment.lower()

    if environment in ["sandbox", "staging", "stage"]:
        return _required_url("SANDBOX_DATABASE_URL"), get_database_engine_options()
    if environment in ["production", "prod"]:
        return _required_url("PRODUCTION_DATABASE_URL", "DATABASE_URL"), get_database_engine_options()
    if environment in ["testing", "test"]:
        return "sqlite:///:memory:", None

    # Local SQLite needs no engine options
    return os.environ.get("LOCAL_DATABASE_URL") or "sqlite:///dbr.sqlite", None


def configure_database(app, environment=None):
    """Set SQLAlchemy settings on the Flask app config.

    A SQLALCHEMY_DATABASE_URI already present in app.config (e.g. from
    create_app overrides) wins over the environment default; pool options are
    only applied to the environment's own database.

    Args:
        app: Flask application instance
        environment: Optional environment name, defaults to the app's ENV
    """
    environment = environment or app.config.get("ENV")
    if app.config.get("SQLALCHEMY_DATABASE_URI"):
        # Explicit URI, nothing to look up
        database_uri, engine_options = app.config["SQLALCHEMY_DATABASE_URI"], None
    else:
        database_uri, engine_options = get_database_config(environment)
        app.config["SQLALCHEMY_DATABASE_URI"] = database_uri

    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config.setdefault("SQLALCHEMY_ECHO", False)  # Set to True for SQL query debugging

    if engine_options:
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options
