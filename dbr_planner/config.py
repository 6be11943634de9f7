import os
from dotenv import load_dotenv

load_dotenv()


def _env_float(name, default):
    value = os.environ.get(name)
    return float(value) if value not in (None, "") else default


def _env_int(name, default):
    value = os.environ.get(name)
    return int(value) if value not in (None, "") else default


class Config:
    """Base configuration class with common settings."""
    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE")

    # CORS configuration
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Buffer sizing: buffer units per work step of an order
    DBR_BUFFER_FACTOR = _env_float("DBR_BUFFER_FACTOR", 2.0)

    # Buffer consumption (target RBC, percent) upper bounds per urgency tier
    DBR_RBC_GREEN_LIMIT = _env_float("DBR_RBC_GREEN_LIMIT", 33.0)
    DBR_RBC_YELLOW_LIMIT = _env_float("DBR_RBC_YELLOW_LIMIT", 66.0)
    DBR_RBC_RED_LIMIT = _env_float("DBR_RBC_RED_LIMIT", 100.0)

    # Provenance tag written to target_type by rope propagation
    DBR_TARGET_TYPE_PREFIX = os.environ.get("DBR_TARGET_TYPE_PREFIX", "EP-")

    # Working calendar defaults (used for dates without a calendar row)
    DBR_WORKDAY_START_HOUR = _env_int("DBR_WORKDAY_START_HOUR", 8)
    DBR_DEFAULT_WORKING_HOURS = _env_float("DBR_DEFAULT_WORKING_HOURS", 8.0)
    DBR_WORKING_WEEKDAYS = os.environ.get("DBR_WORKING_WEEKDAYS", "0,1,2,3,4")
    DBR_CALENDAR_HORIZON_DAYS = _env_int("DBR_CALENDAR_HORIZON_DAYS", 3660)

    # Max ids / order numbers per bulk UPDATE statement
    DBR_BULK_CHUNK_SIZE = _env_int("DBR_BULK_CHUNK_SIZE", 500)

    # Pass serialisation and periodic runs
    DBR_PASS_LOCK_TIMEOUT = _env_int("DBR_PASS_LOCK_TIMEOUT", 60)
    # A lease older than this belongs to a dead process and may be taken over
    DBR_PASS_LEASE_STALE_SECONDS = _env_int("DBR_PASS_LEASE_STALE_SECONDS", 3600)
    DBR_AUTO_RUN_MINUTES = _env_int("DBR_AUTO_RUN_MINUTES", 0)


class LocalConfig(Config):
    """Configuration for local development."""
    ENV = "local"
    DEBUG = True


class SandboxConfig(Config):
    """Configuration for sandbox/staging environment."""
    ENV = "sandbox"
    DEBUG = False


class ProductionConfig(Config):
    """Configuration for production environment."""
    ENV = "production"
    DEBUG = False


class TestingConfig(Config):
    """Configuration for the test suite (in-memory SQLite, no background jobs)."""
    ENV = "testing"
    DEBUG = False
    TESTING = True
    DBR_AUTO_RUN_MINUTES = 0


def get_config():
    """Get the appropriate configuration class based on environment variable.

    Environment is determined by FLASK_ENV or ENVIRONMENT variable:
    - 'local' or 'development' -> LocalConfig
    - 'sandbox' or 'staging' -> SandboxConfig
    - 'production' or 'prod' -> ProductionConfig
    - 'testing' or 'test' -> TestingConfig

    Defaults to LocalConfig if not set.
    """
    env = (os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")).lower()

    if env in ["local", "development", "dev"]:
        return LocalConfig
    elif env in ["sandbox", "staging", "stage"]:
        return SandboxConfig
    elif env in ["production", "prod"]:
        return ProductionConfig
    elif env in ["testing", "test"]:
        return TestingConfig
    else:
        # Default to local for safety
        return LocalConfig
