import logging
import logging.config
import os
import sys
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

import structlog

# Third-party loggers that are too chatty at INFO during a pass
QUIET_LOGGERS = ("apscheduler", "sqlalchemy.engine", "werkzeug")


def _handlers(log_level: str, log_file: Optional[str]) -> Dict[str, Dict[str, Any]]:
    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": "plain",
            "stream": sys.stdout,
        }
    }
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "json",
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
        }
    return handlers


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    Configure structured logging for the service.

    structlog renders every event as JSON and hands it to stdlib logging, so
    console and file output share one pipeline. Values bound by PassContext
    (run id, operation) are merged into every event logged during a pass.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path. If None, logs to stdout only.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers = _handlers(log_level, log_file)
    handler_names = list(handlers)

    loggers = {
        "": {"level": log_level, "handlers": handler_names, "propagate": False},
        "dbr_planner": {"level": log_level, "handlers": handler_names, "propagate": False},
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": "WARNING"}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
            "json": {"format": "%(message)s"},
        },
        "handlers": handlers,
        "loggers": loggers,
    })

    logger = structlog.get_logger("dbr_planner")
    logger.info("Logging configured", level=log_level, file=log_file)
    return logger


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class PassContext:
    """
    Context manager around one DBR operation (full pass, reset).

    Binds the operation id to the structlog context so stage logs can be
    correlated, and logs start, completion or failure with the duration.
    """

    def __init__(self, operation_type: str, operation_id: Optional[str] = None):
        self.operation_type = operation_type
        self.operation_id = operation_id or str(uuid.uuid4())[:8]
        self.logger = get_logger("dbr_planner.pass")
        self.start_time = None
        self.duration_seconds = None

    def __enter__(self):
        self.start_time = datetime.utcnow()
        structlog.contextvars.bind_contextvars(
            operation_type=self.operation_type,
            operation_id=self.operation_id,
        )
        self.logger.info("DBR operation started", start_time=self.start_time.isoformat())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_seconds = (datetime.utcnow() - self.start_time).total_seconds()
        try:
            if exc_type is None:
                self.logger.info(
                    "DBR operation completed",
                    duration_seconds=self.duration_seconds,
                    status="success",
                )
            else:
                self.logger.error(
                    "DBR operation failed",
                    duration_seconds=self.duration_seconds,
                    status="error",
                    error_type=exc_type.__name__,
                    error_message=str(exc_val),
                )
        finally:
            structlog.contextvars.unbind_contextvars("operation_type", "operation_id")
        return False
