"""
Errors raised by the DBR engine.

Repository and calendar failures are fatal for the pass they occur in; the
orchestrator wraps them in a SchedulingPassError naming the failing stage.
Data anomalies (non-positive buffer sizes, missing target dates) are not
errors: they are logged and surface through the prio tag.
"""
from typing import Any, Dict, Optional


class DbrError(Exception):
    """Base class for all DBR engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class RepositoryIOError(DbrError):
    """Reading or writing the order/resource store failed."""


class CalendarOracleError(DbrError):
    """Working-calendar arithmetic failed (missing instants, horizon exhausted)."""

    def __init__(self, message: str, resource: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.resource = resource
        if resource is not None:
            self.details.setdefault("resource", resource)


class SchedulingPassError(DbrError):
    """A stage of the full pass failed; nothing of the pass was committed."""

    def __init__(self, stage: str, rows_processed: int, cause: Optional[BaseException] = None,
                 message: Optional[str] = None) -> None:
        message = message or f"DBR pass failed in stage {stage}: {cause}"
        details: Dict[str, Any] = {"stage": stage, "rows_processed": rows_processed}
        if cause is not None:
            details["cause"] = type(cause).__name__
        super().__init__(message, details)
        self.stage = stage
        self.rows_processed = rows_processed
        self.cause = cause


class PassCancelled(SchedulingPassError):
    """Cancellation was requested; observed before the named stage started."""

    def __init__(self, stage: str, rows_processed: int = 0) -> None:
        super().__init__(stage, rows_processed, message=f"DBR pass cancelled before stage {stage}")


class PassAlreadyRunning(DbrError):
    """Another full pass or reset currently holds the pass lock."""
