"""
Scheduling configuration module.

Holds the tunables of the DBR pass. Defaults match the values the plant has
always scheduled with (buffer factor 2, 33/66/100 RBC tiers); deployments
override them through the DBR_* settings in dbr_planner.config.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Tuple


# Urgency tags written to the prio column
PRIO_GRAY = 'gray'
PRIO_GREEN = 'green'
PRIO_YELLOW = 'yellow'
PRIO_RED = 'red'
PRIO_EXPEDITE = 'expedite'
PRIO_UNCLASSIFIED = ''


def _parse_weekdays(value) -> Tuple[int, ...]:
    if isinstance(value, str):
        return tuple(int(part) for part in value.split(',') if part.strip())
    return tuple(int(part) for part in value)


@dataclass
class SchedulingConfig:
    """
    Configuration for the DBR pass.

    Attributes:
        buffer_factor: Buffer units per work step of an order
        rbc_green_limit: targetRbc below this (and >= 0) is green
        rbc_yellow_limit: targetRbc below this is yellow
        rbc_red_limit: targetRbc below this is red, at or above it expedite
        target_type_prefix: Prefix of the provenance tag set by rope propagation
        workday_start_hour: Hour the daily capacity window opens
        default_working_hours: Capacity of a working weekday without calendar row
        working_weekdays: Weekdays (0=Mon) that work when no calendar row exists
        calendar_horizon_days: Max days the calendar walks before giving up
        bulk_chunk_size: Max ids / order numbers per bulk update
    """
    buffer_factor: float = 2.0
    rbc_green_limit: float = 33.0
    rbc_yellow_limit: float = 66.0
    rbc_red_limit: float = 100.0
    target_type_prefix: str = 'EP-'
    workday_start_hour: int = 8
    default_working_hours: float = 8.0
    working_weekdays: Tuple[int, ...] = field(default_factory=lambda: (0, 1, 2, 3, 4))
    calendar_horizon_days: int = 3660
    bulk_chunk_size: int = 500

    def __post_init__(self):
        self.working_weekdays = _parse_weekdays(self.working_weekdays)
        if self.buffer_factor <= 0:
            raise ValueError("buffer_factor must be positive")
        if not (self.rbc_green_limit <= self.rbc_yellow_limit <= self.rbc_red_limit):
            raise ValueError("RBC limits must be ordered green <= yellow <= red")
        if not 0 <= self.workday_start_hour <= 23:
            raise ValueError("workday_start_hour must be between 0 and 23")
        if self.bulk_chunk_size < 1:
            raise ValueError("bulk_chunk_size must be at least 1")

    @classmethod
    def from_app_config(cls, config: Mapping[str, Any]) -> 'SchedulingConfig':
        """Build the engine configuration from Flask app config (DBR_* keys)."""
        defaults = cls()
        return cls(
            buffer_factor=float(config.get('DBR_BUFFER_FACTOR', defaults.buffer_factor)),
            rbc_green_limit=float(config.get('DBR_RBC_GREEN_LIMIT', defaults.rbc_green_limit)),
            rbc_yellow_limit=float(config.get('DBR_RBC_YELLOW_LIMIT', defaults.rbc_yellow_limit)),
            rbc_red_limit=float(config.get('DBR_RBC_RED_LIMIT', defaults.rbc_red_limit)),
            target_type_prefix=config.get('DBR_TARGET_TYPE_PREFIX', defaults.target_type_prefix),
            workday_start_hour=int(config.get('DBR_WORKDAY_START_HOUR', defaults.workday_start_hour)),
            default_working_hours=float(
                config.get('DBR_DEFAULT_WORKING_HOURS', defaults.default_working_hours)
            ),
            working_weekdays=config.get('DBR_WORKING_WEEKDAYS', defaults.working_weekdays),
            calendar_horizon_days=int(
                config.get('DBR_CALENDAR_HORIZON_DAYS', defaults.calendar_horizon_days)
            ),
            bulk_chunk_size=int(config.get('DBR_BULK_CHUNK_SIZE', defaults.bulk_chunk_size)),
        )

    def target_type_for(self, constraint_resource: str) -> str:
        """Provenance tag recorded on steps whose target date a drum set."""
        return f"{self.target_type_prefix}{constraint_resource}"
