"""
Working-calendar arithmetic (the calendar oracle).

The pass only depends on the CalendarOracle interface. RepositoryCalendarOracle
is the default implementation, backed by the per-resource calendar table:
every date has a capacity in minutes, consumed in one window that opens at
``workday_start_hour`` and is clipped at midnight. Dates without a calendar row
fall back to ``default_working_hours`` on ``working_weekdays``.
"""
from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, Optional

from dbr_planner.logging_config import get_logger
from dbr_planner.scheduling.config import SchedulingConfig
from dbr_planner.scheduling.errors import CalendarOracleError
from dbr_planner.scheduling.records import CalendarDayRecord

logger = get_logger(__name__)

MINUTES_PER_DAY = 24 * 60


class CalendarOracle(ABC):
    """Per-resource working time arithmetic used by the DBR pass."""

    @abstractmethod
    def add_working_minutes(self, start: datetime, minutes: float, resource: str) -> datetime:
        """Instant at which ``minutes`` of working time on ``resource`` have elapsed after ``start``."""

    @abstractmethod
    def working_days_between(self, start: datetime, end: datetime, resource: str) -> float:
        """Working days of ``resource`` from ``start`` to ``end`` (negative if ``end`` is earlier)."""


class WorkingCalendar:
    """Calendar of a single resource."""

    def __init__(self, resource: str, days: Iterable[CalendarDayRecord], config: SchedulingConfig):
        self.resource = resource
        self.config = config
        self._days: Dict[date, CalendarDayRecord] = {day.day: day for day in days}

    def capacity_minutes(self, day: date) -> float:
        """Working minutes available on ``day``."""
        row = self._days.get(day)
        if row is not None:
            if row.is_off or not row.working_hours:
                return 0.0
            minutes = float(row.working_hours) * 60
        elif day.weekday() in self.config.working_weekdays:
            minutes = float(self.config.default_working_hours) * 60
        else:
            return 0.0
        # The window cannot run past midnight
        window_limit = MINUTES_PER_DAY - self.config.workday_start_hour * 60
        return max(0.0, min(minutes, window_limit))

    def is_working_day(self, day: date) -> bool:
        return self.capacity_minutes(day) > 0

    def add_working_minutes(self, start: datetime, minutes: float) -> datetime:
        if start is None:
            raise CalendarOracleError("Start instant is required", resource=self.resource)
        if minutes is None or minutes <= 0:
            return start

        remaining = float(minutes)
        current = start
        for _ in range(self.config.calendar_horizon_days + 1):
            day = current.date()
            capacity = self.capacity_minutes(day)
            if capacity > 0:
                window_start = datetime.combine(day, time(hour=self.config.workday_start_hour))
                window_end = window_start + timedelta(minutes=capacity)
                begin = max(current, window_start)
                if begin < window_end:
                    available = (window_end - begin).total_seconds() / 60
                    if remaining <= available:
                        return begin + timedelta(minutes=remaining)
                    remaining -= available
            current = datetime.combine(day + timedelta(days=1), time.min)

        raise CalendarOracleError(
            f"No working capacity for {self.resource} within "
            f"{self.config.calendar_horizon_days} days of {start.isoformat()}",
            resource=self.resource,
            details={'remaining_minutes': remaining},
        )

    def working_days_between(self, start: datetime, end: datetime) -> float:
        if start is None or end is None:
            raise CalendarOracleError("Start and end instants are required", resource=self.resource)

        first, last = start.date(), end.date()
        sign = 1
        if last < first:
            first, last = last, first
            sign = -1

        count = 0
        day = first + timedelta(days=1)
        while day <= last:
            if self.is_working_day(day):
                count += 1
            day += timedelta(days=1)
        return float(sign * count)


class RepositoryCalendarOracle(CalendarOracle):
    """
    Calendar oracle reading the calendar table through an order repository.
    Calendars are loaded once per resource and cached for the lifetime of the
    oracle, which the service creates per pass.
    """

    def __init__(self, repository, config: Optional[SchedulingConfig] = None):
        self.repository = repository
        self.config = config or SchedulingConfig()
        self._calendars: Dict[str, WorkingCalendar] = {}

    def _calendar_for(self, resource: str) -> WorkingCalendar:
        calendar = self._calendars.get(resource)
        if calendar is not None:
            return calendar

        # Resources without calendar rows (non-scheduled ones included) work the
        # default weekdays
        days = self.repository.read_calendar(resource)
        calendar = WorkingCalendar(resource, days, self.config)
        self._calendars[resource] = calendar
        logger.debug("Loaded working calendar", resource=resource, calendar_rows=len(days),
                     default_calendar=not days)
        return calendar

    def add_working_minutes(self, start: datetime, minutes: float, resource: str) -> datetime:
        return self._calendar_for(resource).add_working_minutes(start, minutes)

    def working_days_between(self, start: datetime, end: datetime, resource: str) -> float:
        return self._calendar_for(resource).working_days_between(start, end)
