"""
Drum-Buffer-Rope scheduling engine.

One pass: reset exclusions, exclude orders spanning several constraints,
recalculate buffers, sequence every constraint resource (drum) and push its
start dates downstream (rope), recalculate buffers again and classify urgency.
"""

from dbr_planner.scheduling.config import SchedulingConfig
from dbr_planner.scheduling.errors import (
    DbrError,
    RepositoryIOError,
    CalendarOracleError,
    SchedulingPassError,
    PassCancelled,
    PassAlreadyRunning,
)
from dbr_planner.scheduling.records import StepRecord, ResourceRecord, CalendarDayRecord
from dbr_planner.scheduling.commands import StepFilter, UpdateCommand
from dbr_planner.scheduling.calendar import CalendarOracle, WorkingCalendar, RepositoryCalendarOracle
from dbr_planner.scheduling.repository import OrderRepository, SqlAlchemyOrderRepository
from dbr_planner.scheduling.orchestrator import SchedulingOrchestrator, PassState, PassResult

__all__ = [
    'SchedulingConfig',
    'DbrError',
    'RepositoryIOError',
    'CalendarOracleError',
    'SchedulingPassError',
    'PassCancelled',
    'PassAlreadyRunning',
    'StepRecord',
    'ResourceRecord',
    'CalendarDayRecord',
    'StepFilter',
    'UpdateCommand',
    'CalendarOracle',
    'WorkingCalendar',
    'RepositoryCalendarOracle',
    'OrderRepository',
    'SqlAlchemyOrderRepository',
    'SchedulingOrchestrator',
    'PassState',
    'PassResult',
]
