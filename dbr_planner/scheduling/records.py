"""
Plain value objects the engine works on.
Repositories return these instead of live ORM rows, so the engine has no
database dependencies.
"""
from dataclasses import dataclass, fields
from datetime import date, datetime
from typing import Any, Mapping, Optional


@dataclass
class StepRecord:
    """Snapshot of one production order step."""
    id: int
    production_order_nr: str
    work_step_nr: str
    resource: str
    priority: Optional[int] = None
    worksteps_to_go: Optional[int] = None
    production_time: Optional[float] = None
    target_date: Optional[datetime] = None
    target_type: Optional[str] = None
    target_buffer_size: Optional[float] = None
    remaining_target_buffer_size: Optional[float] = None
    target_rbc: Optional[float] = None
    prio: Optional[str] = None
    running_sum_production_time: Optional[float] = None
    expected_start_time_min: Optional[float] = None
    start_date_assumption: Optional[datetime] = None
    is_excluded: bool = False

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> 'StepRecord':
        """Build a record from a result row, ignoring columns the engine does not use."""
        names = {f.name for f in fields(cls)}
        values = {key: row[key] for key in row.keys() if key in names}
        values['is_excluded'] = bool(values.get('is_excluded'))
        return cls(**values)


@dataclass(frozen=True)
class ResourceRecord:
    resource_group: str
    is_constraint: bool = False
    capacity: Optional[int] = None


@dataclass(frozen=True)
class CalendarDayRecord:
    resource: str
    day: date
    working_hours: Optional[int] = None
    is_off: bool = False
