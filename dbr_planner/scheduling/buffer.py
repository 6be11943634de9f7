"""
Buffer recalculation.

For every non-excluded step:
- target_buffer_size = steps in the order * buffer_factor
- remaining_target_buffer_size = working days from now to the target date
- target_rbc = consumed share of the buffer, in percent

Depends only on target dates, so running it twice without a target date
change gives identical figures.
"""
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from dbr_planner.logging_config import get_logger
from dbr_planner.scheduling.calendar import CalendarOracle
from dbr_planner.scheduling.commands import UpdateCommand, commands_for_ids
from dbr_planner.scheduling.config import SchedulingConfig
from dbr_planner.scheduling.records import StepRecord

logger = get_logger(__name__)


@dataclass(frozen=True)
class BufferFigures:
    target_buffer_size: float
    remaining_target_buffer_size: Optional[float]
    target_rbc: Optional[float]


def calculate_rbc(target_buffer_size: Optional[float],
                  remaining_target_buffer_size: Optional[float]) -> Optional[float]:
    """
    Consumed buffer ratio in percent.

    Returns None when either input is missing or the buffer size is not positive.
    """
    if target_buffer_size is None or remaining_target_buffer_size is None:
        return None
    if target_buffer_size <= 0:
        return None
    return (target_buffer_size - remaining_target_buffer_size) / target_buffer_size * 100


def calculate_buffers(
    steps: Sequence[StepRecord],
    now: datetime,
    calendar: CalendarOracle,
    config: SchedulingConfig,
) -> Dict[int, BufferFigures]:
    """
    Buffer figures for every non-excluded step, keyed by step id.

    Raises:
        CalendarOracleError: If working days cannot be computed for a step
    """
    steps_per_order = Counter(step.production_order_nr for step in steps)
    figures: Dict[int, BufferFigures] = {}

    for step in steps:
        if step.is_excluded:
            continue

        buffer_size = steps_per_order[step.production_order_nr] * config.buffer_factor
        if step.target_date is None:
            remaining = None
        else:
            remaining = calendar.working_days_between(now, step.target_date, step.resource)

        rbc = calculate_rbc(buffer_size, remaining)
        if rbc is None and remaining is not None:
            logger.warning(
                "Buffer size not positive, RBC left empty",
                production_order_nr=step.production_order_nr,
                work_step_nr=step.work_step_nr,
                target_buffer_size=buffer_size,
            )
        figures[step.id] = BufferFigures(buffer_size, remaining, rbc)

    return figures


def buffer_commands(figures: Dict[int, BufferFigures], chunk_size: int) -> List[UpdateCommand]:
    """Group steps sharing identical figures into batch updates."""
    groups = defaultdict(list)
    for step_id, values in figures.items():
        groups[(values.target_buffer_size, values.remaining_target_buffer_size, values.target_rbc)].append(step_id)

    commands: List[UpdateCommand] = []
    for (buffer_size, remaining, rbc), ids in groups.items():
        commands.extend(commands_for_ids(
            ids,
            {
                'target_buffer_size': buffer_size,
                'remaining_target_buffer_size': remaining,
                'target_rbc': rbc,
            },
            chunk_size,
            is_excluded=False,
        ))
    return commands
