"""
Drum scheduling for one constraint resource.

Pending steps on the constraint are sequenced by
(priority asc, worksteps_to_go asc, target_rbc desc, production_order_nr asc),
ties resolved by input order. A missing priority sorts first and a missing
target_rbc sorts last, matching the priority list query. Walking that
sequence, each step gets the cumulative production time up to and including
itself (running_sum_production_time) and the load queued ahead of it
(expected_start_time_min). The expected start is turned into an instant on
the constraint's working calendar.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

import pandas as pd

from dbr_planner.logging_config import get_logger
from dbr_planner.scheduling.calendar import CalendarOracle
from dbr_planner.scheduling.commands import StepFilter, UpdateCommand
from dbr_planner.scheduling.records import StepRecord

logger = get_logger(__name__)

SEQUENCE_COLUMNS = [
    'priority_missing', 'priority', 'worksteps_to_go', 'target_rbc', 'production_order_nr', 'input_order',
]
SEQUENCE_ASCENDING = [False, True, True, False, True, True]


@dataclass(frozen=True)
class DrumSlot:
    """Position of one step in a constraint's sequence."""
    step_id: int
    production_order_nr: str
    work_step_nr: str
    worksteps_to_go: int
    running_sum_production_time: float
    expected_start_time_min: float
    start_date_assumption: Optional[datetime] = None


def pending_steps(steps: Sequence[StepRecord], constraint_resource: str) -> List[StepRecord]:
    """Non-excluded steps on the constraint that are still to go."""
    return [
        step for step in steps
        if step.resource == constraint_resource
        and not step.is_excluded
        and step.worksteps_to_go is not None
        and step.worksteps_to_go >= 0
    ]


def sequence_constraint(steps: Sequence[StepRecord], constraint_resource: str) -> List[DrumSlot]:
    """
    Sequence the constraint's pending steps and compute cumulative load.

    Args:
        steps: All order steps (other resources are ignored)
        constraint_resource: Resource group of the drum

    Returns:
        Slots in schedule order, without start instants
    """
    candidates = pending_steps(steps, constraint_resource)
    if not candidates:
        return []

    frame = pd.DataFrame([
        {
            'step_id': step.id,
            'production_order_nr': step.production_order_nr,
            'work_step_nr': step.work_step_nr,
            'priority': step.priority,
            'worksteps_to_go': step.worksteps_to_go,
            'target_rbc': step.target_rbc,
            'production_time': step.production_time,
            'input_order': position,
        }
        for position, step in enumerate(candidates)
    ])
    frame['target_rbc'] = frame['target_rbc'].astype(float)
    frame['priority_missing'] = frame['priority'].isna()

    frame = frame.sort_values(
        by=SEQUENCE_COLUMNS,
        ascending=SEQUENCE_ASCENDING,
        na_position='last',
        kind='mergesort',
    )
    frame['running_sum'] = frame['production_time'].fillna(0.0).astype(float).cumsum()
    frame['queued_ahead'] = frame['running_sum'].shift(1, fill_value=0.0)

    return [
        DrumSlot(
            step_id=int(row.step_id),
            production_order_nr=row.production_order_nr,
            work_step_nr=row.work_step_nr,
            worksteps_to_go=int(row.worksteps_to_go),
            running_sum_production_time=float(row.running_sum),
            expected_start_time_min=float(row.queued_ahead),
        )
        for row in frame.itertuples(index=False)
    ]


def schedule_constraint(
    steps: Sequence[StepRecord],
    constraint_resource: str,
    now: datetime,
    calendar: CalendarOracle,
) -> List[DrumSlot]:
    """
    Sequence the constraint and derive each step's start instant.

    Raises:
        CalendarOracleError: If the constraint's calendar cannot place a step
    """
    slots = sequence_constraint(steps, constraint_resource)
    scheduled = [
        DrumSlot(
            step_id=slot.step_id,
            production_order_nr=slot.production_order_nr,
            work_step_nr=slot.work_step_nr,
            worksteps_to_go=slot.worksteps_to_go,
            running_sum_production_time=slot.running_sum_production_time,
            expected_start_time_min=slot.expected_start_time_min,
            start_date_assumption=calendar.add_working_minutes(
                now, slot.expected_start_time_min, constraint_resource
            ),
        )
        for slot in slots
    ]
    if scheduled:
        logger.info(
            "Drum sequenced",
            resource=constraint_resource,
            steps=len(scheduled),
            total_load_min=scheduled[-1].running_sum_production_time,
        )
    return scheduled


def drum_commands(slots: Sequence[DrumSlot]) -> List[UpdateCommand]:
    """One update per slot; every slot carries distinct cumulative figures."""
    return [
        UpdateCommand(
            StepFilter(ids=(slot.step_id,), is_excluded=False),
            {
                'running_sum_production_time': slot.running_sum_production_time,
                'expected_start_time_min': slot.expected_start_time_min,
                'start_date_assumption': slot.start_date_assumption,
            },
        )
        for slot in slots
    ]
