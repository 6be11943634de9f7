"""
Priority classification: maps buffer consumption to an urgency tag.
Thresholds are lower-bound inclusive and evaluated in order.
"""
from collections import defaultdict
from typing import List, Optional, Sequence

from dbr_planner.scheduling.commands import UpdateCommand, commands_for_ids
from dbr_planner.scheduling.config import (
    PRIO_EXPEDITE,
    PRIO_GRAY,
    PRIO_GREEN,
    PRIO_RED,
    PRIO_UNCLASSIFIED,
    PRIO_YELLOW,
    SchedulingConfig,
)
from dbr_planner.scheduling.records import StepRecord


def classify(target_rbc: Optional[float], config: SchedulingConfig) -> str:
    if target_rbc is None:
        return PRIO_UNCLASSIFIED
    if target_rbc < 0:
        return PRIO_GRAY
    if target_rbc < config.rbc_green_limit:
        return PRIO_GREEN
    if target_rbc < config.rbc_yellow_limit:
        return PRIO_YELLOW
    if target_rbc < config.rbc_red_limit:
        return PRIO_RED
    return PRIO_EXPEDITE


def classification_commands(steps: Sequence[StepRecord], config: SchedulingConfig) -> List[UpdateCommand]:
    """One batch update per tag over the non-excluded steps."""
    ids_by_tag = defaultdict(list)
    for step in steps:
        if not step.is_excluded:
            ids_by_tag[classify(step.target_rbc, config)].append(step.id)

    commands: List[UpdateCommand] = []
    for tag in sorted(ids_by_tag):
        commands.extend(commands_for_ids(ids_by_tag[tag], {'prio': tag}, config.bulk_chunk_size,
                                         is_excluded=False))
    return commands
