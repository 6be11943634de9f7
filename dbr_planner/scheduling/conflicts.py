"""
Conflict detection.

An order whose steps run on two or more distinct constraint resources has no
single drum to follow; it is excluded from the whole pass.
"""
from typing import Iterable, List, Sequence

import pandas as pd

from dbr_planner.scheduling.commands import StepFilter, UpdateCommand, commands_for_orders
from dbr_planner.scheduling.records import StepRecord


def find_conflicting_orders(steps: Sequence[StepRecord], constraint_resources: Iterable[str]) -> List[str]:
    """
    Production orders touching at least two distinct constraint resources.

    Args:
        steps: All order steps
        constraint_resources: Resource groups flagged as constraints

    Returns:
        Sorted list of production order numbers
    """
    constraints = set(constraint_resources)
    if not steps or not constraints:
        return []

    frame = pd.DataFrame(
        [(step.production_order_nr, step.resource) for step in steps],
        columns=['production_order_nr', 'resource'],
    )
    on_constraints = frame[frame['resource'].isin(constraints)]
    if on_constraints.empty:
        return []

    distinct = on_constraints.groupby('production_order_nr')['resource'].nunique()
    return sorted(distinct[distinct >= 2].index.tolist())


def reset_exclusion_command() -> UpdateCommand:
    """Clear is_excluded on every step at the start of a pass."""
    return UpdateCommand(StepFilter(), {'is_excluded': False})


def exclusion_commands(conflicting_orders: Iterable[str], chunk_size: int) -> List[UpdateCommand]:
    """Flag every step of the conflicting orders as excluded."""
    return commands_for_orders(conflicting_orders, {'is_excluded': True}, chunk_size)


def format_conflict_summary(conflicting_orders: Iterable[str]) -> str:
    """Planner-facing list of conflicting orders, e.g. ``"PO-1 / PO-7 / "``."""
    return ''.join(f"{order} / " for order in conflicting_orders)
