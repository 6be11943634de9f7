"""
Parameterised batch update commands.

An UpdateCommand is the storage-agnostic form of
``UPDATE steps SET <assignments> WHERE <filter>``. Stages build commands;
the repository translates them into statements, so no resource or order
identifier is ever spliced into SQL text.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar('T')

# Columns a DBR pass may rewrite
DERIVED_FIELDS = frozenset({
    'is_excluded',
    'target_buffer_size',
    'remaining_target_buffer_size',
    'target_rbc',
    'prio',
    'running_sum_production_time',
    'expected_start_time_min',
    'start_date_assumption',
    'target_date',
    'target_type',
    'customized_target_date',
})


@dataclass(frozen=True)
class StepFilter:
    """
    Conjunction of conditions on order steps. Unset (None) conditions are ignored;
    an empty filter matches every step.
    """
    ids: Optional[Tuple[int, ...]] = None
    production_order_nrs: Optional[Tuple[str, ...]] = None
    resource: Optional[str] = None
    is_excluded: Optional[bool] = None
    worksteps_to_go_below: Optional[int] = None

    def is_empty(self) -> bool:
        return (self.ids is None and self.production_order_nrs is None and self.resource is None
                and self.is_excluded is None and self.worksteps_to_go_below is None)


@dataclass(frozen=True)
class UpdateCommand:
    """Assign the same values to every step matching ``filter``."""
    filter: StepFilter
    assignments: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.assignments:
            raise ValueError("UpdateCommand needs at least one assignment")
        unknown = set(self.assignments) - DERIVED_FIELDS
        if unknown:
            raise ValueError(f"Cannot assign non-derived fields: {', '.join(sorted(unknown))}")


def chunked(items: Sequence[T], size: int) -> Iterator[Tuple[T, ...]]:
    """Split a sequence into tuples of at most ``size`` items."""
    for start in range(0, len(items), size):
        yield tuple(items[start:start + size])


def commands_for_ids(ids: Iterable[int], assignments: Dict[str, Any], chunk_size: int,
                     **conditions) -> List[UpdateCommand]:
    """One command per chunk of step ids, all with the same assignments."""
    return [
        UpdateCommand(StepFilter(ids=chunk, **conditions), dict(assignments))
        for chunk in chunked(sorted(ids), chunk_size)
    ]


def commands_for_orders(order_nrs: Iterable[str], assignments: Dict[str, Any], chunk_size: int,
                        **conditions) -> List[UpdateCommand]:
    """One command per chunk of production order numbers, all with the same assignments."""
    return [
        UpdateCommand(StepFilter(production_order_nrs=chunk, **conditions), dict(assignments))
        for chunk in chunked(sorted(set(order_nrs)), chunk_size)
    ]
