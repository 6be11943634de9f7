"""
Rope propagation: ties downstream steps to the pace of the drum.

Every non-excluded step of the same order with fewer worksteps to go than a
scheduled constraint step takes that step's start instant as its target date.
A planner's date on such a step is overwritten, so its customised flag is
cleared with it.
"""
from typing import List, Sequence

from dbr_planner.scheduling.commands import StepFilter, UpdateCommand
from dbr_planner.scheduling.config import SchedulingConfig
from dbr_planner.scheduling.drum import DrumSlot


def rope_commands(slots: Sequence[DrumSlot], constraint_resource: str,
                  config: SchedulingConfig) -> List[UpdateCommand]:
    """
    Target date updates for the steps downstream of each scheduled slot.

    Commands are ordered by worksteps_to_go descending: when an order visits the
    same constraint twice, the step nearest to completion is applied last and
    wins for the steps after it.
    """
    target_type = config.target_type_for(constraint_resource)
    ordered = sorted(slots, key=lambda slot: slot.worksteps_to_go, reverse=True)
    return [
        UpdateCommand(
            StepFilter(
                production_order_nrs=(slot.production_order_nr,),
                worksteps_to_go_below=slot.worksteps_to_go,
                is_excluded=False,
            ),
            {
                'target_date': slot.start_date_assumption,
                'target_type': target_type,
                'customized_target_date': False,
            },
        )
        for slot in ordered
        if slot.start_date_assumption is not None
    ]
