"""
Tests for conflict detection (orders spanning several constraint resources).
"""
from dbr_planner.scheduling.conflicts import (
    exclusion_commands,
    find_conflicting_orders,
    format_conflict_summary,
    reset_exclusion_command,
)
from dbr_planner.scheduling.records import StepRecord


def make_step(step_id, order, resource, **kwargs):
    return StepRecord(id=step_id, production_order_nr=order, work_step_nr=str(step_id * 10),
                      resource=resource, **kwargs)


class TestFindConflictingOrders:

    def test_order_on_two_constraints_conflicts(self):
        steps = [
            make_step(1, 'PO-1', 'Drum'),
            make_step(2, 'PO-1', 'Laser'),
            make_step(3, 'PO-2', 'Drum'),
        ]
        assert find_conflicting_orders(steps, ['Drum', 'Laser']) == ['PO-1']

    def test_same_constraint_twice_is_not_a_conflict(self):
        steps = [
            make_step(1, 'PO-1', 'Drum'),
            make_step(2, 'PO-1', 'Drum'),
        ]
        assert find_conflicting_orders(steps, ['Drum', 'Laser']) == []

    def test_non_constraint_resources_do_not_count(self):
        steps = [
            make_step(1, 'PO-1', 'Drum'),
            make_step(2, 'PO-1', 'Saw'),
            make_step(3, 'PO-1', 'Paint'),
        ]
        assert find_conflicting_orders(steps, ['Drum']) == []

    def test_result_is_sorted(self):
        steps = [
            make_step(1, 'PO-9', 'Drum'),
            make_step(2, 'PO-9', 'Laser'),
            make_step(3, 'PO-3', 'Laser'),
            make_step(4, 'PO-3', 'Drum'),
        ]
        assert find_conflicting_orders(steps, ['Drum', 'Laser']) == ['PO-3', 'PO-9']

    def test_previously_excluded_steps_are_still_considered(self):
        """Detection runs after the exclusion reset, so stale flags do not matter."""
        steps = [
            make_step(1, 'PO-1', 'Drum', is_excluded=True),
            make_step(2, 'PO-1', 'Laser', is_excluded=True),
        ]
        assert find_conflicting_orders(steps, ['Drum', 'Laser']) == ['PO-1']

    def test_empty_inputs(self):
        assert find_conflicting_orders([], ['Drum']) == []
        assert find_conflicting_orders([make_step(1, 'PO-1', 'Drum')], []) == []


class TestExclusionCommands:

    def test_reset_matches_every_step(self):
        command = reset_exclusion_command()
        assert command.filter.is_empty()
        assert command.assignments == {'is_excluded': False}

    def test_exclusion_is_chunked(self):
        commands = exclusion_commands(['PO-3', 'PO-1', 'PO-2'], chunk_size=2)

        assert [c.filter.production_order_nrs for c in commands] == [('PO-1', 'PO-2'), ('PO-3',)]
        assert all(c.assignments == {'is_excluded': True} for c in commands)

    def test_no_conflicts_no_commands(self):
        assert exclusion_commands([], chunk_size=100) == []


class TestConflictSummary:

    def test_summary_format(self):
        assert format_conflict_summary(['PO-1', 'PO-7']) == 'PO-1 / PO-7 / '

    def test_empty_summary(self):
        assert format_conflict_summary([]) == ''
