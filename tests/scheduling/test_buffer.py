"""
Tests for buffer recalculation.
A calendar stub counts calendar days so expected figures stay easy to read.
"""
import pytest
from datetime import datetime, timedelta

from dbr_planner.scheduling.buffer import (
    BufferFigures,
    buffer_commands,
    calculate_buffers,
    calculate_rbc,
)
from dbr_planner.scheduling.calendar import CalendarOracle
from dbr_planner.scheduling.config import SchedulingConfig
from dbr_planner.scheduling.records import StepRecord


NOW = datetime(2025, 8, 4, 9, 0)


class DayCountCalendar(CalendarOracle):
    """Every calendar day is a working day."""

    def __init__(self):
        self.calls = []

    def add_working_minutes(self, start, minutes, resource):
        return start + timedelta(minutes=minutes)

    def working_days_between(self, start, end, resource):
        self.calls.append(resource)
        return float((end.date() - start.date()).days)


def make_step(step_id, order, days_to_target=None, **kwargs):
    target = NOW + timedelta(days=days_to_target) if days_to_target is not None else None
    return StepRecord(id=step_id, production_order_nr=order, work_step_nr=str(step_id * 10),
                      resource=kwargs.pop('resource', 'Saw'), target_date=target, **kwargs)


class TestCalculateRbc:

    def test_half_consumed(self):
        assert calculate_rbc(6.0, 3.0) == pytest.approx(50.0)

    def test_overdue_exceeds_hundred(self):
        assert calculate_rbc(4.0, -2.0) == pytest.approx(150.0)

    def test_plenty_of_time_is_negative(self):
        assert calculate_rbc(4.0, 8.0) == pytest.approx(-100.0)

    def test_missing_inputs(self):
        assert calculate_rbc(None, 1.0) is None
        assert calculate_rbc(4.0, None) is None

    def test_non_positive_buffer(self):
        assert calculate_rbc(0.0, 1.0) is None
        assert calculate_rbc(-2.0, 1.0) is None


class TestCalculateBuffers:

    def test_buffer_size_from_steps_per_order(self):
        steps = [
            make_step(1, 'PO-1', 3),
            make_step(2, 'PO-1', 3),
            make_step(3, 'PO-1', 3),
            make_step(4, 'PO-2', 1),
        ]
        figures = calculate_buffers(steps, NOW, DayCountCalendar(), SchedulingConfig())

        assert figures[1] == BufferFigures(6.0, 3.0, 50.0)
        assert figures[4].target_buffer_size == 2.0
        assert figures[4].target_rbc == pytest.approx(50.0)

    def test_buffer_factor_is_configurable(self):
        steps = [make_step(1, 'PO-1', 1), make_step(2, 'PO-1', 1)]
        figures = calculate_buffers(steps, NOW, DayCountCalendar(), SchedulingConfig(buffer_factor=3))
        assert figures[1].target_buffer_size == 6.0

    def test_excluded_steps_are_skipped_but_counted_in_order_size(self):
        steps = [
            make_step(1, 'PO-1', 2),
            make_step(2, 'PO-1', 2, is_excluded=True),
        ]
        figures = calculate_buffers(steps, NOW, DayCountCalendar(), SchedulingConfig())

        assert set(figures) == {1}
        assert figures[1].target_buffer_size == 4.0

    def test_missing_target_date_leaves_remaining_and_rbc_empty(self):
        calendar = DayCountCalendar()
        figures = calculate_buffers([make_step(1, 'PO-1')], NOW, calendar, SchedulingConfig())

        assert figures[1] == BufferFigures(2.0, None, None)
        assert calendar.calls == []

    def test_uses_the_step_resource_calendar(self):
        calendar = DayCountCalendar()
        calculate_buffers([make_step(1, 'PO-1', 1, resource='Paint')], NOW, calendar, SchedulingConfig())
        assert calendar.calls == ['Paint']

    def test_recalculation_is_idempotent(self):
        steps = [make_step(1, 'PO-1', 5), make_step(2, 'PO-1', -1), make_step(3, 'PO-2')]
        calendar = DayCountCalendar()
        config = SchedulingConfig()

        first = calculate_buffers(steps, NOW, calendar, config)
        second = calculate_buffers(steps, NOW, calendar, config)

        assert first == second

    def test_empty_input(self):
        assert calculate_buffers([], NOW, DayCountCalendar(), SchedulingConfig()) == {}


class TestBufferCommands:

    def test_identical_figures_share_a_command(self):
        figures = {
            1: BufferFigures(4.0, 2.0, 50.0),
            2: BufferFigures(4.0, 2.0, 50.0),
            3: BufferFigures(2.0, None, None),
        }
        commands = buffer_commands(figures, chunk_size=100)

        assert len(commands) == 2
        by_ids = {c.filter.ids: c.assignments for c in commands}
        assert by_ids[(1, 2)] == {
            'target_buffer_size': 4.0,
            'remaining_target_buffer_size': 2.0,
            'target_rbc': 50.0,
        }
        assert by_ids[(3,)]['target_rbc'] is None

    def test_commands_only_touch_non_excluded_steps(self):
        commands = buffer_commands({1: BufferFigures(2.0, 1.0, 50.0)}, chunk_size=100)
        assert commands[0].filter.is_excluded is False

    def test_large_groups_are_chunked(self):
        figures = {step_id: BufferFigures(2.0, 1.0, 50.0) for step_id in range(1, 6)}
        commands = buffer_commands(figures, chunk_size=2)
        assert [c.filter.ids for c in commands] == [(1, 2), (3, 4), (5,)]
