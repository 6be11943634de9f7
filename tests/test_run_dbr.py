"""
Tests for the run_dbr.py batch script.
"""
import pytest
from datetime import datetime
from unittest.mock import patch

import run_dbr
from dbr_planner import create_app
from dbr_planner.models import OrderStep, OrderStepBackup, ScheduledResource, SchedulingRun, db
from dbr_planner.scheduling.errors import SchedulingPassError


@pytest.fixture
def app():
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})
    with app.app_context():
        db.create_all()
        db.session.add_all([
            ScheduledResource(resource_group='Drum', is_constraint=True),
            ScheduledResource(resource_group='Laser', is_constraint=True),
            OrderStep(production_order_nr='PO-1', work_step_nr='10', resource='Drum',
                      worksteps_to_go=1, production_time=30, priority=1),
            OrderStep(production_order_nr='PO-1', work_step_nr='20', resource='Laser',
                      worksteps_to_go=0, production_time=30, priority=1),
            OrderStepBackup(production_order_nr='PO-2', work_step_nr='10', resource='Drum',
                            worksteps_to_go=0, production_time=10, priority=1),
        ])
        db.session.commit()
        with patch('run_dbr.create_app', return_value=app):
            yield app
        db.session.remove()
        db.drop_all()


class TestMain:

    def test_default_runs_full_pass(self, app, capsys):
        assert run_dbr.main(['--now', '2025-08-04 09:00']) == 0

        out = capsys.readouterr().out
        assert 'Constraints: Drum, Laser' in out
        assert 'Excluded orders: 1' in out
        assert SchedulingRun.query.one().operation == 'run'

    def test_conflicts_only(self, app, capsys):
        assert run_dbr.main(['--conflicts']) == 0

        assert 'Conflicting orders (1): PO-1 / ' in capsys.readouterr().out
        assert SchedulingRun.query.count() == 0

    def test_reset_then_run(self, app, capsys):
        assert run_dbr.main(['--reset', '--run', '--now', '2025-08-04 09:00']) == 0

        out = capsys.readouterr().out
        assert '1 order steps restored' in out
        assert [s.production_order_nr for s in OrderStep.query.all()] == ['PO-2']
        assert SchedulingRun.query.count() == 2

    def test_invalid_now(self, app, capsys):
        assert run_dbr.main(['--now', 'whenever']) == 2
        assert 'Unrecognised --now value' in capsys.readouterr().out

    def test_failed_pass_exit_code(self, app, capsys):
        error = SchedulingPassError('scheduling', 4, RuntimeError('boom'))
        with patch('run_dbr.service.run_full_pass', side_effect=error):
            assert run_dbr.main([]) == 1

        assert "stage 'scheduling' after 4 rows" in capsys.readouterr().out
