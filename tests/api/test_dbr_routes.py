"""
Tests for the DBR API routes (Flask endpoints).
These tests verify HTTP request/response handling and status codes; the pass
itself runs against an in-memory SQLite database.
"""
import pytest
import json
from datetime import datetime
from unittest.mock import patch

from dbr_planner import create_app
from dbr_planner.models import OrderStep, OrderStepBackup, ScheduledResource, db
from dbr_planner.scheduling.errors import PassAlreadyRunning, RepositoryIOError, SchedulingPassError


TARGET = datetime(2025, 8, 14, 9, 0)


@pytest.fixture
def app():
    """Create Flask application for testing."""
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def seeded(app):
    db.session.add_all([
        ScheduledResource(resource_group='Drum', is_constraint=True),
        ScheduledResource(resource_group='Other', is_constraint=False),
        OrderStep(production_order_nr='PO-1', work_step_nr='10', resource='Drum',
                  worksteps_to_go=5, production_time=100, priority=1, target_date=TARGET),
        OrderStep(production_order_nr='PO-1', work_step_nr='20', resource='Other',
                  worksteps_to_go=2, target_date=TARGET),
        OrderStepBackup(production_order_nr='PO-1', work_step_nr='10', resource='Drum',
                        worksteps_to_go=5, production_time=100, priority=1, target_date=TARGET),
    ])
    db.session.commit()


# ==============================================================================
# POST /api/v1/dbr/run
# ==============================================================================

class TestRunRoute:

    def test_runs_full_pass(self, client, seeded):
        response = client.post('/api/v1/dbr/run', json={'now': '2025-08-04 09:00'})

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['ok'] is True
        assert data['affected'] == data['rows_updated']
        assert data['affected'] > 0
        assert data['constraint_resources'] == ['Drum']
        assert data['now'] == '2025-08-04T09:00:00'

        downstream = OrderStep.query.filter_by(work_step_nr='20').one()
        assert downstream.target_date == datetime(2025, 8, 4, 9, 0)

    def test_without_body_uses_current_time(self, client, seeded):
        response = client.post('/api/v1/dbr/run')
        assert response.status_code == 200
        assert response.get_json()['ok'] is True

    def test_invalid_now(self, client, seeded):
        response = client.post('/api/v1/dbr/run', json={'now': 'tomorrow-ish'})
        assert response.status_code == 400
        assert response.get_json()['ok'] is False

    def test_busy_returns_409(self, client):
        with patch('dbr_planner.api.routes.service.run_full_pass',
                   side_effect=PassAlreadyRunning("DBR operation already in progress: reset_to_backup",
                                                  details={'current_operation': 'reset_to_backup'})):
            response = client.post('/api/v1/dbr/run')

        assert response.status_code == 409
        data = response.get_json()
        assert data['ok'] is False
        assert data['details']['current_operation'] == 'reset_to_backup'

    def test_failed_pass_returns_stage(self, client):
        error = SchedulingPassError('scheduling', 12, RuntimeError('calendar gone'))
        with patch('dbr_planner.api.routes.service.run_full_pass', side_effect=error):
            response = client.post('/api/v1/dbr/run')

        assert response.status_code == 500
        data = response.get_json()
        assert data == {
            'ok': False,
            'stage': 'scheduling',
            'rowsProcessed': 12,
            'error': error.message,
        }


# ==============================================================================
# POST /api/v1/dbr/reset
# ==============================================================================

class TestResetRoute:

    def test_resets_from_backup(self, client, seeded):
        response = client.post('/api/v1/dbr/reset')

        assert response.status_code == 200
        data = response.get_json()
        assert data['ok'] is True
        assert data['affected'] == 1
        assert data['run_id']
        assert OrderStep.query.count() == 1

    def test_busy_returns_409(self, client):
        with patch('dbr_planner.api.routes.service.reset_to_backup',
                   side_effect=PassAlreadyRunning("busy")):
            response = client.post('/api/v1/dbr/reset')
        assert response.status_code == 409

    def test_storage_failure_returns_500(self, client):
        with patch('dbr_planner.api.routes.service.reset_to_backup',
                   side_effect=RepositoryIOError("restore failed")):
            response = client.post('/api/v1/dbr/reset')

        assert response.status_code == 500
        assert response.get_json() == {'ok': False, 'error': 'restore failed'}


# ==============================================================================
# Read-only endpoints
# ==============================================================================

class TestStatusRoutes:

    def test_conflicts(self, client, seeded):
        response = client.get('/api/v1/dbr/conflicts')
        assert response.status_code == 200
        assert response.get_json() == {'orders': [], 'summary': ''}

    def test_status(self, client):
        response = client.get('/api/v1/dbr/status')

        assert response.status_code == 200
        data = response.get_json()
        assert data['is_locked'] is False
        assert data['current_operation'] is None

    def test_runs(self, client, seeded):
        client.post('/api/v1/dbr/run', json={'now': '2025-08-04T09:00'})
        response = client.get('/api/v1/dbr/runs?limit=5')

        assert response.status_code == 200
        (run,) = response.get_json()['runs']
        assert run['operation'] == 'run'
        assert run['status'] == 'completed'

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json() == {'status': 'ok'}

    def test_storage_error_is_json(self, client):
        with patch('dbr_planner.api.routes.service.list_conflicting_orders',
                   side_effect=RepositoryIOError("Error reading order steps")):
            response = client.get('/api/v1/dbr/conflicts')

        assert response.status_code == 500
        data = response.get_json()
        assert data['ok'] is False
        assert data['type'] == 'RepositoryIOError'
        assert data['message'] == 'Error reading order steps'

    def test_unknown_route_is_json(self, client):
        response = client.get('/api/v1/nowhere')
        assert response.status_code == 404
        assert response.get_json()['error'] == 'Not Found'


# ==============================================================================
# Priority list
# ==============================================================================

class TestPriorityListRoutes:

    def test_filter_by_resource(self, client, seeded):
        response = client.get('/api/v1/priority-list?resource=Drum')

        assert response.status_code == 200
        data = response.get_json()
        assert data['total'] == 1
        assert data['items'][0]['workStepNr'] == '10'
        assert data['items'][0]['isScheduledRes'] is True

    def test_repeated_resources(self, client, seeded):
        response = client.get('/api/v1/priority-list?resources=Drum&resources=Other')
        assert response.get_json()['total'] == 2

    def test_invalid_page_size(self, client, seeded):
        response = client.get('/api/v1/priority-list?pageSize=0')
        assert response.status_code == 400

    def test_patch_target_dates(self, client, seeded):
        response = client.patch('/api/v1/priority-list/target-dates', json={
            'updates': [{'productionOrderNr': 'PO-1', 'targetDate': '01.09.2025 07:00'}],
        })

        assert response.status_code == 200
        assert response.get_json() == {'updated': 2}
        step = OrderStep.query.filter_by(work_step_nr='10').one()
        assert step.target_date == datetime(2025, 9, 1, 7, 0)
        assert step.customized_target_date is True

    def test_patch_requires_list(self, client, seeded):
        response = client.patch('/api/v1/priority-list/target-dates', json={'updates': 'PO-1'})
        assert response.status_code == 400

    def test_patch_rejects_bad_date(self, client, seeded):
        response = client.patch('/api/v1/priority-list/target-dates', json={
            'updates': [{'productionOrderNr': 'PO-1', 'targetDate': '31.02.2025'}],
        })
        assert response.status_code == 400
        assert 'PO-1' in response.get_json()['error']

    def test_patch_busy(self, client):
        with patch('dbr_planner.api.routes.service.update_target_dates',
                   side_effect=PassAlreadyRunning("busy")):
            response = client.patch('/api/v1/priority-list/target-dates', json={'updates': []})
        assert response.status_code == 409
