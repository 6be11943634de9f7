"""
DBR service: runs the engine against the application database.

This is the trigger surface used by the API routes, the CLI and the periodic
job. It wires the SQLAlchemy repository, the calendar oracle and the
orchestrator together, serialises operations through the app's pass lock and
the database lease, and records every operation as a SchedulingRun.
"""
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app
from sqlalchemy import func, select

from dbr_planner.logging_config import PassContext, get_logger
from dbr_planner.models import OrderStep, RunStatus, ScheduledResource, SchedulingRun, db
from dbr_planner.datetime_utils import parse_datetime
from dbr_planner.pass_lock import database_lease
from dbr_planner.scheduling.calendar import RepositoryCalendarOracle
from dbr_planner.scheduling.config import SchedulingConfig
from dbr_planner.scheduling.conflicts import find_conflicting_orders, format_conflict_summary
from dbr_planner.scheduling.errors import PassCancelled, SchedulingPassError
from dbr_planner.scheduling.orchestrator import SchedulingOrchestrator
from dbr_planner.scheduling.repository import SqlAlchemyOrderRepository

logger = get_logger(__name__)

MAX_PAGE_SIZE = 500


def get_pass_lock():
    """The pass lock of the current application."""
    return current_app.extensions['dbr_pass_lock']


@contextmanager
def exclusive_operation(operation: str, holder_id: str):
    """Hold the app's pass lock, then the database lease shared with other processes."""
    with get_pass_lock().acquire_pass_lock(operation):
        stale_after = current_app.config.get('DBR_PASS_LEASE_STALE_SECONDS', 3600)
        with database_lease(db.session, operation, holder_id, stale_after_seconds=stale_after):
            yield


def get_scheduling_config() -> SchedulingConfig:
    return SchedulingConfig.from_app_config(current_app.config)


def build_orchestrator(cancel_event=None) -> SchedulingOrchestrator:
    """Orchestrator on the app database with a fresh calendar cache."""
    config = get_scheduling_config()
    repository = SqlAlchemyOrderRepository(db.session)
    calendar = RepositoryCalendarOracle(repository, config)
    return SchedulingOrchestrator(repository, calendar, config, cancel_event=cancel_event)


def _start_run(operation: str, run_id: str) -> SchedulingRun:
    run = SchedulingRun(run_id=run_id, operation=operation, status=RunStatus.IN_PROGRESS,
                        started_at=datetime.utcnow())
    db.session.add(run)
    db.session.commit()  # Separate transaction, visible while the pass runs
    return run


def _finish_run(run: SchedulingRun, status: RunStatus, rows_updated: int = 0,
                error: Optional[BaseException] = None, context: Optional[Dict[str, Any]] = None):
    run.status = status
    run.completed_at = datetime.utcnow()
    run.duration_seconds = (run.completed_at - run.started_at).total_seconds()
    run.rows_updated = rows_updated
    run.context = context
    if error is not None:
        run.error_type = type(error).__name__
        run.error_message = str(error)
        if isinstance(error, SchedulingPassError):
            run.failed_stage = error.stage
            run.rows_processed = error.rows_processed
    db.session.commit()


def run_full_pass(now: Optional[datetime] = None, cancel_event=None) -> Dict[str, Any]:
    """
    Run the full DBR pass over all constraint resources.

    Args:
        now: Reference instant (defaults to the current local time)
        cancel_event: Optional threading.Event checked between stages

    Returns:
        dict: Pass summary (run id, constraints, conflicting orders, per stage counts)

    Raises:
        PassAlreadyRunning: Another DBR operation is in progress
        SchedulingPassError: A stage failed; the pass was rolled back
    """
    run_id = uuid.uuid4().hex[:12]
    with exclusive_operation('run_full_pass', run_id):
        with PassContext('run_full_pass', operation_id=run_id):
            run = _start_run('run', run_id)
            orchestrator = build_orchestrator(cancel_event=cancel_event)
            try:
                result = orchestrator.run_full_pass(now=now, run_id=run_id)
            except Exception as exc:
                status = RunStatus.CANCELLED if isinstance(exc, PassCancelled) else RunStatus.FAILED
                _finish_run(run, status, error=exc,
                            context={'states': [state.value for state in orchestrator.history]})
                raise

            summary = result.to_dict()
            _finish_run(run, RunStatus.COMPLETED, rows_updated=result.rows_updated, context={
                'constraint_resources': summary['constraint_resources'],
                'conflicting_orders': summary['conflicting_orders'],
                'stages': summary['stages'],
            })
            return summary


def reset_to_backup() -> Dict[str, Any]:
    """
    Restore every order step from the backup snapshot (full replace).

    Raises:
        PassAlreadyRunning: Another DBR operation is in progress
        RepositoryIOError: The restore failed and was rolled back
    """
    run_id = uuid.uuid4().hex[:12]
    with exclusive_operation('reset_to_backup', run_id):
        with PassContext('reset_to_backup', operation_id=run_id):
            run = _start_run('reset', run_id)
            try:
                restored = build_orchestrator().reset_to_backup()
            except Exception as exc:
                _finish_run(run, RunStatus.FAILED, error=exc)
                raise
            _finish_run(run, RunStatus.COMPLETED, rows_updated=restored)
            return {'run_id': run_id, 'rows_restored': restored}


def list_conflicting_orders() -> Dict[str, Any]:
    """Orders that a pass would exclude for touching more than one constraint."""
    repository = SqlAlchemyOrderRepository(db.session)
    orders = find_conflicting_orders(repository.read_all(), repository.read_constraint_resources())
    return {'orders': orders, 'summary': format_conflict_summary(orders)}


def get_priority_list(resources: Optional[Iterable[str]] = None, non_scheduled: bool = False,
                      page: int = 1, page_size: int = 50) -> Dict[str, Any]:
    """
    Paged list of order steps in drum sequence order.

    Args:
        resources: Only steps on these resource groups
        non_scheduled: Only steps on resources that are not scheduled resources
        page: 1-based page number
        page_size: Rows per page (1..MAX_PAGE_SIZE)

    Raises:
        ValueError: If paging parameters are out of range
    """
    if page < 1:
        raise ValueError("page must be >= 1")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValueError(f"pageSize must be between 1 and {MAX_PAGE_SIZE}")

    scheduled = set(db.session.execute(select(ScheduledResource.resource_group)).scalars())

    conditions = []
    resources = [r for r in (resources or []) if r]
    if resources:
        conditions.append(OrderStep.resource.in_(resources))
    if non_scheduled:
        conditions.append(OrderStep.resource.not_in(select(ScheduledResource.resource_group)))

    total = db.session.execute(
        select(func.count()).select_from(OrderStep).where(*conditions)
    ).scalar_one()
    steps = db.session.execute(
        select(OrderStep)
        .where(*conditions)
        .order_by(
            OrderStep.priority.asc().nulls_first(),
            OrderStep.worksteps_to_go.asc(),
            OrderStep.target_rbc.desc().nulls_last(),
            OrderStep.production_order_nr.asc(),
            OrderStep.id.asc(),
        )
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).scalars().all()

    return {
        'items': [step.to_dict(is_scheduled_res=step.resource in scheduled) for step in steps],
        'page': page,
        'pageSize': page_size,
        'total': total,
    }


def update_target_dates(updates: List[Dict[str, Any]]) -> int:
    """
    Apply planner target dates per production order.

    Args:
        updates: [{'productionOrderNr': str, 'targetDate': str | None}, ...]

    Returns:
        int: Number of order steps updated

    Raises:
        ValueError: On a missing order number or an unparseable date
        PassAlreadyRunning: A DBR operation is rewriting the steps right now
    """
    parsed = []
    for item in updates:
        if not isinstance(item, dict):
            raise ValueError("Each update must be an object with productionOrderNr and targetDate")
        order_nr = str(item.get('productionOrderNr') or '').strip()
        if not order_nr:
            raise ValueError("productionOrderNr is required")
        raw_date = item.get('targetDate')
        target_date = parse_datetime(raw_date)
        if raw_date not in (None, '') and target_date is None:
            raise ValueError(f"Unrecognised targetDate '{raw_date}' for {order_nr}")
        parsed.append((order_nr, target_date))

    repository = SqlAlchemyOrderRepository(db.session)
    with exclusive_operation('update_target_dates', uuid.uuid4().hex[:12]):
        with repository.transaction():
            updated = sum(repository.set_order_target_date(nr, date) for nr, date in parsed)

    logger.info("Target dates updated", orders=len(parsed), steps=updated)
    return updated


def recent_runs(limit: int = 20) -> List[Dict[str, Any]]:
    runs = db.session.execute(
        select(SchedulingRun).order_by(SchedulingRun.started_at.desc(), SchedulingRun.id.desc()).limit(limit)
    ).scalars().all()
    return [run.to_dict() for run in runs]
