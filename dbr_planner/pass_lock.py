"""
Single-flight lock for DBR operations.

A full pass, a reset and a planner target date patch all rewrite order
steps, so only one of them may run at a time. A second caller is rejected
with PassAlreadyRunning instead of queueing behind a pass.

PassLockManager serialises the threads of one application. The database
lease serialises processes sharing a database: web workers, the periodic job
and run_dbr.py.
"""
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import insert, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from dbr_planner.logging_config import get_logger
from dbr_planner.models import PassLease
from dbr_planner.scheduling.errors import PassAlreadyRunning, RepositoryIOError

logger = get_logger(__name__)


@dataclass
class _Holder:
    operation: str
    thread_id: int
    acquired_at: datetime
    depth: int = 1


class PassLockManager:
    """Tracks which DBR operation, if any, currently owns the order steps."""

    def __init__(self, timeout_seconds: int = 60):
        self._state_lock = threading.Lock()  # guards _holder only, never held during work
        self._holder: Optional[_Holder] = None
        self._timeout_seconds = timeout_seconds

    def is_locked(self) -> bool:
        with self._state_lock:
            return self._holder is not None

    def get_current_operation(self) -> Optional[str]:
        with self._state_lock:
            return self._holder.operation if self._holder else None

    @contextmanager
    def acquire_pass_lock(self, operation_name: str, timeout_seconds: Optional[int] = None):
        """
        Hold the pass lock for the duration of the block.

        The holding thread may nest operations (e.g. reset then run); the lock
        is released when the outermost block exits.

        Args:
            operation_name: Name recorded as the current operation
            timeout_seconds: How long to wait for the state mutex

        Raises:
            PassAlreadyRunning: If another thread holds the lock
        """
        timeout = timeout_seconds or self._timeout_seconds
        if not self._state_lock.acquire(timeout=timeout):
            raise PassAlreadyRunning(
                f"Lock acquisition timed out after {timeout}s for '{operation_name}'",
                details={'operation': operation_name},
            )
        try:
            thread_id = threading.get_ident()
            holder = self._holder
            if holder is None:
                self._holder = _Holder(operation_name, thread_id, datetime.now())
                logger.info("Pass lock acquired", operation=operation_name)
            elif holder.thread_id == thread_id:
                holder.depth += 1
                logger.info("Re-entrant pass lock", operation=operation_name, held_by=holder.operation)
            else:
                logger.warning("Pass lock already held", held_by=holder.operation, requested_by=operation_name)
                raise PassAlreadyRunning(
                    f"DBR operation already in progress: {holder.operation}",
                    details={'current_operation': holder.operation, 'operation': operation_name},
                )
        finally:
            self._state_lock.release()

        try:
            yield
        finally:
            with self._state_lock:
                self._holder.depth -= 1
                if self._holder.depth == 0:
                    logger.info("Pass lock released", operation=self._holder.operation)
                    self._holder = None

    def get_status(self) -> dict:
        """Lock state as served by GET /api/v1/dbr/status."""
        with self._state_lock:
            holder = self._holder
            now = datetime.now()
            return {
                "is_locked": holder is not None,
                "current_operation": holder.operation if holder else None,
                "timestamp": now.isoformat(),
                "held_by_thread": holder.thread_id if holder else None,
                "held_for_seconds": (now - holder.acquired_at).total_seconds() if holder else 0,
                "timeout_seconds": self._timeout_seconds,
            }


LEASE_NAME = 'dbr_pass'


def _take_lease(session, operation_name: str, holder_id: str, stale_after_seconds: int) -> Optional[dict]:
    """Claim the lease row; returns None on success or the current holder."""
    lease = PassLease.__table__
    now = datetime.utcnow()
    try:
        claimed = session.execute(
            update(lease)
            .where(lease.c.name == LEASE_NAME)
            .where(or_(lease.c.holder.is_(None),
                       lease.c.acquired_at < now - timedelta(seconds=stale_after_seconds)))
            .values(holder=holder_id, operation=operation_name, acquired_at=now)
        ).rowcount
        if claimed:
            session.commit()
            return None

        current = session.execute(
            select(lease.c.holder, lease.c.operation, lease.c.acquired_at).where(lease.c.name == LEASE_NAME)
        ).mappings().first()
        if current is not None:
            session.rollback()
            return dict(current)

        # First operation against this database
        session.execute(insert(lease).values(
            name=LEASE_NAME, holder=holder_id, operation=operation_name, acquired_at=now,
        ))
        session.commit()
        return None
    except IntegrityError:
        # Another process created the row between our select and insert
        session.rollback()
        return {'holder': None, 'operation': None, 'acquired_at': None}
    except SQLAlchemyError as exc:
        session.rollback()
        raise RepositoryIOError(f"Error taking the pass lease: {exc}") from exc


@contextmanager
def database_lease(session, operation_name: str, holder_id: str, stale_after_seconds: int = 3600):
    """
    Hold the shared pass lease row for the duration of the block.

    The claim is one conditional UPDATE committed on its own, so two
    processes can never both see it succeed. A lease older than
    ``stale_after_seconds`` is taken over, which frees it after a crash.

    Raises:
        PassAlreadyRunning: If another process holds the lease
        RepositoryIOError: If the lease table cannot be read or written
    """
    current = _take_lease(session, operation_name, holder_id, stale_after_seconds)
    if current is not None:
        logger.warning("Pass lease held by another process",
                       held_by=current['operation'], requested_by=operation_name)
        raise PassAlreadyRunning(
            f"DBR operation already in progress: {current['operation'] or 'unknown'}",
            details={'current_operation': current['operation'], 'operation': operation_name,
                     'holder': current['holder']},
        )
    logger.info("Pass lease acquired", operation=operation_name, holder=holder_id)

    try:
        yield
    finally:
        lease = PassLease.__table__
        try:
            session.execute(
                update(lease)
                .where(lease.c.name == LEASE_NAME, lease.c.holder == holder_id)
                .values(holder=None, operation=None, acquired_at=None)
            )
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise RepositoryIOError(f"Error releasing the pass lease: {exc}") from exc
        logger.info("Pass lease released", operation=operation_name, holder=holder_id)
