"""
Scheduling orchestrator: drives one full DBR pass.

    IDLE -> RESETTING -> DETECTING_CONFLICTS -> RECALCULATING_BUFFERS
         -> SCHEDULING (drum + rope, per constraint resource)
         -> RECALCULATING_BUFFERS_FINAL -> CLASSIFYING -> DONE

Any repository or calendar failure moves the pass to FAILED and rolls back
its transaction. Cancellation is only observed between stages.
"""
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from dbr_planner.logging_config import get_logger
from dbr_planner.scheduling.buffer import buffer_commands, calculate_buffers
from dbr_planner.scheduling.calendar import CalendarOracle
from dbr_planner.scheduling.classifier import classification_commands
from dbr_planner.scheduling.config import SchedulingConfig
from dbr_planner.scheduling.conflicts import (
    exclusion_commands,
    find_conflicting_orders,
    reset_exclusion_command,
)
from dbr_planner.scheduling.drum import drum_commands, schedule_constraint
from dbr_planner.scheduling.errors import (
    CalendarOracleError,
    PassCancelled,
    RepositoryIOError,
    SchedulingPassError,
)
from dbr_planner.scheduling.repository import OrderRepository
from dbr_planner.scheduling.rope import rope_commands

logger = get_logger(__name__)


class PassState(Enum):
    IDLE = "idle"
    RESETTING = "resetting"
    DETECTING_CONFLICTS = "detecting_conflicts"
    RECALCULATING_BUFFERS = "recalculating_buffers"
    SCHEDULING = "scheduling"
    RECALCULATING_BUFFERS_FINAL = "recalculating_buffers_final"
    CLASSIFYING = "classifying"
    DONE = "done"
    FAILED = "failed"


@dataclass
class StageReport:
    stage: str
    rows_processed: int = 0
    rows_updated: int = 0
    resource: Optional[str] = None


@dataclass
class PassResult:
    """Outcome of a completed pass."""
    run_id: str
    now: datetime
    constraint_resources: List[str] = field(default_factory=list)
    conflicting_orders: List[str] = field(default_factory=list)
    stages: List[StageReport] = field(default_factory=list)

    @property
    def rows_updated(self) -> int:
        return sum(stage.rows_updated for stage in self.stages)

    def to_dict(self):
        return {
            'run_id': self.run_id,
            'now': self.now.isoformat(),
            'constraint_resources': list(self.constraint_resources),
            'conflicting_orders': list(self.conflicting_orders),
            'rows_updated': self.rows_updated,
            'stages': [asdict(stage) for stage in self.stages],
        }


class SchedulingOrchestrator:
    """
    Runs the DBR pass against an order repository and a calendar oracle.

    Args:
        repository: Order repository; the pass runs inside one of its transactions
        calendar: Calendar oracle used for working time arithmetic
        config: Engine tunables
        cancel_event: Optional object with ``is_set()`` (e.g. threading.Event),
            checked between stages
        clock: Callable returning "now" when run_full_pass gets none
    """

    def __init__(
        self,
        repository: OrderRepository,
        calendar: CalendarOracle,
        config: Optional[SchedulingConfig] = None,
        cancel_event=None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.calendar = calendar
        self.config = config or SchedulingConfig()
        self.cancel_event = cancel_event
        self.clock = clock
        self.state = PassState.IDLE
        self.history: List[PassState] = [PassState.IDLE]
        self._report: Optional[StageReport] = None

    def run_full_pass(self, now: Optional[datetime] = None, run_id: Optional[str] = None) -> PassResult:
        """
        Run every stage of the pass in one transaction.

        Raises:
            SchedulingPassError: A stage failed or the pass was cancelled;
                no change of this pass is persisted
        """
        now = now or self.clock()
        result = PassResult(run_id=run_id or uuid.uuid4().hex[:12], now=now)
        self._reset_state()

        try:
            with self.repository.transaction():
                self._stage(PassState.RESETTING, result, self._reset_exclusions)
                self._stage(PassState.DETECTING_CONFLICTS, result, self._detect_conflicts)
                self._stage(PassState.RECALCULATING_BUFFERS, result, self._recalculate_buffers)

                result.constraint_resources = self._constraint_resources()
                for resource in result.constraint_resources:
                    self._stage(PassState.SCHEDULING, result, self._schedule_constraint, resource)

                self._stage(PassState.RECALCULATING_BUFFERS_FINAL, result, self._recalculate_buffers)
                self._stage(PassState.CLASSIFYING, result, self._classify)
        except SchedulingPassError:
            self._enter(PassState.FAILED)
            raise
        except (RepositoryIOError, CalendarOracleError) as exc:
            # Outside any stage (constraint lookup, commit)
            failed_in = self.state.value
            self._enter(PassState.FAILED)
            raise SchedulingPassError(failed_in, self._rows_processed(), exc) from exc

        self._enter(PassState.DONE)
        logger.info(
            "DBR pass finished",
            run_id=result.run_id,
            constraints=result.constraint_resources,
            conflicting_orders=len(result.conflicting_orders),
            rows_updated=result.rows_updated,
        )
        return result

    def reset_to_backup(self) -> int:
        """Replace all order steps with the backup snapshot (is_excluded cleared)."""
        with self.repository.transaction():
            restored = self.repository.replace_all_from_backup()
        logger.info("DBR data reset from backup", rows=restored)
        return restored

    # ------------------------------------------------------------------
    # State handling

    def _reset_state(self):
        self.state = PassState.IDLE
        self.history = [PassState.IDLE]
        self._report = None

    def _enter(self, state: PassState):
        self.state = state
        self.history.append(state)
        logger.debug("DBR pass state", state=state.value)

    def _rows_processed(self) -> int:
        return self._report.rows_processed if self._report else 0

    def _stage(self, state: PassState, result: PassResult, action, *args):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PassCancelled(state.value, self._rows_processed())

        self._enter(state)
        self._report = StageReport(stage=state.value, resource=args[0] if args else None)
        try:
            action(result, *args)
        except (RepositoryIOError, CalendarOracleError) as exc:
            logger.error(
                "DBR stage failed",
                stage=state.value,
                resource=self._report.resource,
                rows_processed=self._report.rows_processed,
                error=str(exc),
            )
            raise SchedulingPassError(state.value, self._report.rows_processed, exc) from exc
        result.stages.append(self._report)

    def _apply(self, commands) -> int:
        updated = 0
        for command in commands:
            updated += self.repository.bulk_update(command)
        self._report.rows_updated += updated
        return updated

    def _constraint_resources(self) -> List[str]:
        return self.repository.read_constraint_resources()

    # ------------------------------------------------------------------
    # Stages

    def _reset_exclusions(self, result: PassResult):
        self._report.rows_processed = self._apply([reset_exclusion_command()])

    def _detect_conflicts(self, result: PassResult):
        steps = self.repository.read_all()
        self._report.rows_processed = len(steps)
        result.conflicting_orders = find_conflicting_orders(steps, self._constraint_resources())
        self._apply(exclusion_commands(result.conflicting_orders, self.config.bulk_chunk_size))
        if result.conflicting_orders:
            logger.warning(
                "Orders on more than one constraint excluded",
                orders=result.conflicting_orders,
            )

    def _recalculate_buffers(self, result: PassResult):
        steps = self.repository.read_all()
        figures = calculate_buffers(steps, result.now, self.calendar, self.config)
        self._report.rows_processed = len(figures)
        self._apply(buffer_commands(figures, self.config.bulk_chunk_size))

    def _schedule_constraint(self, result: PassResult, resource: str):
        steps = self.repository.read_all()
        slots = schedule_constraint(steps, resource, result.now, self.calendar)
        self._report.rows_processed = len(slots)
        if not slots:
            logger.info("No pending steps on constraint", resource=resource)
            return
        self._apply(drum_commands(slots))
        self._apply(rope_commands(slots, resource, self.config))

    def _classify(self, result: PassResult):
        steps = self.repository.read_all()
        commands = classification_commands(steps, self.config)
        self._report.rows_processed = sum(1 for step in steps if not step.is_excluded)
        self._apply(commands)
