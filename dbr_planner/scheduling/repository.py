"""
Order repository: the only way the DBR pass reads or writes order steps.

SqlAlchemyOrderRepository runs every statement on the session it is given,
so a pass wrapped in ``transaction()`` commits or rolls back as a whole.
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import List

from sqlalchemy import delete, func, insert, literal, select, update
from sqlalchemy.exc import SQLAlchemyError

from dbr_planner.logging_config import get_logger
from dbr_planner.models import OrderStep, OrderStepBackup, ResourceCalendarDay, ScheduledResource
from dbr_planner.scheduling.commands import StepFilter, UpdateCommand
from dbr_planner.scheduling.errors import RepositoryIOError
from dbr_planner.scheduling.records import CalendarDayRecord, ResourceRecord, StepRecord

logger = get_logger(__name__)


class OrderRepository(ABC):
    """Storage contract of the DBR pass."""

    @abstractmethod
    def transaction(self):
        """Context manager: commit everything done inside on success, roll back on error."""

    @abstractmethod
    def read_all(self) -> List[StepRecord]:
        """All order steps, in stable primary key order."""

    @abstractmethod
    def read_resources(self) -> List[ResourceRecord]:
        """All scheduled resources, sorted by resource group."""

    @abstractmethod
    def read_calendar(self, resource: str) -> List[CalendarDayRecord]:
        """Calendar rows of one resource, sorted by date."""

    @abstractmethod
    def bulk_update(self, command: UpdateCommand) -> int:
        """Apply one batch update; returns the number of matched steps."""

    @abstractmethod
    def replace_all_from_backup(self) -> int:
        """Replace every order step with the backup snapshot; returns the restored row count."""

    def read_constraint_resources(self) -> List[str]:
        """Resource groups flagged as constraints, sorted by resource group."""
        return sorted(r.resource_group for r in self.read_resources() if r.is_constraint)


class SqlAlchemyOrderRepository(OrderRepository):
    """Order repository on a SQLAlchemy session (normally ``db.session``)."""

    def __init__(self, session):
        self.session = session

    @contextmanager
    def transaction(self):
        try:
            yield self
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise RepositoryIOError(f"Transaction failed: {exc}") from exc
        except BaseException:
            self.session.rollback()
            raise

    def read_all(self) -> List[StepRecord]:
        try:
            result = self.session.execute(
                select(OrderStep.__table__).order_by(OrderStep.__table__.c.id)
            )
            return [StepRecord.from_mapping(row) for row in result.mappings()]
        except SQLAlchemyError as exc:
            raise RepositoryIOError(f"Error reading order steps: {exc}") from exc

    def read_resources(self) -> List[ResourceRecord]:
        try:
            rows = self.session.execute(
                select(
                    ScheduledResource.resource_group,
                    ScheduledResource.is_constraint,
                    ScheduledResource.capacity,
                ).order_by(ScheduledResource.resource_group)
            ).all()
        except SQLAlchemyError as exc:
            raise RepositoryIOError(f"Error reading scheduled resources: {exc}") from exc
        return [
            ResourceRecord(resource_group=group, is_constraint=bool(is_constraint), capacity=capacity)
            for group, is_constraint, capacity in rows
        ]

    def read_calendar(self, resource: str) -> List[CalendarDayRecord]:
        try:
            rows = self.session.execute(
                select(
                    ResourceCalendarDay.day,
                    ResourceCalendarDay.working_hours,
                    ResourceCalendarDay.is_off,
                )
                .where(ResourceCalendarDay.resource == resource)
                .order_by(ResourceCalendarDay.day)
            ).all()
        except SQLAlchemyError as exc:
            raise RepositoryIOError(f"Error reading calendar of {resource}: {exc}") from exc
        return [
            CalendarDayRecord(resource=resource, day=day, working_hours=hours, is_off=bool(is_off))
            for day, hours, is_off in rows
        ]

    def bulk_update(self, command: UpdateCommand) -> int:
        table = OrderStep.__table__
        statement = update(table).values(**command.assignments)
        clauses = self._where(command.filter)
        if clauses:
            statement = statement.where(*clauses)
        try:
            result = self.session.execute(statement)
        except SQLAlchemyError as exc:
            raise RepositoryIOError(
                f"Bulk update of {sorted(command.assignments)} failed: {exc}"
            ) from exc
        return result.rowcount or 0

    def replace_all_from_backup(self) -> int:
        live = OrderStep.__table__
        backup = OrderStepBackup.__table__
        names = [column.name for column in live.columns]
        source = [
            literal(False).label(name) if name == 'is_excluded' else backup.c[name]
            for name in names
        ]
        try:
            self.session.execute(delete(live))
            self.session.execute(insert(live).from_select(names, select(*source)))
            restored = self.session.execute(select(func.count()).select_from(live)).scalar_one()
        except SQLAlchemyError as exc:
            raise RepositoryIOError(f"Restoring order steps from backup failed: {exc}") from exc
        logger.info("Order steps replaced from backup", rows=restored)
        return restored

    @staticmethod
    def _where(step_filter: StepFilter):
        c = OrderStep.__table__.c
        clauses = []
        if step_filter.ids is not None:
            clauses.append(c.id.in_(step_filter.ids))
        if step_filter.production_order_nrs is not None:
            clauses.append(c.production_order_nr.in_(step_filter.production_order_nrs))
        if step_filter.resource is not None:
            clauses.append(c.resource == step_filter.resource)
        if step_filter.is_excluded is not None:
            clauses.append(c.is_excluded == step_filter.is_excluded)
        if step_filter.worksteps_to_go_below is not None:
            clauses.append(c.worksteps_to_go < step_filter.worksteps_to_go_below)
        return clauses

    def set_order_target_date(self, production_order_nr: str, target_date) -> int:
        """Planner override of one order's target date; marks its steps as customised."""
        table = OrderStep.__table__
        statement = (
            update(table)
            .where(table.c.production_order_nr == production_order_nr)
            .values(target_date=target_date, customized_target_date=target_date is not None)
        )
        try:
            result = self.session.execute(statement)
        except SQLAlchemyError as exc:
            raise RepositoryIOError(
                f"Updating target date of {production_order_nr} failed: {exc}"
            ) from exc
        return result.rowcount or 0
