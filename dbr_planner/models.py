from flask_sqlalchemy import SQLAlchemy
from datetime import datetime
from enum import Enum

from dbr_planner.datetime_utils import format_datetime_iso

db = SQLAlchemy()


class RunStatus(Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


class OrderStepColumns:
    """Columns shared by the live order step table and its backup snapshot."""
    id = db.Column(db.Integer, primary_key=True)

    # Identity of the step within its production order
    production_order_nr = db.Column(db.String(32), nullable=False, index=True)
    work_step_nr = db.Column(db.String(16), nullable=False)

    # Imported order data
    material_number = db.Column(db.String(64))
    name = db.Column(db.String(256))
    quantity = db.Column(db.Float)
    resource = db.Column(db.String(64), nullable=False, index=True)
    priority = db.Column(db.Integer)
    worksteps_to_go = db.Column(db.Integer)
    production_time = db.Column(db.Float)  # minutes on resource
    setup_group = db.Column(db.String(32))

    # Target date, rewritten by rope propagation or by a planner
    target_date = db.Column(db.DateTime)
    target_type = db.Column(db.String(64))
    customized_target_date = db.Column(db.Boolean, nullable=False, default=False)

    # Derived by the DBR pass
    target_buffer_size = db.Column(db.Float)
    remaining_target_buffer_size = db.Column(db.Float)
    target_rbc = db.Column(db.Float)
    prio = db.Column(db.String(16))
    running_sum_production_time = db.Column(db.Float)
    expected_start_time_min = db.Column(db.Float)
    start_date_assumption = db.Column(db.DateTime)
    is_excluded = db.Column(db.Boolean, nullable=False, default=False)


class OrderStep(OrderStepColumns, db.Model):
    """One row per (production order, work step)."""
    __tablename__ = "production_order_steps"
    __table_args__ = (
        db.UniqueConstraint("production_order_nr", "work_step_nr", name="_order_step_uc"),
    )

    def __repr__(self):
        return f"<OrderStep {self.production_order_nr}/{self.work_step_nr} on {self.resource}>"

    def to_dict(self, is_scheduled_res=False):
        # Field names follow the priority list grid
        return {
            'id': self.id,
            'productionOrderNr': self.production_order_nr,
            'materialNumber': self.material_number,
            'name': self.name,
            'quantity': self.quantity,
            'workStepNr': self.work_step_nr,
            'resource': self.resource,
            'priority': self.priority,
            'productionTime': self.production_time,
            'workstepsToGo': self.worksteps_to_go,
            'targetDate': format_datetime_iso(self.target_date),
            'targetType': self.target_type,
            'targetBufferSize': self.target_buffer_size,
            'remainingTargetBufferSize': self.remaining_target_buffer_size,
            'targetRbc': self.target_rbc,
            'prio': self.prio,
            'runningSumProductionTime': self.running_sum_production_time,
            'startDateAssumption': format_datetime_iso(self.start_date_assumption),
            'expectedStartTimeMin': self.expected_start_time_min,
            'setupGroup': self.setup_group,
            'customizedTargetDate': bool(self.customized_target_date),
            'isExcluded': bool(self.is_excluded),
            'isScheduledRes': bool(is_scheduled_res),
        }


class OrderStepBackup(OrderStepColumns, db.Model):
    """Snapshot written by the order import; source of the DBR reset."""
    __tablename__ = "production_order_steps_bak"
    __table_args__ = (
        db.UniqueConstraint("production_order_nr", "work_step_nr", name="_order_step_bak_uc"),
    )

    def __repr__(self):
        return f"<OrderStepBackup {self.production_order_nr}/{self.work_step_nr}>"


class ScheduledResource(db.Model):
    """Resource group taking part in DBR scheduling."""
    __tablename__ = "scheduled_resources"
    resource_group = db.Column(db.String(64), primary_key=True)
    is_constraint = db.Column(db.Boolean, nullable=False, default=False)
    capacity = db.Column(db.Integer)

    def __repr__(self):
        return f"<ScheduledResource {self.resource_group} constraint={self.is_constraint}>"


class ResourceCalendarDay(db.Model):
    """Working hours of one resource on one date. 0 hours means the day is off."""
    __tablename__ = "resource_calendar"
    __table_args__ = (db.UniqueConstraint("resource", "day", name="_resource_day_uc"),)
    id = db.Column(db.Integer, primary_key=True)
    resource = db.Column(db.String(64), nullable=False, index=True)
    day = db.Column(db.Date, nullable=False)
    working_hours = db.Column(db.Integer)
    is_off = db.Column(db.Boolean, nullable=False, default=False)
    is_customised = db.Column(db.Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<ResourceCalendarDay {self.resource} {self.day} {self.working_hours}h>"


class SchedulingRun(db.Model):
    """Audit trail of triggered DBR operations."""
    __tablename__ = "scheduling_runs"

    id = db.Column(db.Integer, primary_key=True)
    run_id = db.Column(db.String(32), unique=True, nullable=False, index=True)
    operation = db.Column(db.String(20), nullable=False, index=True)  # 'run' or 'reset'
    status = db.Column(db.Enum(RunStatus), nullable=False, default=RunStatus.IN_PROGRESS)

    # Timing
    started_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)
    duration_seconds = db.Column(db.Float, nullable=True)

    # Outcome
    rows_updated = db.Column(db.Integer, default=0)
    failed_stage = db.Column(db.String(40), nullable=True)
    rows_processed = db.Column(db.Integer, nullable=True)
    error_type = db.Column(db.String(100), nullable=True)
    error_message = db.Column(db.Text, nullable=True)

    # Constraint resources, conflicting orders, per stage counts
    context = db.Column(db.JSON, nullable=True)

    def __repr__(self):
        return f"<SchedulingRun {self.run_id} - {self.operation} - {self.status}>"

    def to_dict(self):
        return {
            'id': self.id,
            'run_id': self.run_id,
            'operation': self.operation,
            'status': self.status.value,
            'started_at': format_datetime_iso(self.started_at),
            'completed_at': format_datetime_iso(self.completed_at),
            'duration_seconds': self.duration_seconds,
            'rows_updated': self.rows_updated,
            'failed_stage': self.failed_stage,
            'rows_processed': self.rows_processed,
            'error_type': self.error_type,
            'error_message': self.error_message,
            'metadata': self.context,
        }


class PassLease(db.Model):
    """
    Database row guarding DBR operations across processes.

    The web workers, the scheduler and the CLI all share it: an operation may
    only run while its run id is the holder.
    """
    __tablename__ = "dbr_pass_lease"

    name = db.Column(db.String(32), primary_key=True)
    holder = db.Column(db.String(32), nullable=True)
    operation = db.Column(db.String(40), nullable=True)
    acquired_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return f"<PassLease {self.name} held_by={self.holder}>"
