"""
Periodic (on_stay) action scheduler.

Every resident task gets one ActionSchedule row per applicable on_stay action
of its column. `tick` reconciles those rows with the board and runs the ones
that are due. A row is claimed with a compare-and-set on (status,
execution_count) before its action runs, so concurrent workers never execute
the same occurrence twice.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from models.boards import Task
from models.helper import as_utc, utcnow
from models.rules import ActionSchedule, ActionTrigger, ColumnAction, ScheduleStatus
from settings import SCHEDULER_CLAIM_LEASE_SECONDS, logger
from .actions import ActionExecutor
from .collaborators import Collaborators
from .context import MoveContext, rule_applies
from .locks import task_lock

_OPEN = (ScheduleStatus.SCHEDULED, ScheduleStatus.RUNNING)


@dataclass
class TickReport:
    started_at: str
    released_claims: int = 0
    created: int = 0
    cancelled: int = 0
    due: int = 0
    executed: int = 0
    failed: int = 0
    skipped: int = 0
    exhausted: int = 0
    results: List[Dict] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return asdict(self)


class PeriodicActionScheduler:
    """Explicit queue of on_stay timers, one per (task, action)."""

    def __init__(self, db_session: Session, collaborators: Optional[Collaborators] = None,
                 executor: Optional[ActionExecutor] = None,
                 lease_seconds: int = SCHEDULER_CLAIM_LEASE_SECONDS):
        self.db_session = db_session
        self.collaborators = collaborators or Collaborators.default(db_session)
        self.executor = executor or ActionExecutor(db_session, self.collaborators)
        self.lease = timedelta(seconds=lease_seconds)

    def _row(self, task_id: str, action_id: str) -> Optional[ActionSchedule]:
        statement = select(ActionSchedule).where(
            ActionSchedule.task_id == task_id,
            ActionSchedule.action_id == action_id
        )
        return self.db_session.exec(statement).first()

    def _periodic_actions(self, context: MoveContext) -> List[ColumnAction]:
        return [
            action for action in self.executor.applicable(ActionTrigger.ON_STAY, context)
            if action.interval_hours and action.interval_hours > 0
        ]

    def _start(self, action: ColumnAction, context: MoveContext, entered_at: datetime) -> ActionSchedule:
        row = self._row(context.task.id, action.id)
        if row is None:
            row = ActionSchedule(task_id=context.task.id, action_id=action.id,
                                 column_id=context.to_column.id, next_run_at=entered_at)
        row.column_id = context.to_column.id
        row.from_column_id = context.from_column_id if context.origin_declared else None
        row.status = ScheduleStatus.SCHEDULED
        row.entered_at = entered_at
        row.next_run_at = entered_at + timedelta(hours=action.interval_hours)
        row.execution_count = 0
        row.last_execution_at = None
        row.failure_count = 0
        row.last_error = None
        row.claimed_at = None
        self.db_session.add(row)
        return row

    def schedule_for_task(self, context: MoveContext,
                          entered_at: Optional[datetime] = None) -> List[ActionSchedule]:
        """Start fresh timers for a task that just entered `context.to_column`."""
        entered_at = as_utc(entered_at or context.task.column_entered_at) or utcnow()
        rows = [self._start(action, context, entered_at) for action in self._periodic_actions(context)]
        self.db_session.commit()
        if rows:
            logger.info("Periodic actions scheduled", extra={
                "task_id": context.task.id,
                "column_id": context.to_column.id,
                "schedules": len(rows)
            })
        return rows

    def _cancel(self, *criteria) -> int:
        statement = (
            update(ActionSchedule)
            .where(ActionSchedule.status.in_(_OPEN), *criteria)
            .values(status=ScheduleStatus.CANCELLED, claimed_at=None)
        )
        cancelled = self.db_session.exec(statement).rowcount
        self.db_session.commit()
        return cancelled

    def cancel_for_task(self, task_id: str) -> int:
        return self._cancel(ActionSchedule.task_id == task_id)

    def cancel_for_action(self, action_id: str) -> int:
        cancelled = self._cancel(ActionSchedule.action_id == action_id)
        if cancelled:
            logger.info("Periodic schedules cancelled", extra={
                "action_id": action_id,
                "cancelled": cancelled
            })
        return cancelled

    def reconcile(self, now: datetime, report: TickReport) -> None:
        stale_before = now - self.lease
        running = self.db_session.exec(
            select(ActionSchedule).where(ActionSchedule.status == ScheduleStatus.RUNNING)
        ).all()
        for row in running:
            if row.claimed_at is None or as_utc(row.claimed_at) < stale_before:
                row.status = ScheduleStatus.SCHEDULED
                row.claimed_at = None
                self.db_session.add(row)
                report.released_claims += 1

        scheduled = self.db_session.exec(
            select(ActionSchedule).where(ActionSchedule.status == ScheduleStatus.SCHEDULED)
        ).all()
        for row in scheduled:
            task = self.db_session.get(Task, row.task_id)
            action = self.db_session.get(ColumnAction, row.action_id)
            still_valid = (
                task is not None and task.column_id == row.column_id
                and action is not None and action.is_active
                and action.trigger == ActionTrigger.ON_STAY
                and action.column_id == row.column_id
                and bool(action.interval_hours)
            )
            if not still_valid:
                row.status = ScheduleStatus.CANCELLED
                self.db_session.add(row)
                report.cancelled += 1
        self.db_session.commit()

        actions = self.db_session.exec(
            select(ColumnAction).where(
                ColumnAction.trigger == ActionTrigger.ON_STAY,
                ColumnAction.is_active == True
            )
        ).all()
        tasks = self.collaborators.tasks
        for action in actions:
            if not action.interval_hours or action.interval_hours <= 0:
                continue
            column = tasks.get_column(action.column_id)
            if column is None:
                continue
            for task in tasks.tasks_in_column(column.id):
                row = self._row(task.id, action.id)
                if row is not None and row.status != ScheduleStatus.CANCELLED:
                    continue
                # Residents without a recorded origin only get ungated timers.
                context = MoveContext(task=task, to_column=column, origin_declared=False)
                if not rule_applies(action, context, ActionTrigger.ON_STAY):
                    continue
                self._start(action, context, as_utc(task.column_entered_at) or now)
                report.created += 1
        self.db_session.commit()

    def _claim(self, row: ActionSchedule, now: datetime) -> bool:
        statement = (
            update(ActionSchedule)
            .where(
                ActionSchedule.id == row.id,
                ActionSchedule.status == ScheduleStatus.SCHEDULED,
                ActionSchedule.execution_count == row.execution_count
            )
            .values(status=ScheduleStatus.RUNNING, claimed_at=now)
        )
        claimed = self.db_session.exec(statement).rowcount == 1
        self.db_session.commit()
        self.db_session.refresh(row)
        return claimed

    def _finish(self, row: ActionSchedule, schedule_id: str, now: datetime, **values) -> bool:
        """Release our claim; a row cancelled or re-claimed meanwhile is left alone."""
        statement = (
            update(ActionSchedule)
            .where(
                ActionSchedule.id == schedule_id,
                ActionSchedule.status == ScheduleStatus.RUNNING,
                ActionSchedule.claimed_at == now
            )
            .values(claimed_at=None, **values)
        )
        finished = self.db_session.exec(statement).rowcount == 1
        self.db_session.commit()
        if finished:
            self.db_session.refresh(row)
        return finished

    def _run_row(self, row: ActionSchedule, now: datetime, report: TickReport) -> None:
        schedule_id, task_id = row.id, row.task_id
        if not self._claim(row, now):
            report.skipped += 1
            return
        execution_count, failure_count = row.execution_count, row.failure_count

        tasks = self.collaborators.tasks
        task = tasks.get_task(row.task_id)
        action = self.db_session.get(ColumnAction, row.action_id)
        column = tasks.get_column(row.column_id)
        if task is None or action is None or column is None or not action.is_active \
                or task.column_id != row.column_id:
            if self._finish(row, schedule_id, now, status=ScheduleStatus.CANCELLED):
                report.cancelled += 1
            return

        from_column = tasks.get_column(row.from_column_id) if row.from_column_id else None
        context = MoveContext(
            task=task,
            to_column=column,
            from_column=from_column,
            origin_declared=from_column is not None
        )
        result = self.executor.run(action, ActionTrigger.ON_STAY, context)
        report.executed += 1
        report.results.append(result.to_dict())

        if result.success:
            execution_count += 1
            exhausted = bool(action.max_executions) and execution_count >= action.max_executions
            finished = self._finish(
                row, schedule_id, now,
                status=ScheduleStatus.EXHAUSTED if exhausted else ScheduleStatus.SCHEDULED,
                execution_count=execution_count,
                last_execution_at=now,
                next_run_at=now + timedelta(hours=action.interval_hours)
            )
            if finished and exhausted:
                report.exhausted += 1
        else:
            # Still due: retried on the next tick.
            finished = self._finish(
                row, schedule_id, now,
                status=ScheduleStatus.SCHEDULED,
                failure_count=failure_count + 1,
                last_error=result.error
            )
            report.failed += 1
        if not finished:
            logger.info("Periodic schedule changed while running", extra={
                "schedule_id": schedule_id,
                "task_id": task_id
            })

    def tick(self, now: Optional[datetime] = None) -> TickReport:
        """Reconcile the queue and run every due on_stay action once."""
        now = as_utc(now) or utcnow()
        report = TickReport(started_at=now.isoformat())
        self.reconcile(now, report)

        scheduled = self.db_session.exec(
            select(ActionSchedule).where(ActionSchedule.status == ScheduleStatus.SCHEDULED)
        ).all()
        due = sorted(
            (row for row in scheduled if as_utc(row.next_run_at) <= now),
            key=lambda row: as_utc(row.next_run_at)
        )
        report.due = len(due)

        for row in due:
            with task_lock(row.task_id):
                self._run_row(row, now, report)

        logger.info("Scheduler tick finished", extra={
            "due": report.due,
            "executed": report.executed,
            "failed": report.failed,
            "skipped": report.skipped,
            "exhausted": report.exhausted,
            "timers_created": report.created,
            "cancelled": report.cancelled,
            "released_claims": report.released_claims
        })
        return report
