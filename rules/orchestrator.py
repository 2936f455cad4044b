"""
Move orchestrator.

    requested -> validating -> blocked
                            -> validated -> executing -> completed

A blocked move leaves the task untouched. Once validated the move is
committed and never rolled back; action failures only show up in the
returned action results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field
from sqlmodel import Session

from models.auth import User, UserRole
from models.boards import Task
from models.rules import ActionTrigger
from settings import logger
from .actions import ActionExecutor, ActionResult
from .collaborators import Collaborators
from .config import CamelModel
from .context import MoveContext
from .errors import ConfigurationError, NotAllowed, RuleNotFound, StaleMove
from .locks import task_lock
from .scheduler import PeriodicActionScheduler
from .validations import ValidationEvaluator, ValidationOutcome, ValidationResult


class MoveState(str, Enum):
    REQUESTED = "requested"
    VALIDATING = "validating"
    BLOCKED = "blocked"
    VALIDATED = "validated"
    EXECUTING = "executing"
    COMPLETED = "completed"


class MoveRequest(CamelModel):
    task_id: str
    from_column_id: Optional[str] = None
    target_column_id: str
    target_position: Optional[int] = Field(default=None, ge=0)
    skip_validations: bool = False
    skip_actions: bool = False
    action_data: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


@dataclass
class MoveResult:
    task: Task
    state: MoveState = MoveState.REQUESTED
    validation_results: List[ValidationResult] = field(default_factory=list)
    action_results: List[ActionResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    skipped_validations: bool = False
    skipped_actions: bool = False

    @property
    def blocked(self) -> bool:
        return self.state == MoveState.BLOCKED

    @property
    def failed_validations(self) -> List[ValidationResult]:
        return [result for result in self.validation_results if not result.passed]

    def blocked_payload(self) -> Dict[str, Any]:
        failed = self.failed_validations
        return {
            "blocked": True,
            "message": "Task cannot be moved: " + "; ".join(result.message for result in failed),
            "failedValidations": [
                {
                    "validationId": result.validation_id,
                    "validationType": result.validation_type.value,
                    "message": result.message,
                    "details": result.details,
                    "fieldName": result.field_name,
                    "customFieldId": result.custom_field_id,
                }
                for result in failed
            ],
            "totalFailed": len(failed),
        }


class MoveOrchestrator:
    """Runs one task move through validation, commit and actions."""

    def __init__(self, db_session: Session, collaborators: Optional[Collaborators] = None):
        self.db_session = db_session
        self.collaborators = collaborators or Collaborators.default(db_session)
        self.evaluator = ValidationEvaluator(db_session, self.collaborators.history)
        self.executor = ActionExecutor(db_session, self.collaborators)
        self.scheduler = PeriodicActionScheduler(db_session, self.collaborators, self.executor)

    def move(self, request: MoveRequest, actor: Optional[User] = None) -> MoveResult:
        tasks = self.collaborators.tasks
        history = self.collaborators.history

        if (request.skip_validations or request.skip_actions) and \
                (actor is None or actor.role != UserRole.ADMIN):
            raise NotAllowed("Only administrators can skip validations or actions")

        task = tasks.get_task(request.task_id)
        if task is None:
            raise RuleNotFound("task", request.task_id)
        to_column = tasks.get_column(request.target_column_id)
        if to_column is None or not to_column.is_active:
            raise RuleNotFound("column", request.target_column_id)
        if to_column.board_id != task.board_id:
            raise ConfigurationError("Target column belongs to another board", field="targetColumnId")

        with task_lock(task.id):
            self.db_session.refresh(task)
            if request.from_column_id and request.from_column_id != task.column_id:
                raise StaleMove(task.id, request.from_column_id, task.column_id)

            result = MoveResult(task=task)
            position = request.target_position
            if position is None:
                position = len(tasks.tasks_in_column(to_column.id))

            if task.column_id == to_column.id:
                result.task = tasks.commit_move(task, to_column, position)
                result.state = MoveState.COMPLETED
                logger.info("Task repositioned", extra={
                    "task_id": task.id,
                    "column_id": to_column.id,
                    "position": result.task.position
                })
                return result

            origin = tasks.get_column(task.column_id)
            context = MoveContext(
                task=task,
                to_column=to_column,
                from_column=origin,
                actor=actor,
                action_data=request.action_data,
                origin_declared=request.from_column_id is not None
            )

            result.state = MoveState.VALIDATING
            if request.skip_validations:
                outcome = ValidationOutcome()
                result.skipped_validations = True
                history.record_validation(
                    None, to_column.id, task.id, True, "Validations skipped by administrator",
                    {"bypassed": True, "fromColumnId": context.from_column_id}, context.actor_id
                )
            else:
                outcome = self.evaluator.evaluate(context)
            result.validation_results = outcome.results
            result.warnings = outcome.warnings

            if outcome.blocked:
                result.state = MoveState.BLOCKED
                logger.info("Task move blocked", extra={
                    "task_id": task.id,
                    "from_column_id": context.from_column_id,
                    "to_column_id": to_column.id,
                    "failed": len(outcome.failed)
                })
                return result

            result.state = MoveState.VALIDATED
            task = tasks.commit_move(task, to_column, position)
            if outcome.marks_incomplete:
                task = tasks.update_fields(task, is_completed=False)
            context.task = task
            result.task = task

            self.scheduler.cancel_for_task(task.id)
            self.scheduler.schedule_for_task(context, task.column_entered_at)

            result.state = MoveState.EXECUTING
            if request.skip_actions:
                result.skipped_actions = True
                history.record_action(
                    None, to_column.id, task.id, None, True, "Actions skipped by administrator",
                    {"bypassed": True, "fromColumnId": context.from_column_id}, context.actor_id
                )
            else:
                result.action_results = (
                    self.executor.execute(ActionTrigger.ON_EXIT, context)
                    + self.executor.execute(ActionTrigger.ON_ENTER, context)
                )

            self.db_session.refresh(task)
            result.state = MoveState.COMPLETED

        logger.info("Task moved", extra={
            "task_id": task.id,
            "from_column_id": context.from_column_id,
            "to_column_id": to_column.id,
            "warnings": len(result.warnings),
            "actions": len(result.action_results),
            "failed_actions": sum(1 for action in result.action_results if not action.success)
        })
        return result
