"""
Action executor.

Runs the actions of a column for one trigger. Each action is isolated: an
exception inside one becomes that action's failed result and the rest still
run. Entity-creating actions and follow-up tasks are idempotent per
(task, action) through the records kept by the entity service.
"""

import calendar
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from models.boards import TaskPriority
from models.entities import Project
from models.helper import utcnow
from models.rules import ActionTrigger, ActionType, ColumnAction
from settings import (
    SCORE_DEFAULT_POINTS_ON_ENTER, SCORE_DEFAULT_POINTS_ON_STAY, logger
)
from .collaborators import Collaborators, CreatedEntity, Recipient
from .config import (
    AddTagConfig, AssignUserConfig, RecipientConfig, ScheduleEmailConfig,
    ScheduleTaskConfig, SendEmailConfig, SendNotificationConfig, SetDueDateConfig,
    SetPriorityConfig, StartEmailSequenceConfig, UpdateScoreConfig, parse_action_config
)
from .context import MoveContext, rule_applies
from .errors import RuleEngineError, RuleNotFound
from .field_mapping import MappingContext, build_payload
from .fields import read_task_field
from .values import is_blank, parse_date, plain

_ENTITY_TYPES = {
    ActionType.CREATE_CLIENT: "client",
    ActionType.CREATE_PROPERTY: "property",
    ActionType.CREATE_DOCUMENT: "document",
}

_RELATIVE = re.compile(r"^\s*\+?(\d+)\s*(minute|hour|day|week|month)s?\s*$", re.IGNORECASE)
_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\.(\w+)\s*\}\}")


def resolve_when(value: str, now: Optional[datetime] = None) -> datetime:
    """Resolve "7 days", "2 weeks", "1 month", "3 hours" or an ISO date/datetime."""
    now = now or utcnow()
    match = _RELATIVE.match(value or "")
    if match:
        amount, unit = int(match.group(1)), match.group(2).lower()
        if unit == "month":
            month_index = now.month - 1 + amount
            year, month = now.year + month_index // 12, month_index % 12 + 1
            day = min(now.day, calendar.monthrange(year, month)[1])
            return now.replace(year=year, month=month, day=day)
        return now + timedelta(**{f"{unit}s": amount})

    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        parsed = datetime.combine(parse_date(value), datetime.min.time())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=now.tzinfo)
    return parsed


@dataclass
class ActionResult:
    action_id: Optional[str]
    action_type: ActionType
    success: bool = True
    message: str = ""
    created_entity_id: Optional[str] = None
    created_entity_type: Optional[str] = None
    entity_name: Optional[str] = None
    error: Optional[str] = None
    already_executed: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def fail(self, error: str, message: Optional[str] = None) -> None:
        self.success = False
        self.error = error
        self.message = message or error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "actionId": self.action_id,
            "actionType": self.action_type.value,
            "success": self.success,
            "message": self.message,
            "createdEntityId": self.created_entity_id,
            "createdEntityType": self.created_entity_type,
            "entityName": self.entity_name,
            "error": self.error,
            "alreadyExecuted": self.already_executed,
            "details": self.details,
        }


class ActionExecutor:
    """Executes column actions through the collaborators."""

    def __init__(self, db_session: Session, collaborators: Collaborators):
        self.db_session = db_session
        self.collaborators = collaborators
        self._handlers: Dict[ActionType, Callable[[ColumnAction, Any, MoveContext, ActionTrigger, ActionResult], None]] = {
            ActionType.CREATE_CLIENT: self._create_entity,
            ActionType.CREATE_PROPERTY: self._create_entity,
            ActionType.CREATE_DOCUMENT: self._create_entity,
            ActionType.ASSIGN_USER: self._assign_user,
            ActionType.SET_PRIORITY: self._set_priority,
            ActionType.SET_DUE_DATE: self._set_due_date,
            ActionType.ADD_TAG: self._add_tag,
            ActionType.SEND_EMAIL: self._send_email,
            ActionType.SEND_NOTIFICATION: self._send_notification,
            ActionType.SCHEDULE_EMAIL: self._schedule_email,
            ActionType.SCHEDULE_TASK: self._schedule_task,
            ActionType.START_EMAIL_SEQUENCE: self._start_email_sequence,
            ActionType.UPDATE_SCORE: self._update_score,
        }

    def applicable(self, trigger: ActionTrigger, context: MoveContext) -> List[ColumnAction]:
        if trigger == ActionTrigger.ON_EXIT:
            if context.from_column is None:
                return []
            column_id = context.from_column.id
        else:
            column_id = context.to_column.id

        statement = (
            select(ColumnAction)
            .where(ColumnAction.column_id == column_id)
            .where(ColumnAction.trigger == trigger)
            .where(ColumnAction.is_active == True)
            .order_by(ColumnAction.order, ColumnAction.created_at)
        )
        actions = self.db_session.exec(statement).all()
        return [action for action in actions if rule_applies(action, context, trigger)]

    def execute(self, trigger: ActionTrigger, context: MoveContext) -> List[ActionResult]:
        results = [self.run(action, trigger, context) for action in self.applicable(trigger, context)]
        if results:
            logger.info("Column actions executed", extra={
                "task_id": context.task.id,
                "trigger": trigger.value,
                "executed": len(results),
                "failed": sum(1 for result in results if not result.success)
            })
        return results

    def run(self, action: ColumnAction, trigger: ActionTrigger, context: MoveContext) -> ActionResult:
        """Run a single action; never raises."""
        result = ActionResult(action_id=action.id, action_type=ActionType(action.type))
        try:
            config = parse_action_config(action.type, action.config)
            self._handlers[result.action_type](action, config, context, trigger, result)
        except Exception as e:
            logger.error("Column action failed", extra={
                "action_id": action.id,
                "action_type": result.action_type.value,
                "task_id": context.task.id,
                "error": str(e)
            }, exc_info=not isinstance(e, (RuleEngineError, ValueError)))
            self.db_session.rollback()
            result.fail(str(e), f"Action {result.action_type.value} failed")

        if result.success and not result.already_executed:
            self._count_execution(action.id)

        self.collaborators.history.record_action(
            action, action.column_id, context.task.id, trigger, result.success,
            result.message, result.details, context.actor_id,
            created_entity_id=result.created_entity_id,
            created_entity_type=result.created_entity_type,
            error=result.error
        )
        return result

    def _count_execution(self, action_id: str) -> None:
        statement = (
            update(ColumnAction)
            .where(ColumnAction.id == action_id)
            .values(
                execution_count=ColumnAction.execution_count + 1,
                last_execution_at=utcnow()
            )
        )
        self.db_session.exec(statement)
        self.db_session.commit()

    # Entity creation

    def _create_entity(self, action, config, context, trigger, result):
        entities = self.collaborators.entities
        task = context.task
        entity_type = _ENTITY_TYPES[result.action_type]

        produced = entities.find_produced(task.id, action.id)
        if produced and entities.exists(produced.entity_type, produced.entity_id):
            result.already_executed = True
            result.created_entity_id = produced.entity_id
            result.created_entity_type = produced.entity_type
            result.entity_name = produced.entity_name
            result.message = f"{produced.entity_name} already created for this task"
            return

        project = self.db_session.get(Project, task.project_id) if task.project_id else None
        mapping_context = MappingContext(
            task=task,
            user=context.actor,
            project=project,
            overrides=context.action_data.get(action.id, {})
        )
        payload = build_payload(config.field_mapping, mapping_context)
        if entity_type == "document" and config.document_type:
            payload.setdefault("document_type", config.document_type)

        created = entities.create(entity_type, payload, task, context.actor, action_id=action.id)

        result.created_entity_id = created.entity_id
        result.created_entity_type = created.entity_type
        result.entity_name = created.entity_name
        result.message = f"{created.entity_name} created"
        result.details = {"payloadFields": sorted(payload.keys())}

    # Task field writes

    def _assign_user(self, action, config: AssignUserConfig, context, trigger, result):
        user = self.collaborators.tasks.get_user(config.user_id)
        if user is None or not user.is_active:
            raise RuleNotFound("user", config.user_id)
        self.collaborators.tasks.update_fields(context.task, assigned_to_id=user.id)
        result.message = f"Task assigned to {user.name or user.username}"
        result.details = {"userId": user.id}

    def _set_priority(self, action, config: SetPriorityConfig, context, trigger, result):
        priority = TaskPriority(config.priority)
        self.collaborators.tasks.update_fields(context.task, priority=priority)
        result.message = f"Priority set to {priority.value}"
        result.details = {"priority": priority.value}

    def _set_due_date(self, action, config: SetDueDateConfig, context, trigger, result):
        due_date: date = resolve_when(config.due_date_value).date()
        self.collaborators.tasks.update_fields(context.task, due_date=due_date)
        result.message = f"Due date set to {due_date.isoformat()}"
        result.details = {"dueDate": due_date.isoformat(), "dueDateValue": config.due_date_value}

    def _add_tag(self, action, config: AddTagConfig, context, trigger, result):
        tags = list(context.task.tags or [])
        added = []
        for tag in list(config.tag_names) + list(config.tag_ids):
            if tag not in tags:
                tags.append(tag)
                added.append(tag)
        if added:
            self.collaborators.tasks.update_fields(context.task, tags=tags)
        result.message = f"Added {len(added)} tag(s)"
        result.details = {"added": added, "tags": tags}

    # Messaging

    def _render(self, template: str, context: MoveContext) -> str:
        task = context.task
        entities = self.collaborators.entities
        sources = {
            "task": task,
            "client": entities.get("client", task.client_id),
            "property": entities.get("property", task.property_id),
            "project": self.db_session.get(Project, task.project_id) if task.project_id else None,
            "user": context.actor,
            "actor": context.actor,
            "column": context.to_column,
        }

        def replace(match):
            source_name, attribute = match.group(1), match.group(2)
            if source_name not in sources:
                return match.group(0)
            record = sources[source_name]
            if record is None:
                return ""
            if source_name == "task":
                try:
                    value = read_task_field(record, attribute)
                except KeyError:
                    value = getattr(record, attribute, None)
            else:
                value = getattr(record, attribute, None)
                if value is None and hasattr(record, "extra"):
                    value = (record.extra or {}).get(attribute)
            value = plain(value)
            if is_blank(value):
                return ""
            if isinstance(value, (date, datetime)):
                return value.isoformat()
            if isinstance(value, list):
                return ", ".join(str(item) for item in value)
            return str(value)

        return _PLACEHOLDER.sub(replace, template or "")

    def _user_recipient(self, user_id: Optional[str]) -> List[Recipient]:
        if not user_id:
            return []
        user = self.collaborators.tasks.get_user(user_id)
        if user is None or not user.is_active:
            return []
        return [Recipient(address=user.email or user.id, user_id=user.id)]

    def _resolve_recipients(self, configs: List[RecipientConfig], context: MoveContext) -> List[Recipient]:
        task = context.task
        entities = self.collaborators.entities
        resolved: List[Recipient] = []

        for config in configs:
            if config.type == "user":
                resolved.extend(self._user_recipient(config.value))
            elif config.type == "role":
                resolved.extend(
                    Recipient(address=user.email or user.id, user_id=user.id)
                    for user in self.collaborators.tasks.users_with_role(config.value)
                )
            elif config.type == "email":
                resolved.append(Recipient(address=config.value))
            elif config.type == "task_assignee":
                resolved.extend(self._user_recipient(task.assigned_to_id))
            elif config.type == "task_creator":
                resolved.extend(self._user_recipient(task.created_by_id))
            elif config.type == "client":
                client = entities.get("client", task.client_id)
                if client is not None and client.email:
                    resolved.append(Recipient(address=client.email))
            elif config.type == "property_owner":
                property_ = entities.get("property", task.property_id)
                if property_ is not None and property_.owner_email:
                    resolved.append(Recipient(address=property_.owner_email))

        unique: Dict[str, Recipient] = {}
        for recipient in resolved:
            unique.setdefault(recipient.address.lower(), recipient)
        if not unique:
            raise ValueError("No recipients could be resolved for this task")
        return list(unique.values())

    def _delivery_outcome(self, outcome: Dict[str, Any], result: ActionResult, sent_message: str):
        result.details = {
            "messageIds": outcome.get("message_ids", []),
            "delivered": outcome.get("delivered", 0),
            "failed": outcome.get("failed", 0),
        }
        if outcome.get("status") == "sent":
            result.message = sent_message
        else:
            errors = [error for error in outcome.get("errors", []) if error]
            result.fail("; ".join(errors) or "Delivery failed", "Message delivery failed")

    def _send_email(self, action, config: SendEmailConfig, context, trigger, result):
        recipients = self._resolve_recipients(config.recipients, context)
        outcome = self.collaborators.messaging.send_email(
            recipients,
            self._render(config.subject, context),
            self._render(config.message, context),
            context.task,
            action.id
        )
        self._delivery_outcome(outcome, result, f"Email sent to {len(recipients)} recipient(s)")

    def _send_notification(self, action, config: SendNotificationConfig, context, trigger, result):
        recipients = self._resolve_recipients(config.recipients, context)
        outcome = self.collaborators.messaging.send_notification(
            recipients,
            self._render(config.subject, context),
            self._render(config.message, context),
            context.task,
            action.id,
            notification_type=config.notification_type
        )
        self._delivery_outcome(outcome, result, f"Notification sent to {len(recipients)} recipient(s)")

    def _schedule_email(self, action, config: ScheduleEmailConfig, context, trigger, result):
        recipients = self._resolve_recipients(config.recipients, context)
        send_at = resolve_when(config.scheduled_for)
        outcome = self.collaborators.messaging.schedule_email(
            recipients,
            self._render(config.subject, context),
            self._render(config.message, context),
            send_at,
            context.task,
            action.id
        )
        result.message = f"Email scheduled for {send_at.isoformat()}"
        result.details = {"sendAt": send_at.isoformat(), "messageIds": outcome.get("message_ids", [])}

    def _start_email_sequence(self, action, config: StartEmailSequenceConfig, context, trigger, result):
        recipient_configs = config.recipients or [
            RecipientConfig(type="client"), RecipientConfig(type="task_assignee")
        ]
        recipients = self._resolve_recipients(recipient_configs, context)
        outcome = self.collaborators.messaging.start_email_sequence(
            config.sequence_id, recipients, context.task, action.id
        )
        result.details = {"sequenceId": config.sequence_id, "enrollmentId": outcome.get("enrollment_id")}
        if outcome.get("already_active"):
            result.already_executed = True
            result.message = "Email sequence already active for this task"
        else:
            result.message = "Email sequence started"

    # Follow-up work

    def _schedule_task(self, action, config: ScheduleTaskConfig, context, trigger, result):
        entities = self.collaborators.entities
        tasks = self.collaborators.tasks
        task = context.task

        produced = entities.find_produced(task.id, action.id)
        if produced and entities.exists(produced.entity_type, produced.entity_id):
            result.already_executed = True
            result.created_entity_id = produced.entity_id
            result.created_entity_type = produced.entity_type
            result.entity_name = produced.entity_name
            result.message = "Follow-up task already scheduled"
            return

        column_id = config.target_column_id or context.to_column.id
        column = tasks.get_column(column_id)
        if column is None:
            raise RuleNotFound("column", column_id)

        data = dict(config.task_data)
        title = self._render(data.get("title") or f"Follow-up: {task.title}", context)
        due_date = resolve_when(config.scheduled_for).date() if config.scheduled_for else None
        priority = plain(data.get("priority") or task.priority)
        follow_up = tasks.create_task(
            board_id=column.board_id,
            column_id=column.id,
            title=title,
            description=self._render(data.get("description") or "", context),
            priority=TaskPriority(priority) if priority else None,
            assigned_to_id=data.get("assignedToId") or task.assigned_to_id,
            created_by_id=context.actor_id,
            due_date=due_date,
            project_id=task.project_id,
            client_id=task.client_id,
            property_id=task.property_id,
            column_entered_at=utcnow()
        )
        created = CreatedEntity("task", follow_up.id, "Task")
        entities.remember_produced(task.id, action.id, created)

        result.created_entity_id = follow_up.id
        result.created_entity_type = "task"
        result.entity_name = created.entity_name
        result.message = "Follow-up task scheduled"
        result.details = {"columnId": column.id, "dueDate": due_date.isoformat() if due_date else None}

    def _update_score(self, action, config: UpdateScoreConfig, context, trigger, result):
        points = config.points
        if points is None:
            points = SCORE_DEFAULT_POINTS_ON_STAY if trigger == ActionTrigger.ON_STAY else SCORE_DEFAULT_POINTS_ON_ENTER

        task = context.task
        user_id = task.assigned_to_id or task.created_by_id or context.actor_id
        if not user_id:
            raise ValueError("Task has no assignee, creator or actor to credit")

        total = self.collaborators.scores.apply(
            user_id, points, task, action.id, reason=f"{trigger.value} {context.to_column.title}"
        )
        result.message = f"{points} point(s) credited"
        result.details = {"userId": user_id, "points": points, "total": total}
