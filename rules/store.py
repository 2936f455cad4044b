"""
Rule store: CRUD and ordering of column validations and actions.

Every write is checked before anything is persisted. Rules referenced by
execution history are deactivated instead of deleted.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field
from sqlalchemy import delete, func
from sqlmodel import Session, select

from models.boards import BoardColumn
from models.helper import utcnow
from models.rules import (
    ALLOWED_TRIGGERS_BY_ACTION_TYPE, MAX_VALIDATIONS_PER_COLUMN, ActionEntityRecord,
    ActionExecution, ActionSchedule, ActionTrigger, ActionType, ColumnAction,
    ColumnValidation, ValidationBehavior, ValidationExecution, ValidationType,
    default_trigger_for
)
from settings import logger
from .conditions import operand_key, prepare_condition
from .config import (
    CamelModel, CustomConditionConfig, RequiredChecklistConfig, RequiredDocumentConfig,
    RequiredFieldConfig, RequiredRelationshipConfig, parse_action_config,
    parse_validation_config
)
from .errors import ColumnInUse, ConfigurationError, DuplicateRule, RuleNotFound
from .fields import CUSTOM_FIELD_PREFIXES, field_identity, field_value_type
from .scheduler import PeriodicActionScheduler


class ValidationDraft(CamelModel):
    type: ValidationType
    config: Dict[str, Any] = Field(default_factory=dict)
    behavior: ValidationBehavior = ValidationBehavior.BLOCK
    message: str
    from_column_id: Optional[str] = None
    require_adjacent_position: bool = False
    order: Optional[int] = None
    is_active: bool = True


class ActionDraft(CamelModel):
    type: ActionType
    trigger: Optional[ActionTrigger] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    from_column_id: Optional[str] = None
    require_adjacent_position: bool = False
    order: Optional[int] = None
    is_active: bool = True
    interval_hours: Optional[float] = None
    max_executions: int = 0


def duplicate_key(validation_type: ValidationType, config: Any) -> Tuple:
    """Identity of a validation for duplicate detection within a column."""
    if isinstance(config, RequiredFieldConfig):
        if config.custom_field_id:
            return (validation_type, CUSTOM_FIELD_PREFIXES[0] + config.custom_field_id)
        return (validation_type, field_identity(config.field_name))
    if isinstance(config, RequiredDocumentConfig):
        return (validation_type, config.document_type, config.document_status)
    if isinstance(config, RequiredRelationshipConfig):
        return (validation_type, config.relationship_type)
    if isinstance(config, RequiredChecklistConfig):
        return (validation_type, config.checklist_id)
    if isinstance(config, CustomConditionConfig):
        condition = config.condition
        value_type = field_value_type(condition.field, condition.value_type)
        return (
            validation_type,
            field_identity(condition.field),
            condition.operator,
            json.dumps(operand_key(condition.value, value_type), sort_keys=True, default=str),
        )
    return (validation_type, json.dumps(config, sort_keys=True, default=str))


def _config_json(config: CamelModel) -> Dict[str, Any]:
    payload = config.to_json()
    payload.pop("type", None)
    return payload


class RuleStore:
    """Stores the validations and actions of board columns."""

    def __init__(self, db_session: Session, scheduler: Optional[PeriodicActionScheduler] = None):
        self.db_session = db_session
        self._scheduler = scheduler

    @property
    def scheduler(self) -> PeriodicActionScheduler:
        if self._scheduler is None:
            self._scheduler = PeriodicActionScheduler(self.db_session)
        return self._scheduler

    # Lookups

    def get_column(self, column_id: str) -> BoardColumn:
        column = self.db_session.get(BoardColumn, column_id)
        if column is None:
            raise RuleNotFound("column", column_id)
        return column

    def get_validation(self, validation_id: str) -> ColumnValidation:
        validation = self.db_session.get(ColumnValidation, validation_id)
        if validation is None:
            raise RuleNotFound("validation", validation_id)
        return validation

    def get_action(self, action_id: str) -> ColumnAction:
        action = self.db_session.get(ColumnAction, action_id)
        if action is None:
            raise RuleNotFound("action", action_id)
        return action

    def list_validations(self, column_id: str, include_inactive: bool = False) -> List[ColumnValidation]:
        self.get_column(column_id)
        statement = select(ColumnValidation).where(ColumnValidation.column_id == column_id)
        if not include_inactive:
            statement = statement.where(ColumnValidation.is_active == True)
        statement = statement.order_by(ColumnValidation.order, ColumnValidation.created_at)
        return list(self.db_session.exec(statement).all())

    def list_actions(self, column_id: str, include_inactive: bool = False,
                     trigger: Optional[ActionTrigger] = None) -> List[ColumnAction]:
        self.get_column(column_id)
        statement = select(ColumnAction).where(ColumnAction.column_id == column_id)
        if not include_inactive:
            statement = statement.where(ColumnAction.is_active == True)
        if trigger is not None:
            statement = statement.where(ColumnAction.trigger == trigger)
        statement = statement.order_by(ColumnAction.order, ColumnAction.created_at)
        return list(self.db_session.exec(statement).all())

    # Shared checks

    def _check_origin(self, column: BoardColumn, from_column_id: Optional[str],
                      require_adjacent_position: bool) -> None:
        if not from_column_id:
            return
        if from_column_id == column.id:
            raise ConfigurationError("A rule cannot use its own column as origin", field="fromColumnId")
        origin = self.db_session.get(BoardColumn, from_column_id)
        if origin is None or origin.board_id != column.board_id:
            raise ConfigurationError(
                f"Origin column {from_column_id} is not on the same board", field="fromColumnId"
            )
        if require_adjacent_position and column.position - origin.position != 1:
            raise ConfigurationError(
                "Origin column is not immediately before this column", field="requireAdjacentPosition"
            )

    def _next_order(self, model, column_id: str) -> int:
        statement = select(func.max(model.order)).where(model.column_id == column_id)
        current = self.db_session.exec(statement).one()
        return 0 if current is None else current + 1

    # Validations

    def _prepare_validation(self, column: BoardColumn, draft: ValidationDraft,
                            current: Optional[ColumnValidation] = None):
        if not draft.message or not draft.message.strip():
            raise ConfigurationError("Validation message is required", field="message")

        config = parse_validation_config(draft.type, draft.config)
        if isinstance(config, CustomConditionConfig):
            config = CustomConditionConfig(condition=prepare_condition(config.condition))

        self._check_origin(column, draft.from_column_id, draft.require_adjacent_position)

        siblings = [
            validation for validation in self.list_validations(column.id)
            if current is None or validation.id != current.id
        ]
        if draft.is_active and len(siblings) >= MAX_VALIDATIONS_PER_COLUMN:
            raise ConfigurationError(
                f"A column can have at most {MAX_VALIDATIONS_PER_COLUMN} active validations",
                field="isActive"
            )

        key = duplicate_key(draft.type, config)
        for sibling in siblings:
            try:
                sibling_config = parse_validation_config(sibling.type, sibling.config)
            except ConfigurationError:
                continue
            if duplicate_key(ValidationType(sibling.type), sibling_config) == key:
                raise DuplicateRule(
                    "An identical validation already exists in this column", sibling.id
                )
        return config

    def create_validation(self, column_id: str, draft: ValidationDraft,
                          actor_id: Optional[str] = None) -> ColumnValidation:
        column = self.get_column(column_id)
        config = self._prepare_validation(column, draft)

        validation = ColumnValidation(
            column_id=column.id,
            type=draft.type,
            config=_config_json(config),
            behavior=draft.behavior,
            message=draft.message.strip(),
            from_column_id=draft.from_column_id,
            require_adjacent_position=draft.require_adjacent_position,
            order=draft.order if draft.order is not None else self._next_order(ColumnValidation, column.id),
            is_active=draft.is_active,
            created_by_id=actor_id
        )
        self.db_session.add(validation)
        self.db_session.commit()
        self.db_session.refresh(validation)

        logger.info("Validation created", extra={
            "validation_id": validation.id,
            "column_id": column.id,
            "type": validation.type
        })
        return validation

    def update_validation(self, validation_id: str, draft: ValidationDraft) -> ColumnValidation:
        validation = self.get_validation(validation_id)
        column = self.get_column(validation.column_id)
        config = self._prepare_validation(column, draft, current=validation)

        validation.type = draft.type
        validation.config = _config_json(config)
        validation.behavior = draft.behavior
        validation.message = draft.message.strip()
        validation.from_column_id = draft.from_column_id
        validation.require_adjacent_position = draft.require_adjacent_position
        if draft.order is not None:
            validation.order = draft.order
        validation.is_active = draft.is_active
        validation.updated_at = utcnow()
        self.db_session.add(validation)
        self.db_session.commit()
        self.db_session.refresh(validation)

        logger.info("Validation updated", extra={"validation_id": validation.id})
        return validation

    def delete_validation(self, validation_id: str) -> str:
        """Delete a validation, or deactivate it when history references it."""
        validation = self.get_validation(validation_id)
        referenced = self.db_session.exec(
            select(ValidationExecution.id).where(ValidationExecution.validation_id == validation.id)
        ).first()
        if referenced:
            validation.is_active = False
            validation.updated_at = utcnow()
            self.db_session.add(validation)
            outcome = "deactivated"
        else:
            self.db_session.delete(validation)
            outcome = "deleted"
        self.db_session.commit()

        logger.info("Validation removed", extra={"validation_id": validation_id, "outcome": outcome})
        return outcome

    def reorder_validations(self, column_id: str, validation_ids: List[str]) -> List[ColumnValidation]:
        validations = self.list_validations(column_id, include_inactive=True)
        return self._reorder(validations, validation_ids, "validation")

    # Actions

    def _prepare_action(self, column: BoardColumn, draft: ActionDraft):
        trigger = draft.trigger or default_trigger_for(draft.type)
        allowed = ALLOWED_TRIGGERS_BY_ACTION_TYPE[draft.type]
        if trigger not in allowed:
            raise ConfigurationError(
                f"Trigger {trigger.value} is not allowed for {draft.type.value}; "
                f"allowed: {', '.join(item.value for item in allowed)}",
                field="trigger"
            )

        interval_hours = draft.interval_hours
        if trigger == ActionTrigger.ON_STAY:
            if interval_hours is None or interval_hours <= 0:
                raise ConfigurationError("on_stay actions need intervalHours > 0", field="intervalHours")
        else:
            interval_hours = None

        if draft.max_executions < 0:
            raise ConfigurationError("maxExecutions cannot be negative", field="maxExecutions")

        config = parse_action_config(draft.type, draft.config)
        self._check_origin(column, draft.from_column_id, draft.require_adjacent_position)
        return trigger, interval_hours, config

    def create_action(self, column_id: str, draft: ActionDraft,
                      actor_id: Optional[str] = None) -> ColumnAction:
        column = self.get_column(column_id)
        trigger, interval_hours, config = self._prepare_action(column, draft)

        action = ColumnAction(
            column_id=column.id,
            trigger=trigger,
            type=draft.type,
            config=_config_json(config),
            from_column_id=draft.from_column_id,
            require_adjacent_position=draft.require_adjacent_position,
            order=draft.order if draft.order is not None else self._next_order(ColumnAction, column.id),
            is_active=draft.is_active,
            interval_hours=interval_hours,
            max_executions=draft.max_executions,
            created_by_id=actor_id
        )
        self.db_session.add(action)
        self.db_session.commit()
        self.db_session.refresh(action)

        logger.info("Action created", extra={
            "action_id": action.id,
            "column_id": column.id,
            "type": action.type,
            "trigger": action.trigger
        })
        return action

    def update_action(self, action_id: str, draft: ActionDraft) -> ColumnAction:
        action = self.get_action(action_id)
        column = self.get_column(action.column_id)
        trigger, interval_hours, config = self._prepare_action(column, draft)

        timers_invalidated = (
            trigger != action.trigger
            or draft.type != action.type
            or not draft.is_active
            or interval_hours != action.interval_hours
            or draft.from_column_id != action.from_column_id
            or draft.require_adjacent_position != action.require_adjacent_position
        )

        action.type = draft.type
        action.trigger = trigger
        action.config = _config_json(config)
        action.from_column_id = draft.from_column_id
        action.require_adjacent_position = draft.require_adjacent_position
        if draft.order is not None:
            action.order = draft.order
        action.is_active = draft.is_active
        action.interval_hours = interval_hours
        action.max_executions = draft.max_executions
        action.updated_at = utcnow()
        self.db_session.add(action)
        self.db_session.commit()
        self.db_session.refresh(action)

        if timers_invalidated:
            self.scheduler.cancel_for_action(action.id)

        logger.info("Action updated", extra={"action_id": action.id})
        return action

    def delete_action(self, action_id: str) -> str:
        """Delete an action, or deactivate it when history references it."""
        action = self.get_action(action_id)
        self.scheduler.cancel_for_action(action.id)

        referenced = self.db_session.exec(
            select(ActionExecution.id).where(ActionExecution.action_id == action.id)
        ).first() or self.db_session.exec(
            select(ActionEntityRecord.id).where(ActionEntityRecord.action_id == action.id)
        ).first()
        if referenced:
            action.is_active = False
            action.updated_at = utcnow()
            self.db_session.add(action)
            outcome = "deactivated"
        else:
            self.db_session.exec(delete(ActionSchedule).where(ActionSchedule.action_id == action.id))
            self.db_session.delete(action)
            outcome = "deleted"
        self.db_session.commit()

        logger.info("Action removed", extra={"action_id": action_id, "outcome": outcome})
        return outcome

    def reorder_actions(self, column_id: str, action_ids: List[str]) -> List[ColumnAction]:
        actions = self.list_actions(column_id, include_inactive=True)
        return self._reorder(actions, action_ids, "action")

    def _reorder(self, rules: List[Any], ordered_ids: List[str], kind: str) -> List[Any]:
        by_id = {rule.id: rule for rule in rules}
        if len(ordered_ids) != len(set(ordered_ids)) or set(ordered_ids) != set(by_id):
            raise ConfigurationError(
                f"Reorder must list every {kind} of the column exactly once", field="ids"
            )
        now = utcnow()
        for index, rule_id in enumerate(ordered_ids):
            rule = by_id[rule_id]
            rule.order = index
            rule.updated_at = now
            self.db_session.add(rule)
        self.db_session.commit()
        return [by_id[rule_id] for rule_id in ordered_ids]

    # Column bookkeeping

    def _active_rules(self) -> Tuple[List[ColumnValidation], List[ColumnAction]]:
        validations = self.db_session.exec(
            select(ColumnValidation).where(ColumnValidation.is_active == True)
        ).all()
        actions = self.db_session.exec(
            select(ColumnAction).where(ColumnAction.is_active == True)
        ).all()
        return list(validations), list(actions)

    def column_usage(self, column_id: str) -> Dict[str, Any]:
        """Active rules that live on the column or name it as their origin."""
        self.get_column(column_id)
        validations, actions = self._active_rules()

        used_in_validations = [
            {
                "validationId": validation.id,
                "columnId": validation.column_id,
                "message": validation.message,
                "role": "destination" if validation.column_id == column_id else "origin",
            }
            for validation in validations
            if column_id in (validation.column_id, validation.from_column_id)
        ]
        used_in_actions = [
            {
                "actionId": action.id,
                "columnId": action.column_id,
                "trigger": action.trigger.value if hasattr(action.trigger, "value") else action.trigger,
                "role": "destination" if action.column_id == column_id else "origin",
            }
            for action in actions
            if column_id in (action.column_id, action.from_column_id)
        ]
        return {
            "isUsed": bool(used_in_validations or used_in_actions),
            "usedInValidations": used_in_validations,
            "usedInActions": used_in_actions,
        }

    def can_move_column(self, column_id: str) -> Dict[str, Any]:
        """Whether a column may change position without breaking adjacency-bound rules.

        A column is pinned when it carries active rules, or when the column
        right after it does; in both cases the pair is pinned together.
        """
        column = self.get_column(column_id)
        validations, actions = self._active_rules()
        columns = self.db_session.exec(
            select(BoardColumn).where(BoardColumn.board_id == column.board_id, BoardColumn.is_active == True)
        ).all()
        by_position = {other.position: other for other in columns}

        def has_rules(target_id: str) -> bool:
            return any(rule.column_id == target_id for rule in validations) or \
                any(rule.column_id == target_id for rule in actions)

        next_column = by_position.get(column.position + 1)
        if next_column is not None and has_rules(next_column.id):
            return {
                "canMove": False,
                "reason": f"Column '{next_column.title}' has rules bound to this column",
                "relatedColumnId": next_column.id,
            }

        if has_rules(column.id):
            previous = by_position.get(column.position - 1)
            return {
                "canMove": False,
                "reason": f"Column '{column.title}' has rules configured",
                "relatedColumnId": previous.id if previous else None,
            }
        return {"canMove": True, "reason": None, "relatedColumnId": None}

    def ensure_column_movable(self, column_id: str) -> None:
        verdict = self.can_move_column(column_id)
        if not verdict["canMove"]:
            raise ColumnInUse(verdict["reason"], verdict["relatedColumnId"])

    def ensure_column_removable(self, column_id: str) -> None:
        usage = self.column_usage(column_id)
        if usage["isUsed"]:
            raise ColumnInUse(
                f"Column is used by {len(usage['usedInValidations'])} validation(s) "
                f"and {len(usage['usedInActions'])} action(s)"
            )
