from sqlmodel import SQLModel, Field, Column, UniqueConstraint
from sqlalchemy import JSON
from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime
from .helper import id_generator, utcnow


MAX_VALIDATIONS_PER_COLUMN = 3


class ValidationType(str, Enum):
    """Kinds of validation a column can enforce on incoming tasks."""
    REQUIRED_FIELD = "required_field"
    REQUIRED_CHECKLIST = "required_checklist"
    REQUIRED_DOCUMENT = "required_document"
    REQUIRED_RELATIONSHIP = "required_relationship"
    CUSTOM_CONDITION = "custom_condition"


class ValidationBehavior(str, Enum):
    """Effect of a failing validation."""
    BLOCK = "block"
    WARN = "warn"
    MARK_INCOMPLETE = "mark_incomplete"


class ActionTrigger(str, Enum):
    """Transition moment that fires an action."""
    ON_ENTER = "on_enter"
    ON_EXIT = "on_exit"
    ON_STAY = "on_stay"


class ActionType(str, Enum):
    """Automated side effects a column can run."""
    ASSIGN_USER = "assign_user"
    SET_PRIORITY = "set_priority"
    SET_DUE_DATE = "set_due_date"
    ADD_TAG = "add_tag"
    CREATE_PROPERTY = "create_property"
    CREATE_CLIENT = "create_client"
    CREATE_DOCUMENT = "create_document"
    SEND_EMAIL = "send_email"
    SEND_NOTIFICATION = "send_notification"
    SCHEDULE_TASK = "schedule_task"
    SCHEDULE_EMAIL = "schedule_email"
    START_EMAIL_SEQUENCE = "start_email_sequence"
    UPDATE_SCORE = "update_score"


_ON_ENTER_ONLY = (ActionTrigger.ON_ENTER,)
_ENTER_EXIT_STAY = (ActionTrigger.ON_ENTER, ActionTrigger.ON_EXIT, ActionTrigger.ON_STAY)
_ENTER_STAY = (ActionTrigger.ON_ENTER, ActionTrigger.ON_STAY)

# First entry of each tuple is the type's default trigger.
ALLOWED_TRIGGERS_BY_ACTION_TYPE = {
    ActionType.ASSIGN_USER: _ON_ENTER_ONLY,
    ActionType.SET_PRIORITY: _ON_ENTER_ONLY,
    ActionType.SET_DUE_DATE: _ON_ENTER_ONLY,
    ActionType.ADD_TAG: _ON_ENTER_ONLY,
    ActionType.CREATE_PROPERTY: _ON_ENTER_ONLY,
    ActionType.CREATE_CLIENT: _ON_ENTER_ONLY,
    ActionType.CREATE_DOCUMENT: _ON_ENTER_ONLY,
    ActionType.SCHEDULE_TASK: _ON_ENTER_ONLY,
    ActionType.SCHEDULE_EMAIL: _ON_ENTER_ONLY,
    ActionType.START_EMAIL_SEQUENCE: _ON_ENTER_ONLY,
    ActionType.SEND_EMAIL: _ENTER_EXIT_STAY,
    ActionType.SEND_NOTIFICATION: _ENTER_EXIT_STAY,
    ActionType.UPDATE_SCORE: _ENTER_STAY,
}


def default_trigger_for(action_type: ActionType) -> ActionTrigger:
    return ALLOWED_TRIGGERS_BY_ACTION_TYPE[ActionType(action_type)][0]


class FieldTransform(str, Enum):
    """String transforms applicable to a mapped value."""
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"
    CAPITALIZE = "capitalize"
    TRIM = "trim"
    EXTRACT_NUMBERS = "extract_numbers"
    FORMAT_CPF = "format_cpf"
    FORMAT_CNPJ = "format_cnpj"
    FORMAT_PHONE = "format_phone"
    FORMAT_DATE = "format_date"
    FORMAT_CURRENCY = "format_currency"


class ConditionOperator(str, Enum):
    """Comparison operators of a custom condition."""
    EMPTY = "empty"
    NOT_EMPTY = "not_empty"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_OR_EQUAL = "greater_or_equal"
    LESS_OR_EQUAL = "less_or_equal"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IN = "in"
    NOT_IN = "not_in"


class ValueType(str, Enum):
    """Canonical value types of condition operands."""
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    ARRAY = "array"


class ScheduleStatus(str, Enum):
    """State of a periodic (task, action) timer."""
    SCHEDULED = "scheduled"
    RUNNING = "running"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


class ColumnValidation(SQLModel, table=True):
    """Rule checked when a task tries to enter the column."""
    __tablename__ = "column_validation"

    id: str = Field(default_factory=id_generator('validation', 10), primary_key=True)
    column_id: str = Field(foreign_key="board_column.id", index=True)
    type: ValidationType
    config: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    behavior: ValidationBehavior = Field(default=ValidationBehavior.BLOCK)
    message: str
    from_column_id: Optional[str] = Field(default=None, foreign_key="board_column.id", index=True)
    require_adjacent_position: bool = Field(default=False)
    order: int = Field(default=0)
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    created_by_id: Optional[str] = Field(default=None, foreign_key="user.id")


class ColumnAction(SQLModel, table=True):
    """Automated side effect fired on a column transition."""
    __tablename__ = "column_action"

    id: str = Field(default_factory=id_generator('action', 10), primary_key=True)
    column_id: str = Field(foreign_key="board_column.id", index=True)
    trigger: ActionTrigger
    type: ActionType
    config: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    from_column_id: Optional[str] = Field(default=None, foreign_key="board_column.id", index=True)
    require_adjacent_position: bool = Field(default=False)
    order: int = Field(default=0)
    is_active: bool = Field(default=True, index=True)
    interval_hours: Optional[float] = Field(default=None)
    max_executions: int = Field(default=0)
    execution_count: int = Field(default=0)
    last_execution_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    created_by_id: Optional[str] = Field(default=None, foreign_key="user.id")


class ValidationExecution(SQLModel, table=True):
    """Append-only record of one validation run (or a validation bypass)."""
    __tablename__ = "validation_execution"

    id: str = Field(default_factory=id_generator('valexec', 12), primary_key=True)
    validation_id: Optional[str] = Field(default=None, foreign_key="column_validation.id", index=True)
    column_id: str = Field(foreign_key="board_column.id", index=True)
    task_id: Optional[str] = Field(default=None, foreign_key="task.id", index=True)
    passed: bool
    message: str = Field(default="")
    details: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    executed_at: datetime = Field(default_factory=utcnow, index=True)
    executed_by_id: Optional[str] = Field(default=None, foreign_key="user.id")


class ActionExecution(SQLModel, table=True):
    """Append-only record of one action run (or an action bypass)."""
    __tablename__ = "action_execution"

    id: str = Field(default_factory=id_generator('actexec', 12), primary_key=True)
    action_id: Optional[str] = Field(default=None, foreign_key="column_action.id", index=True)
    column_id: str = Field(foreign_key="board_column.id", index=True)
    task_id: Optional[str] = Field(default=None, foreign_key="task.id", index=True)
    trigger: Optional[ActionTrigger] = Field(default=None)
    success: bool
    message: str = Field(default="")
    created_entity_id: Optional[str] = Field(default=None)
    created_entity_type: Optional[str] = Field(default=None)
    error: Optional[str] = Field(default=None)
    details: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    executed_at: datetime = Field(default_factory=utcnow, index=True)
    executed_by_id: Optional[str] = Field(default=None, foreign_key="user.id")


class ActionEntityRecord(SQLModel, table=True):
    """Entity produced by an action for a task; backs the idempotent bypass."""
    __tablename__ = "action_entity_record"
    __table_args__ = (
        UniqueConstraint('task_id', 'action_id', name='uq_action_entity_task_action'),
    )

    id: str = Field(default_factory=id_generator('entrec', 10), primary_key=True)
    task_id: str = Field(foreign_key="task.id", index=True)
    action_id: str = Field(foreign_key="column_action.id", index=True)
    entity_type: str
    entity_id: str
    created_at: datetime = Field(default_factory=utcnow)


class ActionSchedule(SQLModel, table=True):
    """Timer for one on_stay action of one resident task."""
    __tablename__ = "action_schedule"
    __table_args__ = (
        UniqueConstraint('task_id', 'action_id', name='uq_action_schedule_task_action'),
    )

    id: str = Field(default_factory=id_generator('sched', 10), primary_key=True)
    task_id: str = Field(foreign_key="task.id", index=True)
    action_id: str = Field(foreign_key="column_action.id", index=True)
    column_id: str = Field(foreign_key="board_column.id", index=True)
    from_column_id: Optional[str] = Field(default=None)
    status: ScheduleStatus = Field(default=ScheduleStatus.SCHEDULED, index=True)
    entered_at: datetime = Field(default_factory=utcnow)
    next_run_at: datetime
    execution_count: int = Field(default=0)
    last_execution_at: Optional[datetime] = Field(default=None)
    failure_count: int = Field(default=0)
    last_error: Optional[str] = Field(default=None)
    claimed_at: Optional[datetime] = Field(default=None)
