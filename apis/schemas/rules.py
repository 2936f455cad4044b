from pydantic import Field
from typing import Any, Dict, List, Optional
from datetime import datetime
from models.rules import ActionTrigger, ActionType, ValidationBehavior, ValidationType
from rules.store import ActionDraft, ValidationDraft
from .base import CamelSchema

# Rule writes are full replaces; create and update share one body.
ValidationRequest = ValidationDraft
ActionRequest = ActionDraft


class ReorderRequest(CamelSchema):
    """Schema for reordering the rules of a column."""
    ids: List[str] = Field(..., description="Every rule id of the column, in the new order")


class RemovalResponse(CamelSchema):
    """Outcome of a rule removal."""
    id: str
    outcome: str = Field(..., description="deleted, or deactivated when history references the rule")


# Response Schemas
class ValidationResponse(CamelSchema):
    """Schema for validation responses."""
    id: str
    column_id: str
    type: ValidationType
    config: Dict[str, Any]
    behavior: ValidationBehavior
    message: str
    from_column_id: Optional[str] = None
    require_adjacent_position: bool
    order: int
    is_active: bool
    created_at: datetime
    updated_at: datetime
    created_by_id: Optional[str] = None


class ActionResponse(CamelSchema):
    """Schema for action responses."""
    id: str
    column_id: str
    trigger: ActionTrigger
    type: ActionType
    config: Dict[str, Any]
    from_column_id: Optional[str] = None
    require_adjacent_position: bool
    order: int
    is_active: bool
    interval_hours: Optional[float] = None
    max_executions: int
    execution_count: int
    last_execution_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    created_by_id: Optional[str] = None


class ValidationExecutionResponse(CamelSchema):
    id: str
    validation_id: Optional[str] = None
    column_id: str
    task_id: Optional[str] = None
    passed: bool
    message: str
    details: Dict[str, Any]
    executed_at: datetime
    executed_by_id: Optional[str] = None


class ActionExecutionResponse(CamelSchema):
    id: str
    action_id: Optional[str] = None
    column_id: str
    task_id: Optional[str] = None
    trigger: Optional[ActionTrigger] = None
    success: bool
    message: str
    created_entity_id: Optional[str] = None
    created_entity_type: Optional[str] = None
    error: Optional[str] = None
    details: Dict[str, Any]
    executed_at: datetime
    executed_by_id: Optional[str] = None
