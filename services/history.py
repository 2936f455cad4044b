from sqlmodel import Session
from typing import Any, Dict, Optional
from models.rules import ActionExecution, ActionTrigger, ColumnAction, ColumnValidation, ValidationExecution
from rules.collaborators import HistorySink


class SqlHistorySink(HistorySink):
    """Writes execution history rows; rows are never updated afterwards."""

    def __init__(self, db_session: Session):
        self.db_session = db_session

    def record_validation(self, validation: Optional[ColumnValidation], column_id: str,
                          task_id: str, passed: bool, message: str,
                          details: Dict[str, Any], actor_id: Optional[str]) -> None:
        self.db_session.add(ValidationExecution(
            validation_id=validation.id if validation else None,
            column_id=column_id,
            task_id=task_id,
            passed=passed,
            message=message,
            details=details,
            executed_by_id=actor_id
        ))
        self.db_session.commit()

    def record_action(self, action: Optional[ColumnAction], column_id: str, task_id: str,
                      trigger: Optional[ActionTrigger], success: bool, message: str,
                      details: Dict[str, Any], actor_id: Optional[str],
                      created_entity_id: Optional[str] = None,
                      created_entity_type: Optional[str] = None,
                      error: Optional[str] = None) -> None:
        self.db_session.add(ActionExecution(
            action_id=action.id if action else None,
            column_id=column_id,
            task_id=task_id,
            trigger=trigger,
            success=success,
            message=message,
            created_entity_id=created_entity_id,
            created_entity_type=created_entity_type,
            error=error,
            details=details,
            executed_by_id=actor_id
        ))
        self.db_session.commit()
