"""
Validation evaluator.

Runs every applicable validation of the destination column, in order, and
reduces the results to a blocked flag plus warnings. Evaluation never stops
at the first failure so callers can show every failing reason at once.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlmodel import Session, select

from models.boards import Task
from models.checklists import Checklist, ChecklistItem
from models.documents import Document, TaskDocument
from models.rules import ColumnValidation, ValidationBehavior, ValidationType
from settings import logger
from .collaborators import HistorySink
from .conditions import evaluate_condition
from .config import (
    CustomConditionConfig, RequiredChecklistConfig, RequiredDocumentConfig,
    RequiredFieldConfig, RequiredRelationshipConfig, parse_validation_config
)
from .context import MoveContext, rule_applies
from .errors import ConfigurationError
from .fields import read_task_field
from .values import is_blank


@dataclass
class ValidationResult:
    validation_id: str
    validation_type: ValidationType
    behavior: ValidationBehavior
    passed: bool
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    field_name: Optional[str] = None
    custom_field_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "validationId": self.validation_id,
            "validationType": self.validation_type.value,
            "behavior": self.behavior.value,
            "passed": self.passed,
            "message": self.message,
            "details": self.details,
            "fieldName": self.field_name,
            "customFieldId": self.custom_field_id,
        }


@dataclass
class ValidationOutcome:
    results: List[ValidationResult] = field(default_factory=list)

    @property
    def failed(self) -> List[ValidationResult]:
        return [result for result in self.results if not result.passed]

    @property
    def blocked(self) -> bool:
        return any(result.behavior == ValidationBehavior.BLOCK for result in self.failed)

    @property
    def warnings(self) -> List[str]:
        return [
            result.message for result in self.failed
            if result.behavior != ValidationBehavior.BLOCK
        ]

    @property
    def marks_incomplete(self) -> bool:
        return any(result.behavior == ValidationBehavior.MARK_INCOMPLETE for result in self.failed)


class ValidationEvaluator:
    """Evaluates the validations of a destination column against a move."""

    def __init__(self, db_session: Session, history: Optional[HistorySink] = None):
        self.db_session = db_session
        self.history = history
        self._checks: Dict[ValidationType, Callable[[Any, Task], Dict[str, Any]]] = {
            ValidationType.REQUIRED_FIELD: self._check_required_field,
            ValidationType.REQUIRED_CHECKLIST: self._check_required_checklist,
            ValidationType.REQUIRED_DOCUMENT: self._check_required_document,
            ValidationType.REQUIRED_RELATIONSHIP: self._check_required_relationship,
            ValidationType.CUSTOM_CONDITION: self._check_custom_condition,
        }

    def applicable(self, context: MoveContext) -> List[ColumnValidation]:
        statement = (
            select(ColumnValidation)
            .where(ColumnValidation.column_id == context.to_column.id)
            .where(ColumnValidation.is_active == True)
            .order_by(ColumnValidation.order, ColumnValidation.created_at)
        )
        validations = self.db_session.exec(statement).all()
        return [validation for validation in validations if rule_applies(validation, context)]

    def evaluate(self, context: MoveContext) -> ValidationOutcome:
        outcome = ValidationOutcome()
        for validation in self.applicable(context):
            result = self.check(validation, context.task)
            outcome.results.append(result)
            if self.history is not None:
                self.history.record_validation(
                    validation, context.to_column.id, context.task.id,
                    result.passed, result.message, result.details, context.actor_id
                )

        logger.info("Validations evaluated", extra={
            "task_id": context.task.id,
            "to_column_id": context.to_column.id,
            "from_column_id": context.from_column_id,
            "evaluated": len(outcome.results),
            "failed": len(outcome.failed),
            "blocked": outcome.blocked
        })
        return outcome

    def check(self, validation: ColumnValidation, task: Task) -> ValidationResult:
        validation_type = ValidationType(validation.type)
        result = ValidationResult(
            validation_id=validation.id,
            validation_type=validation_type,
            behavior=ValidationBehavior(validation.behavior),
            passed=False,
            message=validation.message,
        )

        try:
            config = parse_validation_config(validation_type, validation.config)
        except ConfigurationError as exc:
            logger.error("Stored validation config is invalid", extra={
                "validation_id": validation.id,
                "error": exc.message
            })
            result.details = {"error": exc.message}
            return result

        if isinstance(config, RequiredFieldConfig):
            result.field_name = config.field_name
            result.custom_field_id = config.custom_field_id

        details = self._checks[validation_type](config, task)
        result.passed = details.pop("passed")
        result.details = details
        return result

    def _check_required_field(self, config: RequiredFieldConfig, task: Task) -> Dict[str, Any]:
        if config.custom_field_id:
            value = (task.custom_fields or {}).get(config.custom_field_id)
        else:
            try:
                value = read_task_field(task, config.field_name)
            except KeyError:
                value = getattr(task, config.field_name, None)
        has_value = not is_blank(value)
        return {
            "passed": has_value,
            "fieldName": config.field_name,
            "customFieldId": config.custom_field_id,
            "hasValue": has_value,
        }

    def _check_required_checklist(self, config: RequiredChecklistConfig, task: Task) -> Dict[str, Any]:
        statement = select(Checklist).where(Checklist.task_id == task.id)
        checklists = self.db_session.exec(statement).all()
        checklist = next(
            (item for item in checklists
             if item.template_id == config.checklist_id or item.id == config.checklist_id),
            None
        )
        if checklist is None:
            return {"passed": False, "checklistId": config.checklist_id, "found": False,
                    "completedItems": 0, "totalItems": 0}

        items = self.db_session.exec(
            select(ChecklistItem).where(ChecklistItem.checklist_id == checklist.id)
        ).all()
        if config.all_items_required or not config.required_items:
            required = list(items)
        else:
            wanted = set(config.required_items)
            required = [item for item in items if item.id in wanted or item.title in wanted]

        completed = [item for item in required if item.is_completed]
        passed = len(required) > 0 and len(completed) == len(required)
        return {
            "passed": passed,
            "checklistId": config.checklist_id,
            "found": True,
            "completedItems": len(completed),
            "totalItems": len(required),
            "pendingItems": [item.title for item in required if not item.is_completed],
        }

    def _check_required_document(self, config: RequiredDocumentConfig, task: Task) -> Dict[str, Any]:
        statement = (
            select(Document)
            .join(TaskDocument, TaskDocument.document_id == Document.id)
            .where(TaskDocument.task_id == task.id)
            .where(Document.document_type == config.document_type)
        )
        documents = self.db_session.exec(statement).all()
        if config.document_status != "any":
            documents = [
                document for document in documents
                if getattr(document.status, "value", document.status) == config.document_status
            ]
        return {
            "passed": len(documents) >= config.min_documents,
            "documentType": config.document_type,
            "documentStatus": config.document_status,
            "foundDocuments": len(documents),
            "minDocuments": config.min_documents,
        }

    def _check_required_relationship(self, config: RequiredRelationshipConfig, task: Task) -> Dict[str, Any]:
        linked_id = {
            "client": task.client_id,
            "property": task.property_id,
            "project": task.project_id,
        }[config.relationship_type]
        return {
            "passed": bool(linked_id),
            "relationshipType": config.relationship_type,
            "linkedId": linked_id,
        }

    def _check_custom_condition(self, config: CustomConditionConfig, task: Task) -> Dict[str, Any]:
        passed, details = evaluate_condition(config.condition, task)
        details["passed"] = passed
        return details
