from typing import List, Optional


class RuleEngineError(Exception):
    """Base class for rule engine errors."""


class ConfigurationError(RuleEngineError):
    """A validation or action configuration was rejected before being stored."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class DuplicateRule(ConfigurationError):
    """An equivalent validation already exists in the column."""

    def __init__(self, message: str, existing_id: str):
        super().__init__(message)
        self.existing_id = existing_id


class RuleNotFound(RuleEngineError):
    """A column, task, validation or action does not exist."""

    def __init__(self, kind: str, identifier: Optional[str]):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class StaleMove(RuleEngineError):
    """The declared origin column no longer matches the task's column."""

    def __init__(self, task_id: str, declared: str, actual: str):
        super().__init__(
            f"Task {task_id} is in column {actual}, not in declared origin {declared}"
        )
        self.task_id = task_id
        self.declared = declared
        self.actual = actual


class ColumnInUse(RuleEngineError):
    """A column cannot be moved or removed while rules are bound to it."""

    def __init__(self, message: str, related_column_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.related_column_id = related_column_id


class MissingRequiredField(RuleEngineError):
    """Required field mappings resolved to no value."""

    def __init__(self, target_fields: List[str]):
        super().__init__("Missing required fields: " + ", ".join(target_fields))
        self.target_fields = target_fields


class TransformError(RuleEngineError):
    """A transform could not be applied to a value."""


class CollaboratorError(RuleEngineError):
    """An external collaborator (entity service, messaging, ...) failed."""


class NotAllowed(RuleEngineError):
    """The actor may not perform the requested operation."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
