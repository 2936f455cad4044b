"""
Catalog of task fields that rules can reference.

Rules name fields the way the board client does (`assignedToId`, `dueDate`);
snake_case spellings are accepted too. Custom fields are addressed as
`customFields.<key>`.
"""

from typing import Any, Dict, Optional, Tuple

from models.boards import Task
from models.rules import ValueType
from .values import plain

CUSTOM_FIELD_PREFIXES = ("customFields.", "custom_fields.")

# contract name -> (Task attribute, canonical value type)
TASK_FIELDS: Dict[str, Tuple[str, ValueType]] = {
    "title": ("title", ValueType.STRING),
    "description": ("description", ValueType.STRING),
    "priority": ("priority", ValueType.STRING),
    "assignedToId": ("assigned_to_id", ValueType.STRING),
    "createdById": ("created_by_id", ValueType.STRING),
    "projectId": ("project_id", ValueType.STRING),
    "clientId": ("client_id", ValueType.STRING),
    "propertyId": ("property_id", ValueType.STRING),
    "source": ("source", ValueType.STRING),
    "dueDate": ("due_date", ValueType.DATE),
    "closingForecast": ("closing_forecast", ValueType.DATE),
    "createdAt": ("created_at", ValueType.DATE),
    "columnEnteredAt": ("column_entered_at", ValueType.DATE),
    "totalValue": ("total_value", ValueType.NUMBER),
    "isCompleted": ("is_completed", ValueType.BOOLEAN),
    "tags": ("tags", ValueType.ARRAY),
}

_BY_ATTRIBUTE = {attribute: name for name, (attribute, _) in TASK_FIELDS.items()}


def canonical_field_name(name: str) -> Optional[str]:
    """Return the contract spelling of a task field, or None when unknown."""
    if name in TASK_FIELDS:
        return name
    return _BY_ATTRIBUTE.get(name)


def custom_field_key(name: str) -> Optional[str]:
    for prefix in CUSTOM_FIELD_PREFIXES:
        if name.startswith(prefix) and len(name) > len(prefix):
            return name[len(prefix):]
    return None


def field_identity(name: str) -> str:
    """One spelling per field, so `assigned_to_id` and `assignedToId` compare equal."""
    key = custom_field_key(name)
    if key is not None:
        return CUSTOM_FIELD_PREFIXES[0] + key
    return canonical_field_name(name) or name


def is_known_field(name: str) -> bool:
    return canonical_field_name(name) is not None or custom_field_key(name) is not None


def field_value_type(name: str, declared: Optional[ValueType] = None) -> Optional[ValueType]:
    """Canonical value type of a field.

    Custom fields carry no schema here, so their type is whatever the rule
    declares (string when nothing is declared).
    """
    canonical = canonical_field_name(name)
    if canonical is not None:
        return TASK_FIELDS[canonical][1]
    if custom_field_key(name) is not None:
        return declared or ValueType.STRING
    return None


def read_task_field(task: Task, name: str) -> Any:
    """Read a task field or custom field by its rule-facing name."""
    key = custom_field_key(name)
    if key is not None:
        return (task.custom_fields or {}).get(key)

    canonical = canonical_field_name(name)
    if canonical is None:
        raise KeyError(name)
    attribute, _ = TASK_FIELDS[canonical]
    return plain(getattr(task, attribute))
