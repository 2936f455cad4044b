"""
Custom condition evaluation.

A condition compares one task field against a configured operand. The
operators a field accepts depend on its canonical type, and operands are
normalized to that type before they are stored and again before comparing,
so `normalize_condition_value` must be idempotent.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from models.boards import Task
from models.rules import ConditionOperator, ValueType
from .config import Condition
from .errors import ConfigurationError
from .fields import field_identity, field_value_type, is_known_field, read_task_field
from .values import is_blank, parse_bool, parse_date, parse_number, plain

OPERATORS_WITHOUT_VALUE = (ConditionOperator.EMPTY, ConditionOperator.NOT_EMPTY)
OPERATORS_REQUIRING_ARRAY = (ConditionOperator.IN, ConditionOperator.NOT_IN)

_EQUALITY = (ConditionOperator.EQUALS, ConditionOperator.NOT_EQUALS)
_ORDERING = (
    ConditionOperator.GREATER_THAN,
    ConditionOperator.LESS_THAN,
    ConditionOperator.GREATER_OR_EQUAL,
    ConditionOperator.LESS_OR_EQUAL,
)
_CONTAINMENT = (ConditionOperator.CONTAINS, ConditionOperator.NOT_CONTAINS)

ALLOWED_OPERATORS: Dict[ValueType, Tuple[ConditionOperator, ...]] = {
    ValueType.STRING: OPERATORS_WITHOUT_VALUE + _EQUALITY + _CONTAINMENT + OPERATORS_REQUIRING_ARRAY,
    ValueType.DATE: OPERATORS_WITHOUT_VALUE + _EQUALITY + _ORDERING,
    ValueType.NUMBER: OPERATORS_WITHOUT_VALUE + _EQUALITY + _ORDERING + OPERATORS_REQUIRING_ARRAY,
    ValueType.BOOLEAN: OPERATORS_WITHOUT_VALUE + _EQUALITY,
    ValueType.ARRAY: OPERATORS_WITHOUT_VALUE + _CONTAINMENT,
}


def allowed_operators_for_field(field: str, declared: Optional[ValueType] = None) -> Tuple[ConditionOperator, ...]:
    value_type = field_value_type(field, declared)
    if value_type is None:
        return OPERATORS_WITHOUT_VALUE
    return ALLOWED_OPERATORS[value_type]


def _element_type(value_type: ValueType) -> ValueType:
    # Operands of an array field are the string elements it may contain.
    if value_type == ValueType.ARRAY:
        return ValueType.STRING
    return value_type


def normalize_scalar(value: Any, value_type: ValueType) -> Any:
    """Coerce one operand to its canonical representation.

    Raises ValueError when the value cannot represent the type.
    """
    value = plain(value)
    value_type = _element_type(ValueType(value_type))
    if value_type == ValueType.NUMBER:
        return parse_number(value)
    if value_type == ValueType.DATE:
        return parse_date(value).isoformat()
    if value_type == ValueType.BOOLEAN:
        return parse_bool(value)
    if isinstance(value, (list, tuple, dict)):
        raise ValueError(f"Expected a single value, got {value!r}")
    return str(value).strip()


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    if isinstance(value, str):
        return [part for part in (item.strip() for item in value.split(",")) if part]
    return [value]


def normalize_condition_value(value: Any, value_type: ValueType, operator: ConditionOperator) -> Any:
    """Normalize a condition operand for storage and comparison."""
    operator = ConditionOperator(operator)
    if operator in OPERATORS_WITHOUT_VALUE:
        return None
    if operator in OPERATORS_REQUIRING_ARRAY:
        normalized = []
        for item in _as_list(value):
            scalar = normalize_scalar(item, value_type)
            if scalar not in normalized:
                normalized.append(scalar)
        return normalized
    return normalize_scalar(value, value_type)


def prepare_condition(condition: Condition) -> Condition:
    """Check a condition against the field catalog and normalize its value.

    Raises ConfigurationError for unknown fields, operators the field type
    does not accept, mismatched value types and missing or malformed operands.
    """
    if not is_known_field(condition.field):
        raise ConfigurationError(f"Unknown condition field: {condition.field}", field="condition.field")

    canonical_type = field_value_type(condition.field, condition.value_type)
    if condition.value_type is not None and condition.value_type != canonical_type:
        raise ConfigurationError(
            f"Field {condition.field} is {canonical_type.value}, "
            f"not {condition.value_type.value}",
            field="condition.valueType",
        )

    if condition.operator not in allowed_operators_for_field(condition.field, canonical_type):
        raise ConfigurationError(
            f"Operator {condition.operator.value} is not allowed on "
            f"{canonical_type.value} field {condition.field}",
            field="condition.operator",
        )

    try:
        value = normalize_condition_value(condition.value, canonical_type, condition.operator)
    except ValueError as exc:
        raise ConfigurationError(
            f"Invalid value for {condition.field}: {exc}", field="condition.value"
        ) from exc

    if condition.operator not in OPERATORS_WITHOUT_VALUE and is_blank(value):
        raise ConfigurationError(
            f"Operator {condition.operator.value} needs a value", field="condition.value"
        )

    return Condition(
        field=field_identity(condition.field),
        operator=condition.operator,
        value=value,
        value_type=canonical_type,
    )


def _comparable(value: Any, value_type: ValueType) -> Any:
    if value_type == ValueType.DATE:
        return parse_date(value)
    return value


def _text_key(value: Any) -> Any:
    if isinstance(value, str):
        return value.casefold()
    return value


def operand_key(value: Any, value_type: ValueType) -> Any:
    """Operand as the evaluator compares it; text is case-insensitive and lists unordered."""
    if isinstance(value, list):
        return sorted({operand_key(item, value_type) for item in value}, key=str)
    if value_type in (ValueType.STRING, ValueType.ARRAY):
        return _text_key(value)
    return value


def evaluate_condition(condition: Condition, task: Task) -> Tuple[bool, Dict[str, Any]]:
    """Evaluate a (prepared or raw) condition against a task.

    Returns `(passed, details)`; a task value that cannot be read as the
    field's type fails the condition instead of raising.
    """
    value_type = field_value_type(condition.field, condition.value_type) or ValueType.STRING
    operator = ConditionOperator(condition.operator)
    raw = read_task_field(task, condition.field)
    details: Dict[str, Any] = {
        "field": condition.field,
        "operator": operator.value,
        "expected": condition.value,
    }

    if operator == ConditionOperator.EMPTY:
        details["actual"] = _jsonable(raw)
        return is_blank(raw), details
    if operator == ConditionOperator.NOT_EMPTY:
        details["actual"] = _jsonable(raw)
        return not is_blank(raw), details

    if is_blank(raw):
        details["actual"] = None
        # Nothing is "not equal"/"not in"/"not containing" something more than an empty field.
        return operator in (
            ConditionOperator.NOT_EQUALS, ConditionOperator.NOT_IN, ConditionOperator.NOT_CONTAINS
        ), details

    try:
        expected = normalize_condition_value(condition.value, value_type, operator)
        if value_type == ValueType.ARRAY:
            actual = [_text_key(normalize_scalar(item, ValueType.STRING)) for item in _as_list(raw)]
        else:
            actual = normalize_scalar(raw, value_type)
    except ValueError as exc:
        details["actual"] = _jsonable(raw)
        details["error"] = str(exc)
        return False, details

    details["actual"] = actual
    passed = _compare(operator, value_type, actual, expected)
    return passed, details


def _compare(operator: ConditionOperator, value_type: ValueType, actual: Any, expected: Any) -> bool:
    if value_type == ValueType.ARRAY:
        contained = _text_key(expected) in actual
        return contained if operator == ConditionOperator.CONTAINS else not contained

    if operator in OPERATORS_REQUIRING_ARRAY:
        members = [_text_key(item) for item in expected]
        found = _text_key(actual) in members
        return found if operator == ConditionOperator.IN else not found

    if operator == ConditionOperator.EQUALS:
        return _text_key(actual) == _text_key(expected)
    if operator == ConditionOperator.NOT_EQUALS:
        return _text_key(actual) != _text_key(expected)

    if operator in _CONTAINMENT:
        contained = _text_key(expected) in _text_key(str(actual))
        return contained if operator == ConditionOperator.CONTAINS else not contained

    left = _comparable(actual, value_type)
    right = _comparable(expected, value_type)
    if operator == ConditionOperator.GREATER_THAN:
        return left > right
    if operator == ConditionOperator.LESS_THAN:
        return left < right
    if operator == ConditionOperator.GREATER_OR_EQUAL:
        return left >= right
    return left <= right


def _jsonable(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    return value
