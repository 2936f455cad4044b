"""
Field mapping transformer used by entity-creation actions.

A mapping reads one value from its source, falls back to the default when the
source is blank, then applies an optional transform. Transform failures pass
the untransformed value through.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models.auth import User
from models.boards import Task
from models.entities import Project
from models.rules import FieldTransform
from settings import logger
from .config import FieldMapping
from .errors import MissingRequiredField, TransformError
from .fields import read_task_field
from .values import digits_only, format_iso_date, is_blank, parse_number, plain


@dataclass
class MappingContext:
    """Everything a mapping may read from."""
    task: Task
    user: Optional[User] = None
    project: Optional[Project] = None
    overrides: Dict[str, Any] = field(default_factory=dict)


def _read_attribute(record: Any, name: str) -> Any:
    if record is None:
        return None
    if isinstance(record, dict):
        return record.get(name)
    value = getattr(record, name, None)
    if value is None and hasattr(record, "extra"):
        value = (record.extra or {}).get(name)
    return plain(value)


def read_source(mapping: FieldMapping, context: MappingContext) -> Any:
    if mapping.source == "fixed_value":
        return mapping.default_value
    if mapping.source == "task_field":
        try:
            return read_task_field(context.task, mapping.source_field)
        except KeyError:
            return _read_attribute(context.task, mapping.source_field)
    if mapping.source == "custom_field":
        key = mapping.custom_field_id or mapping.source_field
        return (context.task.custom_fields or {}).get(key)
    if mapping.source == "user_field":
        return _read_attribute(context.user, mapping.source_field)
    if mapping.source == "project_field":
        return _read_attribute(context.project, mapping.source_field)
    raise ValueError(f"Unsupported mapping source: {mapping.source}")


def _format_cpf(value: Any) -> str:
    digits = digits_only(value)
    if len(digits) != 11:
        raise TransformError(f"CPF needs 11 digits, got {len(digits)}")
    return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"


def _format_cnpj(value: Any) -> str:
    digits = digits_only(value)
    if len(digits) != 14:
        raise TransformError(f"CNPJ needs 14 digits, got {len(digits)}")
    return f"{digits[:2]}.{digits[2:5]}.{digits[5:8]}/{digits[8:12]}-{digits[12:]}"


def _format_phone(value: Any) -> str:
    digits = digits_only(value)
    prefix = ""
    if len(digits) in (12, 13) and digits.startswith("55"):
        prefix, digits = "+55 ", digits[2:]
    if len(digits) == 10:
        return f"{prefix}({digits[:2]}) {digits[2:6]}-{digits[6:]}"
    if len(digits) == 11:
        return f"{prefix}({digits[:2]}) {digits[2:7]}-{digits[7:]}"
    raise TransformError(f"Phone needs 10 or 11 digits, got {len(digits)}")


def _format_currency(value: Any) -> str:
    try:
        amount = float(parse_number(value))
    except ValueError as exc:
        raise TransformError(str(exc)) from exc
    sign = "-" if amount < 0 else ""
    grouped = f"{abs(amount):,.2f}"
    # 1,234.56 -> 1.234,56
    grouped = grouped.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}R$ {grouped}"


def _require_text(value: Any) -> str:
    if not isinstance(value, str):
        raise TransformError(f"Expected text, got {type(value).__name__}")
    return value


def apply_transform(value: Any, transform: Optional[FieldTransform]) -> Any:
    """Apply a transform, degrading to the original value when it cannot apply."""
    if transform is None or value is None:
        return value

    transform = FieldTransform(transform)
    try:
        if transform == FieldTransform.UPPERCASE:
            return _require_text(value).upper()
        if transform == FieldTransform.LOWERCASE:
            return _require_text(value).lower()
        if transform == FieldTransform.CAPITALIZE:
            return " ".join(word.capitalize() for word in _require_text(value).split())
        if transform == FieldTransform.TRIM:
            return _require_text(value).strip()
        if transform == FieldTransform.EXTRACT_NUMBERS:
            return digits_only(value)
        if transform == FieldTransform.FORMAT_CPF:
            return _format_cpf(value)
        if transform == FieldTransform.FORMAT_CNPJ:
            return _format_cnpj(value)
        if transform == FieldTransform.FORMAT_PHONE:
            return _format_phone(value)
        if transform == FieldTransform.FORMAT_DATE:
            return format_iso_date(value)
        if transform == FieldTransform.FORMAT_CURRENCY:
            return _format_currency(value)
    except (TransformError, ValueError, TypeError) as exc:
        logger.warning("Transform failed, keeping original value", extra={
            "transform": transform.value,
            "error": str(exc)
        })
        return value
    return value


def resolve_mapping(mapping: FieldMapping, context: MappingContext) -> Any:
    """Resolve one mapping to its final value (None when nothing resolves)."""
    value = plain(read_source(mapping, context))
    if is_blank(value):
        value = mapping.default_value
    if is_blank(value):
        return None
    return apply_transform(value, mapping.transform)


def build_payload(field_mapping: Dict[str, FieldMapping], context: MappingContext) -> Dict[str, Any]:
    """Build an entity payload from a mapping keyed by target field.

    `context.overrides` (form data supplied at move time) win over mapped
    values. Raises MissingRequiredField listing every required target that
    resolved to nothing.
    """
    payload: Dict[str, Any] = {}
    missing: List[str] = []

    for target_field, mapping in field_mapping.items():
        if target_field in context.overrides and not is_blank(context.overrides[target_field]):
            payload[target_field] = context.overrides[target_field]
            continue
        value = resolve_mapping(mapping, context)
        if value is None:
            if mapping.required:
                missing.append(target_field)
            continue
        payload[target_field] = value

    for target_field, value in context.overrides.items():
        if target_field not in payload and not is_blank(value):
            payload[target_field] = value

    if missing:
        raise MissingRequiredField(missing)
    return payload
