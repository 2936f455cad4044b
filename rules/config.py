"""
Typed configuration variants for validations and actions.

Each validation/action `type` owns one config model; `parse_validation_config`
and `parse_action_config` turn the stored JSON into the matching variant via a
pydantic discriminated union on `type`.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator
from pydantic.alias_generators import to_camel
from typing_extensions import Annotated

from models.boards import TaskPriority
from models.rules import (
    ActionType, ConditionOperator, FieldTransform, ValidationType, ValueType
)
from .errors import ConfigurationError


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys, also accepts snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# Conditions

class Condition(CamelModel):
    field: str
    operator: ConditionOperator
    value: Any = None
    value_type: Optional[ValueType] = None


# Validation configs

class RequiredFieldConfig(CamelModel):
    type: Literal["required_field"] = "required_field"
    field_name: Optional[str] = None
    custom_field_id: Optional[str] = None

    @model_validator(mode="after")
    def _needs_a_field(self):
        if not self.field_name and not self.custom_field_id:
            raise ValueError("fieldName or customFieldId is required")
        return self


class RequiredChecklistConfig(CamelModel):
    type: Literal["required_checklist"] = "required_checklist"
    checklist_id: str
    required_items: List[str] = Field(default_factory=list)
    all_items_required: bool = True


class RequiredDocumentConfig(CamelModel):
    type: Literal["required_document"] = "required_document"
    document_type: str
    document_status: Literal["any", "signed", "approved"] = "any"
    min_documents: int = Field(default=1, ge=1)


class RequiredRelationshipConfig(CamelModel):
    type: Literal["required_relationship"] = "required_relationship"
    relationship_type: Literal["client", "property", "project"]


class CustomConditionConfig(CamelModel):
    type: Literal["custom_condition"] = "custom_condition"
    condition: Condition


ValidationConfig = Annotated[
    Union[
        RequiredFieldConfig,
        RequiredChecklistConfig,
        RequiredDocumentConfig,
        RequiredRelationshipConfig,
        CustomConditionConfig,
    ],
    Field(discriminator="type"),
]


# Action configs

class FieldMapping(CamelModel):
    source: Literal["task_field", "custom_field", "user_field", "project_field", "fixed_value"]
    source_field: Optional[str] = None
    custom_field_id: Optional[str] = None
    target_field: Optional[str] = None
    transform: Optional[FieldTransform] = None
    default_value: Any = None
    required: bool = False

    @model_validator(mode="after")
    def _needs_a_source_reference(self):
        if self.source == "custom_field" and not (self.custom_field_id or self.source_field):
            raise ValueError("custom_field mappings need customFieldId")
        if self.source in ("task_field", "user_field", "project_field") and not self.source_field:
            raise ValueError(f"{self.source} mappings need sourceField")
        return self


class RecipientConfig(CamelModel):
    type: Literal[
        "user", "role", "email", "task_assignee", "task_creator", "client", "property_owner"
    ]
    value: Optional[str] = None

    @model_validator(mode="after")
    def _needs_value(self):
        if self.type in ("user", "role", "email") and not self.value:
            raise ValueError(f"recipient type {self.type} needs a value")
        return self


class _EntityCreationConfig(CamelModel):
    field_mapping: Dict[str, FieldMapping] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _key_mappings_by_target(self):
        for key, mapping in self.field_mapping.items():
            if mapping.target_field is None:
                mapping.target_field = key
            elif mapping.target_field != key:
                raise ValueError(
                    f"mapping keyed '{key}' targets '{mapping.target_field}'"
                )
        return self


class CreatePropertyConfig(_EntityCreationConfig):
    type: Literal["create_property"] = "create_property"


class CreateClientConfig(_EntityCreationConfig):
    type: Literal["create_client"] = "create_client"


class CreateDocumentConfig(_EntityCreationConfig):
    type: Literal["create_document"] = "create_document"
    document_type: Optional[str] = None


class AssignUserConfig(CamelModel):
    type: Literal["assign_user"] = "assign_user"
    user_id: str


class SetPriorityConfig(CamelModel):
    type: Literal["set_priority"] = "set_priority"
    priority: TaskPriority


class SetDueDateConfig(CamelModel):
    type: Literal["set_due_date"] = "set_due_date"
    due_date_value: str


class AddTagConfig(CamelModel):
    type: Literal["add_tag"] = "add_tag"
    tag_names: List[str] = Field(default_factory=list)
    tag_ids: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _needs_tags(self):
        if not self.tag_names and not self.tag_ids:
            raise ValueError("tagNames or tagIds is required")
        return self


class SendEmailConfig(CamelModel):
    type: Literal["send_email"] = "send_email"
    recipients: List[RecipientConfig] = Field(min_length=1)
    subject: str
    message: str


class SendNotificationConfig(CamelModel):
    type: Literal["send_notification"] = "send_notification"
    recipients: List[RecipientConfig] = Field(min_length=1)
    subject: str = ""
    message: str
    notification_type: Literal["info", "success", "warning", "error"] = "info"


class ScheduleEmailConfig(CamelModel):
    type: Literal["schedule_email"] = "schedule_email"
    recipients: List[RecipientConfig] = Field(min_length=1)
    subject: str
    message: str
    scheduled_for: str


class ScheduleTaskConfig(CamelModel):
    type: Literal["schedule_task"] = "schedule_task"
    target_column_id: Optional[str] = None
    task_data: Dict[str, Any] = Field(default_factory=dict)
    scheduled_for: Optional[str] = None


class StartEmailSequenceConfig(CamelModel):
    type: Literal["start_email_sequence"] = "start_email_sequence"
    sequence_id: str
    recipients: List[RecipientConfig] = Field(default_factory=list)


class UpdateScoreConfig(CamelModel):
    type: Literal["update_score"] = "update_score"
    points: Optional[int] = None


ActionConfig = Annotated[
    Union[
        CreatePropertyConfig,
        CreateClientConfig,
        CreateDocumentConfig,
        AssignUserConfig,
        SetPriorityConfig,
        SetDueDateConfig,
        AddTagConfig,
        SendEmailConfig,
        SendNotificationConfig,
        ScheduleEmailConfig,
        ScheduleTaskConfig,
        StartEmailSequenceConfig,
        UpdateScoreConfig,
    ],
    Field(discriminator="type"),
]

_validation_config_adapter = TypeAdapter(ValidationConfig)
_action_config_adapter = TypeAdapter(ActionConfig)


def _describe(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"][1:]) or "config"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def parse_validation_config(validation_type: ValidationType, config: Optional[Dict[str, Any]]):
    payload = dict(config or {})
    payload["type"] = ValidationType(validation_type).value
    try:
        return _validation_config_adapter.validate_python(payload)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid config for {payload['type']}: {_describe(exc)}", field="config"
        ) from exc


def parse_action_config(action_type: ActionType, config: Optional[Dict[str, Any]]):
    payload = dict(config or {})
    payload["type"] = ActionType(action_type).value
    try:
        return _action_config_adapter.validate_python(payload)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid config for {payload['type']}: {_describe(exc)}", field="config"
        ) from exc
