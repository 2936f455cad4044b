from pydantic import Field
from typing import Any, Dict, List, Optional
from datetime import date, datetime
from models.boards import TaskPriority
from models.documents import DocumentStatus
from rules.orchestrator import MoveRequest
from .base import CamelSchema

MoveTaskRequest = MoveRequest


class CreateTaskRequest(CamelSchema):
    """Schema for creating a new task."""
    title: str = Field(..., description="Task title")
    description: str = Field(default="", description="Task description")
    column_id: str = Field(..., description="Column where the task is placed")
    priority: Optional[TaskPriority] = Field(default=None, description="Task priority")
    assigned_to_id: Optional[str] = Field(default=None, description="Assigned user")
    due_date: Optional[date] = Field(default=None, description="Due date")
    project_id: Optional[str] = Field(default=None, description="Linked project")
    client_id: Optional[str] = Field(default=None, description="Linked client")
    property_id: Optional[str] = Field(default=None, description="Linked property")
    tags: List[str] = Field(default_factory=list, description="Tags")
    custom_fields: Dict[str, Any] = Field(default_factory=dict, description="Custom field values by id")
    total_value: Optional[float] = Field(default=None, description="Deal value")
    closing_forecast: Optional[date] = Field(default=None, description="Expected closing date")
    source: Optional[str] = Field(default=None, description="Lead source")


class UpdateTaskRequest(CamelSchema):
    """Schema for updating task data. Column changes go through the move endpoint."""
    title: Optional[str] = Field(default=None, description="New task title")
    description: Optional[str] = Field(default=None, description="New task description")
    priority: Optional[TaskPriority] = Field(default=None, description="New priority")
    assigned_to_id: Optional[str] = Field(default=None, description="New assigned user")
    due_date: Optional[date] = Field(default=None, description="New due date")
    project_id: Optional[str] = Field(default=None, description="New linked project")
    client_id: Optional[str] = Field(default=None, description="New linked client")
    property_id: Optional[str] = Field(default=None, description="New linked property")
    tags: Optional[List[str]] = Field(default=None, description="New tags")
    custom_fields: Optional[Dict[str, Any]] = Field(default=None, description="Custom fields to merge")
    total_value: Optional[float] = Field(default=None, description="New deal value")
    closing_forecast: Optional[date] = Field(default=None, description="New closing forecast")
    source: Optional[str] = Field(default=None, description="New lead source")
    is_completed: Optional[bool] = Field(default=None, description="New completion flag")


class CreateTaskDocumentRequest(CamelSchema):
    """Schema for attaching a document to a task."""
    file_url: str = Field(..., description="URL or path to the file")
    file_name: str = Field(..., description="Name of the file")
    mime_type: Optional[str] = Field(default=None, description="MIME type of the file")
    document_type: Optional[str] = Field(default=None, description="Document type, e.g. contract")
    status: DocumentStatus = Field(default=DocumentStatus.PENDING, description="Document status")


class CreateChecklistRequest(CamelSchema):
    """Schema for adding a checklist to a task."""
    title: str = Field(..., description="Checklist title")
    template_id: Optional[str] = Field(default=None, description="Template the checklist comes from")
    items: List[str] = Field(default_factory=list, description="Item titles")


class UpdateChecklistItemRequest(CamelSchema):
    is_completed: bool = Field(..., description="Whether the item is done")


# Response Schemas
class DocumentResponse(CamelSchema):
    """Schema for document responses."""
    id: str
    file_url: Optional[str] = None
    file_name: str
    mime_type: Optional[str] = None
    document_type: Optional[str] = None
    status: DocumentStatus
    uploaded_at: datetime
    uploaded_by_user_id: Optional[str] = None


class ChecklistItemResponse(CamelSchema):
    id: str
    title: str
    is_completed: bool
    completed_at: Optional[datetime] = None


class ChecklistResponse(CamelSchema):
    id: str
    task_id: str
    template_id: Optional[str] = None
    title: str
    items: List[ChecklistItemResponse] = Field(default_factory=list)


class TaskResponse(CamelSchema):
    """Schema for task responses."""
    id: str
    board_id: Optional[str] = None
    column_id: str
    position: int
    title: str
    description: str
    priority: Optional[TaskPriority] = None
    assigned_to_id: Optional[str] = None
    created_by_id: Optional[str] = None
    due_date: Optional[date] = None
    project_id: Optional[str] = None
    client_id: Optional[str] = None
    property_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    custom_fields: Dict[str, Any] = Field(default_factory=dict)
    total_value: Optional[float] = None
    closing_forecast: Optional[date] = None
    source: Optional[str] = None
    is_completed: bool
    column_entered_at: datetime
    created_at: datetime
    updated_at: datetime


class TaskDetailResponse(TaskResponse):
    """Schema for detailed task responses including documents and checklists."""
    documents: List[DocumentResponse] = Field(default_factory=list)
    checklists: List[ChecklistResponse] = Field(default_factory=list)


class MoveTaskResponse(CamelSchema):
    """Result of a committed move."""
    task: TaskResponse
    validation_results: List[Dict[str, Any]] = Field(default_factory=list)
    action_results: List[Dict[str, Any]] = Field(default_factory=list)
    blocked: bool = False
    warnings: List[str] = Field(default_factory=list)
    state: str
    skipped_validations: bool = False
    skipped_actions: bool = False
