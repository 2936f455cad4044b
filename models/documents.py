from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON
from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime
from .helper import id_generator, utcnow


class DocumentStatus(str, Enum):
    """Lifecycle status of a document."""
    PENDING = "pending"
    SIGNED = "signed"
    APPROVED = "approved"


class Document(SQLModel, table=True):
    """File information without ownership context."""
    id: str = Field(default_factory=id_generator('document', 10), primary_key=True)
    file_name: str = Field(index=True)
    file_url: Optional[str] = Field(default=None)
    mime_type: Optional[str] = Field(default=None)
    document_type: Optional[str] = Field(default=None, index=True)
    status: DocumentStatus = Field(default=DocumentStatus.PENDING, index=True)
    extra: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    uploaded_at: datetime = Field(default_factory=utcnow, index=True)
    uploaded_by_user_id: Optional[str] = Field(default=None, foreign_key="user.id", index=True)


class TaskDocument(SQLModel, table=True):
    """Links a Document with a Task."""
    task_id: str = Field(foreign_key="task.id", primary_key=True)
    document_id: str = Field(foreign_key="document.id", primary_key=True)
