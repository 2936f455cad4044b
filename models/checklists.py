from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from .helper import id_generator


class Checklist(SQLModel, table=True):
    """Checklist attached to a task, optionally instantiated from a template."""
    id: str = Field(default_factory=id_generator('checklist', 10), primary_key=True)
    task_id: str = Field(foreign_key="task.id", index=True)
    template_id: Optional[str] = Field(default=None, index=True)
    title: str


class ChecklistItem(SQLModel, table=True):
    """Single checkable entry of a checklist."""
    id: str = Field(default_factory=id_generator('item', 10), primary_key=True)
    checklist_id: str = Field(foreign_key="checklist.id", index=True)
    title: str
    is_completed: bool = Field(default=False)
    completed_at: Optional[datetime] = Field(default=None)
