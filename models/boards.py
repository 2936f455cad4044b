from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON
from enum import Enum
from typing import Optional, List, Dict, Any
from datetime import date, datetime
from .helper import id_generator, utcnow


class TaskPriority(str, Enum):
    """Priority levels a task can carry."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Board(SQLModel, table=True):
    """Kanban-style board to organize work."""
    id: str = Field(default_factory=id_generator('board', 10), primary_key=True)
    name: str = Field(index=True)


class BoardColumn(SQLModel, table=True):
    """Positioned stage of a board; tasks move between columns."""
    __tablename__ = "board_column"

    id: str = Field(default_factory=id_generator('column', 10), primary_key=True)
    board_id: str = Field(foreign_key="board.id", index=True)
    title: str
    color: Optional[str] = Field(default=None)
    position: int = Field(default=0, index=True)
    is_active: bool = Field(default=True)


class Task(SQLModel, table=True):
    """Work unit within a board column."""
    id: str = Field(default_factory=id_generator('task', 10), primary_key=True)
    board_id: Optional[str] = Field(default=None, foreign_key="board.id", index=True)
    column_id: str = Field(foreign_key="board_column.id", index=True)
    position: int = Field(default=0)
    title: str
    description: str = Field(default="")
    priority: Optional[TaskPriority] = Field(default=None)
    assigned_to_id: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    created_by_id: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    due_date: Optional[date] = Field(default=None)
    project_id: Optional[str] = Field(default=None, foreign_key="project.id", index=True)
    client_id: Optional[str] = Field(default=None, foreign_key="client.id", index=True)
    property_id: Optional[str] = Field(default=None, foreign_key="property.id", index=True)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    custom_fields: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    total_value: Optional[float] = Field(default=None)
    closing_forecast: Optional[date] = Field(default=None)
    source: Optional[str] = Field(default=None)
    is_completed: bool = Field(default=False)
    column_entered_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)
