from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON
from typing import Optional, Dict, Any
from datetime import datetime
from .helper import id_generator, utcnow


class Client(SQLModel, table=True):
    """Customer record, usually created from a task by a create_client action."""
    id: str = Field(default_factory=id_generator('client', 10), primary_key=True)
    name: str = Field(index=True)
    email: Optional[str] = Field(default=None, index=True)
    phone: Optional[str] = Field(default=None)
    document_number: Optional[str] = Field(default=None, index=True)
    extra: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)


class Property(SQLModel, table=True):
    """Real-estate property record."""
    id: str = Field(default_factory=id_generator('property', 10), primary_key=True)
    title: str = Field(index=True)
    address: Optional[str] = Field(default=None)
    price: Optional[float] = Field(default=None)
    owner_email: Optional[str] = Field(default=None)
    extra: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)


class Project(SQLModel, table=True):
    """Project (development, building, campaign) that tasks can belong to."""
    id: str = Field(default_factory=id_generator('project', 10), primary_key=True)
    name: str = Field(index=True)
    description: str = Field(default="")
    extra: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
