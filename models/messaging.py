from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON
from enum import Enum
from typing import Optional, Dict, Any, List
from datetime import datetime
from .helper import id_generator, utcnow


class MessageKind(str, Enum):
    """Channel an outbound message is delivered through."""
    EMAIL = "EMAIL"
    NOTIFICATION = "NOTIFICATION"


class DeliveryStatus(str, Enum):
    """Delivery status of an outbound message."""
    PENDING = "PENDING"
    SCHEDULED = "SCHEDULED"
    SENT = "SENT"
    FAILED = "FAILED"


class OutboundMessage(SQLModel, table=True):
    """Email or in-app notification produced by a column action."""
    __tablename__ = "outbound_message"

    id: str = Field(default_factory=id_generator('message', 10), primary_key=True)
    kind: MessageKind = Field(index=True)
    task_id: Optional[str] = Field(default=None, foreign_key="task.id", index=True)
    action_id: Optional[str] = Field(default=None, index=True)
    recipient: str = Field(index=True)
    recipient_user_id: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    subject: str = Field(default="")
    body: str = Field(default="")
    status: DeliveryStatus = Field(default=DeliveryStatus.PENDING, index=True)
    send_at: Optional[datetime] = Field(default=None, index=True)
    sent_at: Optional[datetime] = Field(default=None)
    readed: bool = Field(default=False)
    meta_data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)


class EmailSequenceEnrollment(SQLModel, table=True):
    """A task enrolled in an email sequence run by the messaging provider."""
    __tablename__ = "email_sequence_enrollment"

    id: str = Field(default_factory=id_generator('enroll', 10), primary_key=True)
    task_id: str = Field(foreign_key="task.id", index=True)
    sequence_id: str = Field(index=True)
    action_id: Optional[str] = Field(default=None)
    recipients: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    is_active: bool = Field(default=True, index=True)
    started_at: datetime = Field(default_factory=utcnow)


class ScoreEntry(SQLModel, table=True):
    """Ledger line crediting or debiting a user's score."""
    __tablename__ = "score_entry"

    id: str = Field(default_factory=id_generator('score', 10), primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    task_id: Optional[str] = Field(default=None, foreign_key="task.id", index=True)
    action_id: Optional[str] = Field(default=None, index=True)
    points: int
    reason: str = Field(default="")
    created_at: datetime = Field(default_factory=utcnow, index=True)
