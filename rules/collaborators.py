"""
Interfaces of the services the engine drives but does not own.

The engine only talks to task storage, entity services, messaging, the score
ledger and the history sink through these classes. `Collaborators.default`
wires the SQL-backed implementations shipped with the service.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlmodel import Session

from models.auth import User
from models.boards import BoardColumn, Task
from models.rules import ActionTrigger, ColumnAction, ColumnValidation


@dataclass
class Recipient:
    """Resolved message recipient."""
    address: str
    user_id: Optional[str] = None


@dataclass
class CreatedEntity:
    entity_type: str
    entity_id: str
    entity_name: str


class TaskStore(ABC):
    """Reads and writes tasks and columns."""

    @abstractmethod
    def get_task(self, task_id: str) -> Optional[Task]:
        pass

    @abstractmethod
    def get_column(self, column_id: str) -> Optional[BoardColumn]:
        pass

    @abstractmethod
    def tasks_in_column(self, column_id: str) -> List[Task]:
        pass

    @abstractmethod
    def commit_move(self, task: Task, to_column: BoardColumn, position: int) -> Task:
        """Place the task in the column at the given position and persist it."""
        pass

    @abstractmethod
    def update_fields(self, task: Task, **fields: Any) -> Task:
        pass

    @abstractmethod
    def create_task(self, **fields: Any) -> Task:
        pass

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    def users_with_role(self, role: str) -> List[User]:
        pass


class EntityService(ABC):
    """Creates and looks up entities produced by entity-creation actions."""

    @abstractmethod
    def create(self, entity_type: str, payload: Dict[str, Any], task: Task,
               actor: Optional[User], action_id: Optional[str] = None) -> CreatedEntity:
        """Create the entity; with `action_id`, record it as that action's product in the same commit."""
        pass

    @abstractmethod
    def exists(self, entity_type: str, entity_id: str) -> bool:
        pass

    @abstractmethod
    def get(self, entity_type: str, entity_id: Optional[str]) -> Optional[Any]:
        pass

    @abstractmethod
    def find_produced(self, task_id: str, action_id: str) -> Optional[CreatedEntity]:
        """Entity an action already produced for a task, if any."""
        pass

    @abstractmethod
    def remember_produced(self, task_id: str, action_id: str, entity: CreatedEntity) -> None:
        pass


class MessagingService(ABC):
    """Delivers emails and notifications."""

    @abstractmethod
    def send_email(self, recipients: List[Recipient], subject: str, body: str,
                   task: Task, action_id: Optional[str]) -> Dict[str, Any]:
        pass

    @abstractmethod
    def send_notification(self, recipients: List[Recipient], subject: str, body: str,
                          task: Task, action_id: Optional[str],
                          notification_type: str = "info") -> Dict[str, Any]:
        pass

    @abstractmethod
    def schedule_email(self, recipients: List[Recipient], subject: str, body: str,
                       send_at: datetime, task: Task, action_id: Optional[str]) -> Dict[str, Any]:
        pass

    @abstractmethod
    def start_email_sequence(self, sequence_id: str, recipients: List[Recipient],
                             task: Task, action_id: Optional[str]) -> Dict[str, Any]:
        """Enroll the task; returns {"already_active": bool, ...}."""
        pass


class ScoreLedger(ABC):
    """Applies point deltas to a user's score."""

    @abstractmethod
    def apply(self, user_id: str, points: int, task: Task, action_id: Optional[str],
              reason: str) -> int:
        """Record the delta and return the user's new total."""
        pass


class HistorySink(ABC):
    """Append-only execution history."""

    @abstractmethod
    def record_validation(self, validation: Optional[ColumnValidation], column_id: str,
                          task_id: str, passed: bool, message: str,
                          details: Dict[str, Any], actor_id: Optional[str]) -> None:
        pass

    @abstractmethod
    def record_action(self, action: Optional[ColumnAction], column_id: str, task_id: str,
                      trigger: Optional[ActionTrigger], success: bool, message: str,
                      details: Dict[str, Any], actor_id: Optional[str],
                      created_entity_id: Optional[str] = None,
                      created_entity_type: Optional[str] = None,
                      error: Optional[str] = None) -> None:
        pass


@dataclass
class Collaborators:
    tasks: TaskStore
    entities: EntityService
    messaging: MessagingService
    scores: ScoreLedger
    history: HistorySink

    @classmethod
    def default(cls, db_session: Session) -> "Collaborators":
        from outbound.message_sender import MessageSender
        from services.entities import SqlEntityService
        from services.history import SqlHistorySink
        from services.scores import SqlScoreLedger
        from services.tasks import SqlTaskStore

        return cls(
            tasks=SqlTaskStore(db_session),
            entities=SqlEntityService(db_session),
            messaging=MessageSender(db_session),
            scores=SqlScoreLedger(db_session),
            history=SqlHistorySink(db_session),
        )
