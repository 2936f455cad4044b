from sqlmodel import Session, select
from datetime import date, datetime
from typing import Any, Dict, Optional
from models.auth import User
from models.boards import Task
from models.documents import Document, DocumentStatus, TaskDocument
from models.entities import Client, Project, Property
from models.helper import utcnow
from models.rules import ActionEntityRecord
from rules.collaborators import CreatedEntity, EntityService
from rules.values import parse_number
from settings import logger

ENTITY_MODELS = {
    "client": Client,
    "property": Property,
    "document": Document,
    "project": Project,
    "task": Task,
}

ENTITY_NAMES = {
    "client": "Client",
    "property": "Property",
    "document": "Document",
    "task": "Task",
}

# Payload keys that map onto real columns; anything else lands in `extra`.
_COLUMNS = {
    "client": ("name", "email", "phone", "document_number"),
    "property": ("title", "address", "price", "owner_email"),
    "document": ("file_name", "file_url", "mime_type", "document_type", "status"),
}

_ALIASES = {
    "documentNumber": "document_number",
    "cpf": "document_number",
    "cnpj": "document_number",
    "ownerEmail": "owner_email",
    "fileName": "file_name",
    "fileUrl": "file_url",
    "mimeType": "mime_type",
    "documentType": "document_type",
}

_REQUIRED = {
    "client": "name",
    "property": "title",
    "document": "file_name",
}


def _jsonable(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class SqlEntityService(EntityService):
    """Creates clients, properties and documents in the service database."""

    def __init__(self, db_session: Session):
        self.db_session = db_session

    def create(self, entity_type: str, payload: Dict[str, Any], task: Task,
               actor: Optional[User], action_id: Optional[str] = None) -> CreatedEntity:
        if entity_type not in _COLUMNS:
            raise ValueError(f"Unsupported entity type: {entity_type}")

        columns: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in payload.items():
            name = _ALIASES.get(key, key)
            if name in _COLUMNS[entity_type]:
                columns[name] = value
            else:
                extra[key] = _jsonable(value)

        required = _REQUIRED[entity_type]
        if entity_type == "document" and not columns.get("file_name"):
            columns["file_name"] = payload.get("title") or payload.get("name")
        if not columns.get(required):
            raise ValueError(f"{ENTITY_NAMES[entity_type]} needs '{required}'")

        if entity_type == "client":
            entity = Client(extra=extra, **{k: str(v) for k, v in columns.items()})
        elif entity_type == "property":
            if columns.get("price") is not None:
                columns["price"] = float(parse_number(columns["price"]))
            entity = Property(extra=extra, **columns)
        else:
            if columns.get("status"):
                columns["status"] = DocumentStatus(str(columns["status"]).lower())
            entity = Document(
                extra=extra,
                uploaded_by_user_id=actor.id if actor else None,
                **columns
            )

        created = CreatedEntity(entity_type, entity.id, ENTITY_NAMES[entity_type])
        self.db_session.add(entity)
        self._link_to_task(entity_type, entity.id, task)
        if action_id:
            self._stage_record(task.id, action_id, created)
        self.db_session.commit()
        self.db_session.refresh(entity)
        self.db_session.refresh(task)

        logger.info("Entity created from task", extra={
            "entity_type": entity_type,
            "entity_id": entity.id,
            "task_id": task.id
        })
        return created

    def _link_to_task(self, entity_type: str, entity_id: str, task: Task) -> None:
        if entity_type == "client" and not task.client_id:
            task.client_id = entity_id
        elif entity_type == "property" and not task.property_id:
            task.property_id = entity_id
        elif entity_type == "document":
            self.db_session.add(TaskDocument(task_id=task.id, document_id=entity_id))
        task.updated_at = utcnow()
        self.db_session.add(task)

    def exists(self, entity_type: str, entity_id: str) -> bool:
        return self.get(entity_type, entity_id) is not None

    def get(self, entity_type: str, entity_id: Optional[str]) -> Optional[Any]:
        model = ENTITY_MODELS.get(entity_type)
        if model is None or not entity_id:
            return None
        return self.db_session.get(model, entity_id)

    def find_produced(self, task_id: str, action_id: str) -> Optional[CreatedEntity]:
        statement = select(ActionEntityRecord).where(
            ActionEntityRecord.task_id == task_id,
            ActionEntityRecord.action_id == action_id
        )
        record = self.db_session.exec(statement).first()
        if not record:
            return None
        return CreatedEntity(
            record.entity_type,
            record.entity_id,
            ENTITY_NAMES.get(record.entity_type, record.entity_type)
        )

    def remember_produced(self, task_id: str, action_id: str, entity: CreatedEntity) -> None:
        self._stage_record(task_id, action_id, entity)
        self.db_session.commit()

    def _stage_record(self, task_id: str, action_id: str, entity: CreatedEntity) -> None:
        statement = select(ActionEntityRecord).where(
            ActionEntityRecord.task_id == task_id,
            ActionEntityRecord.action_id == action_id
        )
        record = self.db_session.exec(statement).first()
        if record is None:
            record = ActionEntityRecord(
                task_id=task_id,
                action_id=action_id,
                entity_type=entity.entity_type,
                entity_id=entity.entity_id
            )
        else:
            # The entity produced earlier was removed; point at its replacement.
            record.entity_type = entity.entity_type
            record.entity_id = entity.entity_id
        self.db_session.add(record)
