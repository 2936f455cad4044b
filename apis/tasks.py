from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy import delete, update
from sqlmodel import Session, select
from database import get_session
from models.auth import Token
from models.boards import BoardColumn, Task
from models.checklists import Checklist, ChecklistItem
from models.documents import Document, TaskDocument
from models.helper import utcnow
from models.messaging import EmailSequenceEnrollment, OutboundMessage, ScoreEntry
from models.rules import ActionEntityRecord, ActionExecution, ActionSchedule, ValidationExecution
from apis.schemas.tasks import (
    ChecklistItemResponse, ChecklistResponse, CreateChecklistRequest, CreateTaskDocumentRequest,
    CreateTaskRequest, DocumentResponse, MoveTaskRequest, MoveTaskResponse, TaskDetailResponse,
    TaskResponse, UpdateChecklistItemRequest, UpdateTaskRequest
)
from apis.schemas.rules import ActionExecutionResponse, ValidationExecutionResponse
from helpers.auth import get_auth_token, require_user
from helpers.errors import http_error
from rules.context import MoveContext
from rules.errors import RuleEngineError
from rules.locks import forget_task
from rules.orchestrator import MoveOrchestrator
from rules.scheduler import PeriodicActionScheduler
from settings import logger
from typing import List, Dict, Any, Optional

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _get_task(task_id: str, db_session: Session) -> Task:
    task = db_session.get(Task, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


def _checklist_response(checklist: Checklist, db_session: Session) -> ChecklistResponse:
    items = db_session.exec(select(ChecklistItem).where(ChecklistItem.checklist_id == checklist.id)).all()
    return ChecklistResponse(
        id=checklist.id,
        task_id=checklist.task_id,
        template_id=checklist.template_id,
        title=checklist.title,
        items=[ChecklistItemResponse.model_validate(item) for item in items]
    )


@router.post("/move")
async def move_task(
    move_data: MoveTaskRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
):
    """Move a task to a column, running the column's validations and actions.

    A move blocked by validations answers 400 with every failing reason.
    """
    user = await require_user(token=token, db_session=db_session)

    try:
        # Actions may call slow collaborators (email API); keep them off the event loop.
        result = await run_in_threadpool(MoveOrchestrator(db_session).move, move_data, actor=user)
    except RuleEngineError as e:
        raise http_error(e)

    if result.blocked:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=jsonable_encoder(result.blocked_payload())
        )

    return MoveTaskResponse(
        task=TaskResponse.model_validate(result.task),
        validation_results=[validation.to_dict() for validation in result.validation_results],
        action_results=[action.to_dict() for action in result.action_results],
        blocked=False,
        warnings=result.warnings,
        state=result.state.value,
        skipped_validations=result.skipped_validations,
        skipped_actions=result.skipped_actions
    )


@router.post("", response_model=TaskResponse)
async def create_task(
    task_data: CreateTaskRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> TaskResponse:
    """Create a task at the end of a column."""
    user = await require_user(token=token, db_session=db_session)

    column = db_session.get(BoardColumn, task_data.column_id)
    if not column or not column.is_active:
        raise HTTPException(status_code=404, detail="Column not found")

    position = len(db_session.exec(select(Task.id).where(Task.column_id == column.id)).all())
    task = Task(
        board_id=column.board_id,
        column_id=column.id,
        position=position,
        created_by_id=user.id,
        **task_data.model_dump(exclude={"column_id"})
    )

    db_session.add(task)
    db_session.commit()
    db_session.refresh(task)

    # Tasks created straight into a column get its ungated on_stay timers
    PeriodicActionScheduler(db_session).schedule_for_task(
        MoveContext(task=task, to_column=column, actor=user, origin_declared=False)
    )

    logger.info("Task created", extra={"task_id": task.id, "column_id": column.id})
    return TaskResponse.model_validate(task)


@router.get("", response_model=List[TaskResponse])
async def list_tasks(
    board_id: Optional[str] = None,
    column_id: Optional[str] = None,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> List[TaskResponse]:
    """List tasks, optionally filtered by board or column."""
    statement = select(Task)
    if board_id:
        statement = statement.where(Task.board_id == board_id)
    if column_id:
        statement = statement.where(Task.column_id == column_id)
    statement = statement.order_by(Task.column_id, Task.position)
    tasks = db_session.exec(statement).all()

    return [TaskResponse.model_validate(task) for task in tasks]


@router.get("/{task_id}", response_model=TaskDetailResponse)
async def get_task(
    task_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> TaskDetailResponse:
    """Get task with documents and checklists."""
    task = _get_task(task_id, db_session)

    documents_statement = select(Document).join(TaskDocument).where(TaskDocument.task_id == task_id)
    documents = db_session.exec(documents_statement).all()

    checklists = db_session.exec(select(Checklist).where(Checklist.task_id == task_id)).all()

    task_detail = TaskDetailResponse(
        **TaskResponse.model_validate(task).model_dump(),
        documents=[DocumentResponse.model_validate(document) for document in documents],
        checklists=[_checklist_response(checklist, db_session) for checklist in checklists]
    )

    return task_detail


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    task_data: UpdateTaskRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> TaskResponse:
    """Update task data. Column changes go through POST /tasks/move."""
    task = _get_task(task_id, db_session)

    # Update only provided fields
    changes = task_data.model_dump(exclude_unset=True, exclude_none=True)
    custom_fields = changes.pop("custom_fields", None)
    for name, value in changes.items():
        setattr(task, name, value)
    if custom_fields is not None:
        task.custom_fields = {**(task.custom_fields or {}), **custom_fields}
    task.updated_at = utcnow()

    db_session.add(task)
    db_session.commit()
    db_session.refresh(task)

    return TaskResponse.model_validate(task)


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> Dict[str, Any]:
    """Delete task together with its links and timers; its rule history is kept."""
    task = _get_task(task_id, db_session)

    checklist_ids = db_session.exec(select(Checklist.id).where(Checklist.task_id == task_id)).all()
    if checklist_ids:
        db_session.exec(delete(ChecklistItem).where(ChecklistItem.checklist_id.in_(checklist_ids)))
        db_session.exec(delete(Checklist).where(Checklist.task_id == task_id))

    for model in (TaskDocument, ActionSchedule, ActionEntityRecord, EmailSequenceEnrollment):
        db_session.exec(delete(model).where(model.task_id == task_id))

    # Rule history, outbox and score ledger rows outlive the task
    for model in (ValidationExecution, ActionExecution, OutboundMessage, ScoreEntry):
        db_session.exec(update(model).where(model.task_id == task_id).values(task_id=None))

    db_session.delete(task)
    db_session.commit()
    forget_task(task_id)

    logger.info("Task deleted", extra={"task_id": task_id})
    return {"success": True, "message": f"Task {task_id} permanently deleted successfully"}


@router.post("/{task_id}/documents", response_model=DocumentResponse)
async def add_document_task(
    task_id: str,
    document_data: CreateTaskDocumentRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> DocumentResponse:
    """Attach document to task."""
    user = await require_user(token=token, db_session=db_session)
    _get_task(task_id, db_session)

    document = Document(
        file_url=document_data.file_url,
        file_name=document_data.file_name,
        mime_type=document_data.mime_type,
        document_type=document_data.document_type,
        status=document_data.status,
        uploaded_by_user_id=user.id
    )

    db_session.add(document)
    db_session.commit()
    db_session.refresh(document)

    # Create task-document association
    task_document = TaskDocument(task_id=task_id, document_id=document.id)
    db_session.add(task_document)
    db_session.commit()

    return DocumentResponse.model_validate(document)


@router.delete("/{task_id}/documents/{document_id}")
async def delete_document_task(
    task_id: str,
    document_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> Dict[str, Any]:
    """Delete task document (physical delete only)."""
    _get_task(task_id, db_session)

    # Verify document exists and is associated with task
    task_document_statement = select(TaskDocument).where(TaskDocument.task_id == task_id, TaskDocument.document_id == document_id)
    task_document = db_session.exec(task_document_statement).first()

    if not task_document:
        raise HTTPException(status_code=404, detail="Document not found or not associated with this task")

    document = db_session.get(Document, document_id)

    if not document:
        raise HTTPException(status_code=404, detail="Document not found")

    # Remove task-document association
    db_session.delete(task_document)

    # Remove the document itself (physical delete)
    db_session.delete(document)
    db_session.commit()

    return {"success": True, "message": f"Document {document_id} permanently deleted from task {task_id}"}


@router.post("/{task_id}/checklists", response_model=ChecklistResponse)
async def add_task_checklist(
    task_id: str,
    checklist_data: CreateChecklistRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> ChecklistResponse:
    """Add a checklist with its items to a task."""
    _get_task(task_id, db_session)

    checklist = Checklist(
        task_id=task_id,
        template_id=checklist_data.template_id,
        title=checklist_data.title
    )
    db_session.add(checklist)
    db_session.commit()
    db_session.refresh(checklist)

    for title in checklist_data.items:
        db_session.add(ChecklistItem(checklist_id=checklist.id, title=title))
    db_session.commit()

    return _checklist_response(checklist, db_session)


@router.put("/{task_id}/checklists/{checklist_id}/items/{item_id}", response_model=ChecklistItemResponse)
async def update_checklist_item(
    task_id: str,
    checklist_id: str,
    item_id: str,
    item_data: UpdateChecklistItemRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> ChecklistItemResponse:
    """Check or uncheck a checklist item."""
    checklist = db_session.get(Checklist, checklist_id)
    item = db_session.get(ChecklistItem, item_id)

    if not checklist or checklist.task_id != task_id or not item or item.checklist_id != checklist_id:
        raise HTTPException(status_code=404, detail="Checklist item not found")

    item.is_completed = item_data.is_completed
    item.completed_at = utcnow() if item_data.is_completed else None
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)

    return ChecklistItemResponse.model_validate(item)


@router.get("/{task_id}/validation-history", response_model=List[ValidationExecutionResponse])
async def get_validation_history(
    task_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> List[ValidationExecutionResponse]:
    """Validation runs and bypasses recorded for the task, newest first."""
    _get_task(task_id, db_session)

    statement = (
        select(ValidationExecution)
        .where(ValidationExecution.task_id == task_id)
        .order_by(ValidationExecution.executed_at.desc())
        .offset(offset)
        .limit(limit)
    )
    executions = db_session.exec(statement).all()

    return [ValidationExecutionResponse.model_validate(execution) for execution in executions]


@router.get("/{task_id}/action-history", response_model=List[ActionExecutionResponse])
async def get_action_history(
    task_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> List[ActionExecutionResponse]:
    """Action runs and bypasses recorded for the task, newest first."""
    _get_task(task_id, db_session)

    statement = (
        select(ActionExecution)
        .where(ActionExecution.task_id == task_id)
        .order_by(ActionExecution.executed_at.desc())
        .offset(offset)
        .limit(limit)
    )
    executions = db_session.exec(statement).all()

    return [ActionExecutionResponse.model_validate(execution) for execution in executions]
