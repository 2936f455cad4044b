"""
Feature: Delete task
  As an authenticated user
  I want to delete a task
  So that abandoned deals leave the board

Scenario: Delete a task with rule history
  Given a task with documents, checklists, timers and rule history
  When they delete it with DELETE /tasks/{task_id}
  Then the task, its links and timers are removed
  And documents remain in the system (orphaned)
  And rule history and score ledger lines outlive the task

Scenario: Delete non-existent task
  Given an authenticated user exists
  When they try to delete a non-existent task
  Then the system returns 404 Not Found error
"""

import pytest
from datetime import datetime, timezone, timedelta
from fastapi import HTTPException
from sqlmodel import create_engine, Session, SQLModel, select
from models.auth import User, Token, TokenUser, UserRole
from models.boards import Board, BoardColumn, Task
from models.checklists import Checklist, ChecklistItem
from models.documents import Document, TaskDocument
from models.messaging import ScoreEntry
from models.rules import (
    ActionSchedule, ActionTrigger, ActionType, ColumnAction, ColumnValidation,
    ValidationExecution, ValidationType
)
from apis.tasks import delete_task


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="auth")
def auth_fixture(session):
    user = User(username="user", hashed_password="hashed_secret", role=UserRole.MEMBER)
    token = Token(
        access_token="valid_token",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        is_revoked=False
    )
    session.add_all([user, token])
    session.commit()
    session.refresh(user)
    session.refresh(token)
    session.add(TokenUser(token_id=token.id, user_id=user.id))
    session.commit()
    session.refresh(token)
    return {"user": user, "token": token}


@pytest.mark.asyncio
async def test_delete_task_with_history(session, auth):
    # Given a task with documents, checklists, timers and rule history
    board = Board(name="Sales")
    session.add(board)
    session.commit()
    session.refresh(board)
    visit = BoardColumn(board_id=board.id, title="Visit", position=0)
    session.add(visit)
    session.commit()
    session.refresh(visit)

    task = Task(board_id=board.id, column_id=visit.id, title="Apartment 302")
    document = Document(file_name="contract.pdf", document_type="contract")
    validation = ColumnValidation(
        column_id=visit.id, type=ValidationType.REQUIRED_FIELD,
        config={"fieldName": "assignedToId"}, message="Assign a broker first"
    )
    action = ColumnAction(
        column_id=visit.id, trigger=ActionTrigger.ON_STAY, type=ActionType.UPDATE_SCORE,
        config={"points": 1}, interval_hours=24
    )
    session.add_all([task, document, validation, action])
    session.commit()
    for instance in (task, document, validation, action):
        session.refresh(instance)

    checklist = Checklist(task_id=task.id, template_id="tpl_visit", title="Visit prep")
    session.add(checklist)
    session.commit()
    session.refresh(checklist)

    task_id = task.id
    session.add_all([
        TaskDocument(task_id=task_id, document_id=document.id),
        ChecklistItem(checklist_id=checklist.id, title="Photos"),
        ActionSchedule(task_id=task_id, action_id=action.id, column_id=visit.id, next_run_at=task.created_at),
        ValidationExecution(validation_id=validation.id, column_id=visit.id, task_id=task_id, passed=True),
        ScoreEntry(user_id=auth["user"].id, task_id=task_id, action_id=action.id, points=1),
    ])
    session.commit()

    # When they delete it
    result = await delete_task(task_id=task_id, token=auth["token"], db_session=session)

    # Then the task, its links and timers are removed
    assert result == {"success": True, "message": f"Task {task_id} permanently deleted successfully"}
    assert session.get(Task, task_id) is None
    for model in (TaskDocument, Checklist, ChecklistItem, ActionSchedule):
        assert session.exec(select(model)).all() == []

    # And documents remain in the system (orphaned)
    assert session.get(Document, document.id) is not None

    # And rule history and score ledger lines outlive the task
    execution = session.exec(select(ValidationExecution)).one()
    assert execution.task_id is None
    assert execution.validation_id == validation.id
    entry = session.exec(select(ScoreEntry)).one()
    assert entry.task_id is None
    assert entry.points == 1


@pytest.mark.asyncio
async def test_delete_task_not_found(session, auth):
    # When they try to delete a non-existent task
    with pytest.raises(HTTPException) as exc_info:
        await delete_task(task_id="task_nonexistent", token=auth["token"], db_session=session)

    # Then the system returns 404 Not Found error
    assert exc_info.value.status_code == 404
