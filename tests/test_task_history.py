"""
Feature: Rule history of a task
  As a board administrator
  I want to see which validations and actions ran for a task
  So that I can explain why a move was blocked or what it produced

Scenario: History is listed newest first
  Given a task moved several times
  When they request GET /tasks/{task_id}/validation-history and /action-history
  Then the runs are returned newest first and paginated
"""

import pytest
from datetime import datetime, timezone, timedelta
from fastapi import HTTPException
from sqlmodel import create_engine, Session, SQLModel
from models.auth import User, Token, TokenUser, UserRole
from models.boards import Board, BoardColumn, Task
from models.rules import ActionExecution, ActionTrigger, ValidationExecution
from apis.tasks import get_action_history, get_validation_history

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="setup")
def setup_fixture(session):
    user = User(username="admin", hashed_password="hashed_secret", role=UserRole.ADMIN)
    token = Token(
        access_token="admin_token",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        is_revoked=False
    )
    board = Board(name="Sales")
    session.add_all([user, token, board])
    session.commit()
    for instance in (user, token, board):
        session.refresh(instance)
    session.add(TokenUser(token_id=token.id, user_id=user.id))

    visit = BoardColumn(board_id=board.id, title="Visit", position=0)
    session.add(visit)
    session.commit()
    session.refresh(visit)

    task = Task(board_id=board.id, column_id=visit.id, title="Apartment 302")
    session.add(task)
    session.commit()
    session.refresh(task)

    for hour in range(3):
        session.add(ValidationExecution(
            column_id=visit.id, task_id=task.id, passed=hour > 0,
            message=f"run {hour}", executed_at=T0 + timedelta(hours=hour)
        ))
        session.add(ActionExecution(
            column_id=visit.id, task_id=task.id, trigger=ActionTrigger.ON_ENTER, success=True,
            message=f"action {hour}", executed_at=T0 + timedelta(hours=hour)
        ))
    session.commit()
    session.refresh(token)
    return {"token": token, "task": task}


@pytest.mark.asyncio
async def test_history_newest_first(session, setup):
    task, token = setup["task"], setup["token"]

    validations = await get_validation_history(
        task_id=task.id, limit=2, offset=0, token=token, db_session=session
    )
    assert [execution.message for execution in validations] == ["run 2", "run 1"]

    older = await get_validation_history(
        task_id=task.id, limit=2, offset=2, token=token, db_session=session
    )
    assert [execution.message for execution in older] == ["run 0"]
    assert older[0].passed is False

    actions = await get_action_history(
        task_id=task.id, limit=50, offset=0, token=token, db_session=session
    )
    assert [execution.message for execution in actions] == ["action 2", "action 1", "action 0"]
    assert actions[0].trigger == ActionTrigger.ON_ENTER


@pytest.mark.asyncio
async def test_history_of_missing_task(session, setup):
    with pytest.raises(HTTPException) as exc_info:
        await get_validation_history(
            task_id="task_missing", limit=50, offset=0, token=setup["token"], db_session=session
        )

    assert exc_info.value.status_code == 404
