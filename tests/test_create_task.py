"""
Feature: Create task
  As an authenticated user
  I want to add tasks to a column
  So that new deals enter the board

Scenario: Task appended to the column
  Given a column that already holds a task
  When they create a task with POST /tasks
  Then the task is placed after the existing one
  And it belongs to the column's board and records its creator

Scenario: Periodic actions start for new tasks
  Given a column with an on_stay action
  When a task is created in it
  Then a timer is scheduled one interval after creation

Scenario: Inactive column
  Given an inactive column
  When a task is created in it
  Then the system returns 404 Not Found
"""

import pytest
from datetime import datetime, timezone, timedelta
from fastapi import HTTPException
from sqlmodel import create_engine, Session, SQLModel, select
from models.auth import User, Token, TokenUser, UserRole
from models.boards import Board, BoardColumn, Task, TaskPriority
from models.helper import as_utc
from models.rules import ActionSchedule, ActionTrigger, ActionType, ColumnAction
from apis.schemas.tasks import CreateTaskRequest
from apis.tasks import create_task


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="auth")
def auth_fixture(session):
    user = User(username="broker", hashed_password="hashed_secret", role=UserRole.MEMBER)
    token = Token(
        access_token="broker_token",
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


@pytest.fixture(name="lead")
def lead_fixture(session):
    board = Board(name="Sales")
    session.add(board)
    session.commit()
    session.refresh(board)
    lead = BoardColumn(board_id=board.id, title="Lead", position=0)
    session.add(lead)
    session.commit()
    session.refresh(lead)
    return lead


@pytest.mark.asyncio
async def test_task_appended_to_column(session, auth, lead):
    # Given a column that already holds a task
    session.add(Task(board_id=lead.board_id, column_id=lead.id, title="House 12"))
    session.commit()

    # When they create a task
    result = await create_task(
        task_data=CreateTaskRequest(
            title="Apartment 302",
            column_id=lead.id,
            priority=TaskPriority.MEDIUM,
            custom_fields={"email": "maria@example.com"}
        ),
        token=auth["token"],
        db_session=session
    )

    # Then the task is placed after the existing one
    assert result.position == 1
    assert result.column_id == lead.id

    # And it belongs to the column's board and records its creator
    task = session.get(Task, result.id)
    assert task.board_id == lead.board_id
    assert task.created_by_id == auth["user"].id
    assert task.custom_fields == {"email": "maria@example.com"}


@pytest.mark.asyncio
async def test_periodic_actions_start_for_new_tasks(session, auth, lead):
    # Given a column with an on_stay action
    session.add(ColumnAction(
        column_id=lead.id,
        trigger=ActionTrigger.ON_STAY,
        type=ActionType.UPDATE_SCORE,
        config={"points": 1},
        interval_hours=48
    ))
    session.commit()

    # When a task is created in it
    result = await create_task(
        task_data=CreateTaskRequest(title="Apartment 302", column_id=lead.id),
        token=auth["token"],
        db_session=session
    )

    # Then a timer is scheduled one interval after creation
    schedule = session.exec(select(ActionSchedule).where(ActionSchedule.task_id == result.id)).one()
    task = session.get(Task, result.id)
    assert as_utc(schedule.next_run_at) == as_utc(task.column_entered_at) + timedelta(hours=48)
    assert schedule.from_column_id is None


@pytest.mark.asyncio
async def test_create_task_in_inactive_column(session, auth, lead):
    # Given an inactive column
    lead.is_active = False
    session.add(lead)
    session.commit()

    # When a task is created in it
    with pytest.raises(HTTPException) as exc_info:
        await create_task(
            task_data=CreateTaskRequest(title="Apartment 302", column_id=lead.id),
            token=auth["token"],
            db_session=session
        )

    # Then the system returns 404 Not Found
    assert exc_info.value.status_code == 404
