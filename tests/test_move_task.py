"""
Feature: Move a task between columns
  As an authenticated user
  I want to move tasks across the board
  So that the column's validations and actions run on every transition

Scenario: Move blocked by a validation
  Given a column that requires an assignee
  When a task without assignee is moved into it with POST /tasks/move
  Then the system returns 400 with every failing validation
  And the task stays in its column

Scenario: Successful move runs the column's actions
  Given a column with an on_enter action
  When a ready task is moved into it
  Then the task is moved
  And the action result is returned

Scenario: Stale origin
  Given a task that is no longer in the declared origin column
  When it is moved
  Then the system returns 409 Conflict

Scenario: Exit actions run before enter actions and failures do not undo the move
  Given an on_exit action on the origin and two on_enter actions on the destination
  And the first on_enter action fails
  When the task is moved
  Then the move is committed
  And the results list the on_exit action first and every on_enter action after it

Scenario: Slow email delivery does not hold the server
  Given a destination that emails on enter through a slow provider
  When the task is moved
  Then other requests keep being served while the email is sent

Scenario: Skipping rules requires an administrator
  Given a member user
  When they move a task skipping validations
  Then the system returns 403 Forbidden
  And an administrator may do it
"""

import asyncio
import json
import time
import pytest
from typing import Any, Dict
from datetime import datetime, timezone, timedelta
from fastapi import HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine, Session, SQLModel, select
from models.auth import User, Token, TokenUser, UserRole
from models.boards import Board, BoardColumn, Task, TaskPriority
from models.messaging import DeliveryStatus, MessageKind, OutboundMessage
from models.rules import (
    ActionTrigger, ActionType, ColumnAction, ColumnValidation, ValidationExecution, ValidationType
)
from apis.schemas.tasks import MoveTaskRequest
from apis.tasks import move_task
from helpers.auth import get_auth_token
from outbound.base import OutboundHandler, OutboundHandlerFactory


@pytest.fixture(name="session")
def session_fixture():
    # The move runs in a worker thread; share one in-memory connection with it.
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


async def login(session, username: str, role: UserRole) -> Token:
    user = User(username=username, hashed_password="hashed_secret", role=role)
    token = Token(
        access_token=f"{username}_token",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        is_revoked=False
    )
    session.add_all([user, token])
    session.commit()
    session.refresh(user)
    session.refresh(token)
    session.add(TokenUser(token_id=token.id, user_id=user.id))
    session.commit()
    return await get_auth_token(authorization=f"Bearer {username}_token", db_session=session)


@pytest.fixture(name="board")
def board_fixture(session):
    board = Board(name="Sales")
    other_board = Board(name="Support")
    session.add_all([board, other_board])
    session.commit()
    session.refresh(board)
    session.refresh(other_board)

    lead = BoardColumn(board_id=board.id, title="Lead", position=0)
    visit = BoardColumn(board_id=board.id, title="Visit", position=1)
    inbox = BoardColumn(board_id=other_board.id, title="Inbox", position=0)
    session.add_all([lead, visit, inbox])
    session.commit()
    for column in (lead, visit, inbox):
        session.refresh(column)

    task = Task(board_id=board.id, column_id=lead.id, title="Apartment 302")
    session.add(task)
    session.commit()
    session.refresh(task)

    session.add(ColumnValidation(
        column_id=visit.id,
        type=ValidationType.REQUIRED_FIELD,
        config={"fieldName": "assignedToId"},
        message="Assign a broker first"
    ))
    session.commit()
    return {"lead": lead, "visit": visit, "inbox": inbox, "task": task}


@pytest.mark.asyncio
async def test_move_blocked_by_validation(session, board):
    # Given a column that requires an assignee
    token = await login(session, "member", UserRole.MEMBER)
    task = board["task"]

    # When a task without assignee is moved into it
    response = await move_task(
        move_data=MoveTaskRequest(task_id=task.id, from_column_id=board["lead"].id, target_column_id=board["visit"].id),
        token=token,
        db_session=session
    )

    # Then the system returns 400 with every failing validation
    assert isinstance(response, JSONResponse)
    assert response.status_code == 400
    body = json.loads(response.body)
    assert body["blocked"] is True
    assert body["totalFailed"] == 1
    assert body["failedValidations"][0]["fieldName"] == "assignedToId"
    assert body["message"] == "Task cannot be moved: Assign a broker first"

    # And the task stays in its column
    session.refresh(task)
    assert task.column_id == board["lead"].id
    assert len(session.exec(select(ValidationExecution)).all()) == 1


@pytest.mark.asyncio
async def test_move_runs_on_enter_actions(session, board):
    # Given a column with an on_enter action
    token = await login(session, "member", UserRole.MEMBER)
    session.add(ColumnAction(
        column_id=board["visit"].id,
        trigger=ActionTrigger.ON_ENTER,
        type=ActionType.SET_PRIORITY,
        config={"priority": "high"}
    ))
    broker = User(username="broker", hashed_password="hashed_secret", role=UserRole.MEMBER)
    session.add(broker)
    session.commit()
    session.refresh(broker)
    task = board["task"]
    task.assigned_to_id = broker.id
    session.add(task)
    session.commit()

    # When a ready task is moved into it
    result = await move_task(
        move_data=MoveTaskRequest(task_id=task.id, from_column_id=board["lead"].id, target_column_id=board["visit"].id),
        token=token,
        db_session=session
    )

    # Then the task is moved
    assert result.state == "completed"
    assert result.task.column_id == board["visit"].id
    assert result.task.priority == TaskPriority.HIGH
    assert result.validation_results[0]["passed"] is True

    # And the action result is returned
    assert len(result.action_results) == 1
    assert result.action_results[0]["success"] is True
    assert result.action_results[0]["actionType"] == "set_priority"


@pytest.mark.asyncio
async def test_move_with_stale_origin(session, board):
    # Given a task that is no longer in the declared origin column
    token = await login(session, "member", UserRole.MEMBER)
    task = board["task"]

    # When it is moved
    with pytest.raises(HTTPException) as exc_info:
        await move_task(
            move_data=MoveTaskRequest(
                task_id=task.id, from_column_id=board["visit"].id, target_column_id=board["visit"].id
            ),
            token=token,
            db_session=session
        )

    # Then the system returns 409 Conflict
    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_move_to_another_board_rejected(session, board):
    token = await login(session, "member", UserRole.MEMBER)

    with pytest.raises(HTTPException) as exc_info:
        await move_task(
            move_data=MoveTaskRequest(task_id=board["task"].id, target_column_id=board["inbox"].id),
            token=token,
            db_session=session
        )

    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_skipping_rules_requires_admin(session, board):
    # Given a member user
    member_token = await login(session, "member", UserRole.MEMBER)
    move_data = MoveTaskRequest(
        task_id=board["task"].id,
        from_column_id=board["lead"].id,
        target_column_id=board["visit"].id,
        skip_validations=True
    )

    # When they move a task skipping validations
    with pytest.raises(HTTPException) as exc_info:
        await move_task(move_data=move_data, token=member_token, db_session=session)

    # Then the system returns 403 Forbidden
    assert exc_info.value.status_code == 403

    # And an administrator may do it
    admin_token = await login(session, "admin", UserRole.ADMIN)
    result = await move_task(move_data=move_data, token=admin_token, db_session=session)
    assert result.skipped_validations is True
    assert result.task.column_id == board["visit"].id


@pytest.mark.asyncio
async def test_move_within_column_only_repositions(session, board):
    token = await login(session, "member", UserRole.MEMBER)
    lead = board["lead"]
    second = Task(board_id=lead.board_id, column_id=lead.id, title="House 12", position=1)
    session.add(second)
    session.commit()
    session.refresh(second)

    result = await move_task(
        move_data=MoveTaskRequest(task_id=second.id, target_column_id=lead.id, target_position=0),
        token=token,
        db_session=session
    )

    assert result.state == "completed"
    assert result.task.position == 0
    assert result.validation_results == []
    assert result.action_results == []


def assign_broker(session, task) -> User:
    broker = User(username="broker", hashed_password="hashed_secret", role=UserRole.MEMBER)
    session.add(broker)
    session.commit()
    session.refresh(broker)
    task.assigned_to_id = broker.id
    session.add(task)
    session.commit()
    return broker


@pytest.mark.asyncio
async def test_exit_actions_run_before_enter_actions(session, board):
    # Given an on_exit action on the origin and two on_enter actions on the destination
    token = await login(session, "member", UserRole.MEMBER)
    task = board["task"]
    assign_broker(session, task)
    session.add_all([
        ColumnAction(
            column_id=board["lead"].id,
            trigger=ActionTrigger.ON_EXIT,
            type=ActionType.SEND_NOTIFICATION,
            config={"recipients": [{"type": "task_assignee"}], "message": "Lead left the funnel start"}
        ),
        # And the first on_enter action fails
        ColumnAction(
            column_id=board["visit"].id,
            trigger=ActionTrigger.ON_ENTER,
            type=ActionType.ASSIGN_USER,
            config={"userId": "user_missing"},
            order=0
        ),
        ColumnAction(
            column_id=board["visit"].id,
            trigger=ActionTrigger.ON_ENTER,
            type=ActionType.SET_PRIORITY,
            config={"priority": "urgent"},
            order=1
        ),
    ])
    session.commit()

    # When the task is moved
    result = await move_task(
        move_data=MoveTaskRequest(task_id=task.id, from_column_id=board["lead"].id, target_column_id=board["visit"].id),
        token=token,
        db_session=session
    )

    # Then the move is committed
    assert result.state == "completed"
    session.refresh(task)
    assert task.column_id == board["visit"].id
    assert task.priority == TaskPriority.URGENT

    # And the results list the on_exit action first and every on_enter action after it
    assert [action["actionType"] for action in result.action_results] == [
        "send_notification", "assign_user", "set_priority"
    ]
    assert [action["success"] for action in result.action_results] == [True, False, True]
    notification = session.exec(select(OutboundMessage)).one()
    assert notification.kind == MessageKind.NOTIFICATION
    assert notification.status == DeliveryStatus.SENT


class SlowEmailHandler(OutboundHandler):
    def __init__(self):
        self.sent = []

    def is_configured(self) -> bool:
        return True

    def send(self, message: OutboundMessage) -> Dict[str, Any]:
        time.sleep(0.3)
        self.sent.append(message.recipient)
        return {"status": "sent", "external_id": f"ext_{len(self.sent)}"}


@pytest.mark.asyncio
async def test_slow_email_does_not_block_other_requests(session, board, monkeypatch):
    # Given a destination that emails on enter through a slow provider
    token = await login(session, "member", UserRole.MEMBER)
    task = board["task"]
    assign_broker(session, task)
    handler = SlowEmailHandler()
    monkeypatch.setattr(OutboundHandlerFactory, "get_handler", staticmethod(lambda kind: handler))
    session.add(ColumnAction(
        column_id=board["visit"].id,
        trigger=ActionTrigger.ON_ENTER,
        type=ActionType.SEND_EMAIL,
        config={
            "recipients": [{"type": "email", "value": "owner@example.com"}],
            "subject": "Visit booked",
            "message": "{{task.title}} moved to visit"
        }
    ))
    session.commit()

    beats = []

    async def heartbeat():
        while True:
            beats.append(time.monotonic())
            await asyncio.sleep(0.01)

    # When the task is moved
    beating = asyncio.create_task(heartbeat())
    try:
        result = await move_task(
            move_data=MoveTaskRequest(task_id=task.id, from_column_id=board["lead"].id, target_column_id=board["visit"].id),
            token=token,
            db_session=session
        )
    finally:
        beating.cancel()

    # Then other requests keep being served while the email is sent
    assert handler.sent == ["owner@example.com"]
    assert result.action_results[0]["success"] is True
    assert len(beats) >= 5
