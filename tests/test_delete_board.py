"""
Feature: Delete board
  As an administrator
  I want to delete boards that are no longer used
  So that the workspace stays organized

Scenario: Delete an empty board
  Given an administrator and a board whose columns hold no tasks or rules
  When they delete it with DELETE /boards/{board_id}
  Then the board and its columns are removed

Scenario: Board still in use
  Given a board with tasks, or with rules on its columns
  When the administrator deletes it
  Then the system returns 409 Conflict

Scenario: Members cannot delete boards
  Given a member user
  When they delete a board
  Then the system returns 403 Forbidden
"""

import pytest
from datetime import datetime, timezone, timedelta
from fastapi import HTTPException
from sqlmodel import create_engine, Session, SQLModel, select
from models.auth import User, Token, TokenUser, UserRole
from models.boards import Board, BoardColumn, Task
from models.rules import ActionTrigger, ActionType, ColumnAction
from apis.boards import delete_board


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


def make_token(session, username: str, role: UserRole) -> Token:
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
    session.refresh(token)
    return token


@pytest.fixture(name="board")
def board_fixture(session):
    board = Board(name="Sales")
    session.add(board)
    session.commit()
    session.refresh(board)
    columns = [BoardColumn(board_id=board.id, title=title, position=position)
               for position, title in enumerate(["Lead", "Visit"])]
    session.add_all(columns)
    session.commit()
    for column in columns:
        session.refresh(column)
    return {"board": board, "columns": columns}


@pytest.mark.asyncio
async def test_delete_empty_board(session, board):
    # Given an administrator and an unused board
    token = make_token(session, "admin", UserRole.ADMIN)
    board_id = board["board"].id

    # When they delete it
    result = await delete_board(board_id=board_id, token=token, db_session=session)

    # Then the board and its columns are removed
    assert result.message == "Board deleted successfully"
    assert session.get(Board, board_id) is None
    assert session.exec(select(BoardColumn).where(BoardColumn.board_id == board_id)).all() == []


@pytest.mark.asyncio
async def test_delete_board_with_tasks(session, board):
    token = make_token(session, "admin", UserRole.ADMIN)
    lead = board["columns"][0]
    session.add(Task(board_id=lead.board_id, column_id=lead.id, title="Apartment 302"))
    session.commit()

    with pytest.raises(HTTPException) as exc_info:
        await delete_board(board_id=board["board"].id, token=token, db_session=session)

    assert exc_info.value.status_code == 409
    assert session.get(Board, board["board"].id) is not None


@pytest.mark.asyncio
async def test_delete_board_with_rules(session, board):
    token = make_token(session, "admin", UserRole.ADMIN)
    session.add(ColumnAction(
        column_id=board["columns"][1].id,
        trigger=ActionTrigger.ON_ENTER,
        type=ActionType.ADD_TAG,
        config={"tagNames": ["visited"]},
        is_active=False
    ))
    session.commit()

    with pytest.raises(HTTPException) as exc_info:
        await delete_board(board_id=board["board"].id, token=token, db_session=session)

    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_delete_board_requires_admin(session, board):
    # Given a member user
    token = make_token(session, "member", UserRole.MEMBER)

    # When they delete a board
    with pytest.raises(HTTPException) as exc_info:
        await delete_board(board_id=board["board"].id, token=token, db_session=session)

    # Then the system returns 403 Forbidden
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_delete_missing_board(session):
    token = make_token(session, "admin", UserRole.ADMIN)

    with pytest.raises(HTTPException) as exc_info:
        await delete_board(board_id="board_missing", token=token, db_session=session)

    assert exc_info.value.status_code == 404
