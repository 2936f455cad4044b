"""
Feature: Task checklists
  As a broker
  I want to tick the checklist of a task
  So that checklist validations let the task advance

Scenario: Completing the required items unblocks the column
  Given a column requiring every item of the "tpl_visit" checklist
  And a task with that checklist added through POST /tasks/{task_id}/checklists
  When every item is checked through PUT /tasks/{task_id}/checklists/{checklist_id}/items/{item_id}
  Then the task detail shows the checklist completed
  And the column's validation passes

Scenario: Item of another checklist
  Given an item that belongs to another checklist
  When it is updated through this checklist
  Then the system returns 404 Not Found error
"""

import pytest
from datetime import datetime, timezone, timedelta
from fastapi import HTTPException
from sqlmodel import create_engine, Session, SQLModel
from models.auth import User, Token, TokenUser, UserRole
from models.boards import Board, BoardColumn, Task
from models.rules import ColumnValidation, ValidationType
from apis.schemas.tasks import CreateChecklistRequest, UpdateChecklistItemRequest
from apis.tasks import add_task_checklist, get_task, update_checklist_item
from rules.context import MoveContext
from rules.validations import ValidationEvaluator


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="setup")
def setup_fixture(session):
    user = User(username="broker", hashed_password="hashed_secret", role=UserRole.MEMBER)
    token = Token(
        access_token="broker_token",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        is_revoked=False
    )
    board = Board(name="Sales")
    session.add_all([user, token, board])
    session.commit()
    for instance in (user, token, board):
        session.refresh(instance)
    session.add(TokenUser(token_id=token.id, user_id=user.id))

    lead = BoardColumn(board_id=board.id, title="Lead", position=0)
    visit = BoardColumn(board_id=board.id, title="Visit", position=1)
    session.add_all([lead, visit])
    session.commit()
    session.refresh(lead)
    session.refresh(visit)

    task = Task(board_id=board.id, column_id=lead.id, title="Apartment 302")
    session.add(task)
    session.add(ColumnValidation(
        column_id=visit.id,
        type=ValidationType.REQUIRED_CHECKLIST,
        config={"checklistId": "tpl_visit", "allItemsRequired": True},
        message="Finish the visit checklist"
    ))
    session.commit()
    session.refresh(task)
    session.refresh(token)
    return {"token": token, "task": task, "lead": lead, "visit": visit}


@pytest.mark.asyncio
async def test_completing_checklist_unblocks_column(session, setup):
    task, token = setup["task"], setup["token"]
    context = MoveContext(task=task, to_column=setup["visit"], from_column=setup["lead"])

    # Given a task with the "tpl_visit" checklist
    checklist = await add_task_checklist(
        task_id=task.id,
        checklist_data=CreateChecklistRequest(title="Visit prep", template_id="tpl_visit", items=["Photos", "Keys"]),
        token=token,
        db_session=session
    )
    assert [item.title for item in checklist.items] == ["Photos", "Keys"]
    assert ValidationEvaluator(session).evaluate(context).blocked is True

    # When every item is checked
    for item in checklist.items:
        updated = await update_checklist_item(
            task_id=task.id,
            checklist_id=checklist.id,
            item_id=item.id,
            item_data=UpdateChecklistItemRequest(is_completed=True),
            token=token,
            db_session=session
        )
        assert updated.completed_at is not None

    # Then the task detail shows the checklist completed
    detail = await get_task(task_id=task.id, token=token, db_session=session)
    assert all(item.is_completed for item in detail.checklists[0].items)

    # And the column's validation passes
    assert ValidationEvaluator(session).evaluate(context).blocked is False


@pytest.mark.asyncio
async def test_item_of_another_checklist(session, setup):
    task, token = setup["task"], setup["token"]
    first = await add_task_checklist(
        task_id=task.id,
        checklist_data=CreateChecklistRequest(title="Visit prep", items=["Photos"]),
        token=token,
        db_session=session
    )
    second = await add_task_checklist(
        task_id=task.id,
        checklist_data=CreateChecklistRequest(title="Proposal prep", items=["Draft"]),
        token=token,
        db_session=session
    )

    with pytest.raises(HTTPException) as exc_info:
        await update_checklist_item(
            task_id=task.id,
            checklist_id=first.id,
            item_id=second.items[0].id,
            item_data=UpdateChecklistItemRequest(is_completed=True),
            token=token,
            db_session=session
        )

    assert exc_info.value.status_code == 404
