"""
Feature: Column rules API
  As a board administrator
  I want to manage validations and actions through the API
  So that each column enforces and automates its part of the process

Scenario: Administrators configure validations
  Given an administrator
  When they create a validation with POST /columns/{column_id}/validations
  Then it is listed by GET /columns/{column_id}/validations
  And creating it again returns 409 Conflict with the existing id

Scenario: Members cannot configure rules
  Given a member user
  When they create a validation
  Then the system returns 403 Forbidden

Scenario: Actions are created, reordered and removed
  Given an administrator
  When they create two actions, reorder them and delete one
  Then the column lists the remaining action
"""

import pytest
from datetime import datetime, timezone, timedelta
from fastapi import HTTPException
from sqlmodel import create_engine, Session, SQLModel
from models.auth import User, Token, TokenUser, UserRole
from models.boards import Board, BoardColumn
from models.rules import ActionTrigger, ActionType, ValidationBehavior, ValidationType
from apis.actions import delete_action, update_action
from apis.columns import (
    create_action, create_validation, list_actions, list_validations, reorder_actions
)
from apis.schemas.rules import ActionRequest, ReorderRequest, ValidationRequest
from apis.validations import delete_validation, update_validation


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


@pytest.fixture(name="visit")
def visit_fixture(session):
    board = Board(name="Sales")
    session.add(board)
    session.commit()
    session.refresh(board)
    lead = BoardColumn(board_id=board.id, title="Lead", position=0)
    visit = BoardColumn(board_id=board.id, title="Visit", position=1)
    session.add_all([lead, visit])
    session.commit()
    session.refresh(visit)
    return visit


@pytest.mark.asyncio
async def test_administrators_configure_validations(session, visit):
    # Given an administrator
    token = make_token(session, "admin", UserRole.ADMIN)
    request = ValidationRequest.model_validate({
        "type": "required_field",
        "config": {"fieldName": "assignedToId"},
        "message": "Assign a broker first",
        "behavior": "warn"
    })

    # When they create a validation
    created = await create_validation(column_id=visit.id, validation_data=request, token=token, db_session=session)
    assert created.behavior == ValidationBehavior.WARN
    assert created.type == ValidationType.REQUIRED_FIELD

    # Then it is listed for the column
    listed = await list_validations(column_id=visit.id, include_inactive=False, token=token, db_session=session)
    assert [validation.id for validation in listed] == [created.id]

    # And creating it again returns 409 Conflict with the existing id
    with pytest.raises(HTTPException) as exc_info:
        await create_validation(column_id=visit.id, validation_data=request, token=token, db_session=session)
    assert exc_info.value.status_code == 409
    assert exc_info.value.detail["existingId"] == created.id


@pytest.mark.asyncio
async def test_validation_update_and_removal(session, visit):
    token = make_token(session, "admin", UserRole.ADMIN)
    created = await create_validation(
        column_id=visit.id,
        validation_data=ValidationRequest.model_validate({
            "type": "required_relationship",
            "config": {"relationshipType": "client"},
            "message": "Link the client"
        }),
        token=token,
        db_session=session
    )

    updated = await update_validation(
        validation_id=created.id,
        validation_data=ValidationRequest.model_validate({
            "type": "required_relationship",
            "config": {"relationshipType": "property"},
            "message": "Link the property"
        }),
        token=token,
        db_session=session
    )
    assert updated.message == "Link the property"
    assert updated.config["relationshipType"] == "property"

    removal = await delete_validation(validation_id=created.id, token=token, db_session=session)
    assert removal.outcome == "deleted"

    with pytest.raises(HTTPException) as exc_info:
        await delete_validation(validation_id=created.id, token=token, db_session=session)
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_invalid_configuration_returns_400(session, visit):
    token = make_token(session, "admin", UserRole.ADMIN)

    with pytest.raises(HTTPException) as exc_info:
        await create_validation(
            column_id=visit.id,
            validation_data=ValidationRequest.model_validate({
                "type": "required_document",
                "config": {},
                "message": "Upload the contract"
            }),
            token=token,
            db_session=session
        )

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail["field"] == "config"


@pytest.mark.asyncio
async def test_members_cannot_configure_rules(session, visit):
    # Given a member user
    token = make_token(session, "member", UserRole.MEMBER)

    # When they create a validation
    with pytest.raises(HTTPException) as exc_info:
        await create_validation(
            column_id=visit.id,
            validation_data=ValidationRequest.model_validate({
                "type": "required_field",
                "config": {"fieldName": "dueDate"},
                "message": "Set a due date"
            }),
            token=token,
            db_session=session
        )

    # Then the system returns 403 Forbidden
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_actions_created_reordered_and_removed(session, visit):
    # Given an administrator
    token = make_token(session, "admin", UserRole.ADMIN)

    # When they create two actions
    tag = await create_action(
        column_id=visit.id,
        action_data=ActionRequest.model_validate({"type": "add_tag", "config": {"tagNames": ["visited"]}}),
        token=token,
        db_session=session
    )
    priority = await create_action(
        column_id=visit.id,
        action_data=ActionRequest.model_validate({"type": "set_priority", "config": {"priority": "high"}}),
        token=token,
        db_session=session
    )
    assert tag.trigger == ActionTrigger.ON_ENTER
    assert [tag.order, priority.order] == [0, 1]

    # And reorder them
    reordered = await reorder_actions(
        column_id=visit.id,
        reorder_data=ReorderRequest(ids=[priority.id, tag.id]),
        token=token,
        db_session=session
    )
    assert [action.id for action in reordered] == [priority.id, tag.id]

    # And change one of them
    updated = await update_action(
        action_id=tag.id,
        action_data=ActionRequest.model_validate({"type": "add_tag", "config": {"tagNames": ["visited", "hot"]}}),
        token=token,
        db_session=session
    )
    assert updated.type == ActionType.ADD_TAG
    assert updated.config["tagNames"] == ["visited", "hot"]

    # And delete the other
    removal = await delete_action(action_id=priority.id, token=token, db_session=session)
    assert removal.outcome == "deleted"

    # Then the column lists the remaining action
    listed = await list_actions(
        column_id=visit.id, include_inactive=True, trigger=None, token=token, db_session=session
    )
    assert [action.id for action in listed] == [tag.id]
