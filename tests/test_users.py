"""
Feature: Manage users
  As an administrator
  I want to register brokers and managers
  So that tasks can be assigned and actions can email them

Scenario: Administrator creates a user
  Given an administrator is authenticated
  When they create a user with POST /users
  Then the user is stored with a hashed password
  And the response does not include the password

Scenario: Invalid user data
  Given an administrator is authenticated
  When they create a user with an unknown role or a taken username
  Then the system returns 400 or 409

Scenario: Members cannot create users
  Given a member user is authenticated
  When they create a user
  Then the system returns 403 Forbidden error
"""

import pytest
from datetime import datetime, timezone, timedelta
from fastapi import HTTPException
from sqlmodel import create_engine, Session, SQLModel
from models.auth import User, Token, TokenUser, UserRole
from apis.auth import hash_password
from apis.schemas.auth import CreateUserRequest
from apis.users import create_user, get_user, list_users


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


@pytest.mark.asyncio
async def test_admin_creates_user(session):
    # Given an administrator is authenticated
    token = make_token(session, "admin", UserRole.ADMIN)

    # When they create a user
    result = await create_user(
        user_data=CreateUserRequest(
            username="ana",
            password="secret",
            name="Ana Broker",
            email="ana@example.com",
            role="member"
        ),
        token=token,
        db_session=session
    )

    # Then the user is stored with a hashed password
    stored = session.get(User, result.id)
    assert stored.hashed_password == hash_password("secret")
    assert stored.role == UserRole.MEMBER

    # And the response does not include the password
    assert "hashed_password" not in result.model_dump()
    assert result.email == "ana@example.com"

    fetched = await get_user(user_id=result.id, token=token, db_session=session)
    assert fetched.username == "ana"


@pytest.mark.asyncio
async def test_invalid_user_data(session):
    token = make_token(session, "admin", UserRole.ADMIN)

    with pytest.raises(HTTPException) as exc_info:
        await create_user(
            user_data=CreateUserRequest(username="ana", password="secret", role="owner"),
            token=token,
            db_session=session
        )
    assert exc_info.value.status_code == 400

    with pytest.raises(HTTPException) as exc_info:
        await create_user(
            user_data=CreateUserRequest(username="admin", password="secret"),
            token=token,
            db_session=session
        )
    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_members_cannot_create_users(session):
    # Given a member user is authenticated
    token = make_token(session, "member", UserRole.MEMBER)

    # When they create a user
    with pytest.raises(HTTPException) as exc_info:
        await create_user(
            user_data=CreateUserRequest(username="ana", password="secret"),
            token=token,
            db_session=session
        )

    # Then the system returns 403 Forbidden error
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_list_users_by_status(session):
    token = make_token(session, "admin", UserRole.ADMIN)
    session.add(User(username="former", hashed_password="hashed", role=UserRole.MEMBER, is_active=False))
    session.commit()

    active = await list_users(is_active=True, token=token, db_session=session)
    inactive = await list_users(is_active=False, token=token, db_session=session)

    assert [user.username for user in active] == ["admin"]
    assert [user.username for user in inactive] == ["former"]
