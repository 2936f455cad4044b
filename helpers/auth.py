from fastapi import Depends, Header, HTTPException, status
from sqlmodel import Session, select
from typing import Optional
from database import get_session
from models.auth import Token, TokenUser, User, UserRole
from models.helper import as_utc, utcnow


async def get_auth_token(
    authorization: Optional[str] = Header(default=None),
    db_session: Session = Depends(get_session)
) -> Token:
    """Resolve the bearer token from the Authorization header."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: missing bearer token"
        )

    access_token = authorization[len("Bearer "):].strip()
    token_statement = select(Token).where(Token.access_token == access_token)
    token = db_session.exec(token_statement).first()

    if not token or token.is_revoked or as_utc(token.expires_at) < utcnow():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: invalid or expired token"
        )

    return token


async def require_user(token: Token, db_session: Session) -> User:
    """Return the active user that owns the token."""
    statement = (
        select(User)
        .join(TokenUser, TokenUser.user_id == User.id)
        .where(TokenUser.token_id == token.id)
    )
    user = db_session.exec(statement).first()

    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: token is not linked to an active user"
        )

    return user


async def require_admin(token: Token, db_session: Session) -> User:
    """Return the token's user, rejecting anyone who is not an admin."""
    user = await require_user(token=token, db_session=db_session)

    if user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return user
