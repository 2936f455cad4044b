from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select
from database import get_session
from models.auth import User, Token, UserRole
from .auth import hash_password
from .schemas.auth import CreateUserRequest, UserResponse
from helpers.auth import get_auth_token, require_admin

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> UserResponse:
    """Get user information"""

    user = db_session.get(User, user_id)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    # Return user data without sensitive information
    return UserResponse.model_validate(user)


@router.get("/")
async def list_users(
    is_active: bool = True,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> list[UserResponse]:
    """List all users."""
    # Get users filtered by is_active status
    user_statement = select(User).where(User.is_active == is_active)
    users = db_session.exec(user_statement).all()

    # Return users without sensitive information
    return [UserResponse.model_validate(user) for user in users]


@router.post("/")
async def create_user(
    user_data: CreateUserRequest,
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> UserResponse:
    """Create new user (Admins only)."""

    # Validate admin access
    await require_admin(token=token, db_session=db_session)

    role = (user_data.role or "MEMBER").upper()
    if role not in UserRole.__members__:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown role: {user_data.role}"
        )

    existing = db_session.exec(select(User).where(User.username == user_data.username)).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username already taken"
        )

    # Create user with validated data
    new_user = User(
        username=user_data.username,
        name=user_data.name,
        email=user_data.email,
        phone=user_data.phone,
        hashed_password=hash_password(user_data.password),
        role=UserRole[role],
        is_active=user_data.is_active
    )

    db_session.add(new_user)
    db_session.commit()
    db_session.refresh(new_user)

    # Return user data without sensitive information
    return UserResponse.model_validate(new_user)
