from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class LoginRequest(BaseModel):
    """Schema for user login."""
    username: str = Field(..., description="Username for authentication")
    password: str = Field(..., description="Plain text password")


class LoginResponse(BaseModel):
    """Schema for login response."""
    access_token: str = Field(..., description="Bearer access token")
    refresh_token: Optional[str] = Field(default=None, description="Refresh token for token renewal")
    token_type: str = Field(default="bearer", description="Token type")
    expires_at: datetime = Field(..., description="When the access token expires")
    user: "UserResponse" = Field(..., description="Authenticated user information")


class CreateUserRequest(BaseModel):
    """Schema for creating a new user."""
    username: str = Field(..., description="Unique username")
    password: str = Field(..., description="User password")
    name: Optional[str] = Field(default=None, description="Display name")
    email: Optional[str] = Field(default=None, description="User email address, used as email recipient")
    phone: Optional[str] = Field(default=None, description="User phone number")
    role: Optional[str] = Field(default="MEMBER", description="User role (ADMIN or MEMBER)")
    is_active: bool = Field(default=True, description="Whether the user is active")


class SignupRequest(BaseModel):
    """Schema for initial admin signup (only when no users exist)."""
    username: str = Field(..., description="Admin username")
    password: str = Field(..., description="Admin password")
    name: Optional[str] = Field(default=None, description="Admin display name")
    email: Optional[str] = Field(default=None, description="Admin email address")


# Response Schemas
class UserResponse(BaseModel):
    """Schema for user responses (excludes sensitive information)."""
    id: str = Field(..., description="User ID")
    username: str = Field(..., description="Username")
    name: Optional[str] = Field(default=None, description="Display name")
    email: Optional[str] = Field(default=None, description="User email address")
    phone: Optional[str] = Field(default=None, description="User phone number")
    role: str = Field(..., description="User role (ADMIN or MEMBER)")
    is_active: bool = Field(..., description="Whether the user is active")

    model_config = {"from_attributes": True}  # Allows Pydantic to work with SQLModel objects


class MessageResponse(BaseModel):
    """Schema for simple message responses."""
    message: str = Field(..., description="Response message")
