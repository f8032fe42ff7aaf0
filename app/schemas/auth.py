"""
Authentication schemas for request/response validation.

This module defines Pydantic models for authentication-related API operations:
- Login and registration credentials
- Session (access token) responses
- Account and role views
"""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.config import MIN_PASSWORD_LENGTH, Role
from app.models.account import AccountBase


class LoginRequest(BaseModel):
    """Request schema for account login."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=255)  # Allow any length for existing accounts


class RegisterRequest(BaseModel):
    """Request schema for account registration."""

    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=255)
    name: str = Field(default="User", min_length=1, max_length=120)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be blank")
        return v


class AccountResponse(AccountBase):
    """Public view of an account. Never includes the password hash."""

    id: str
    roles: list[str]
    created_at: datetime


class SessionResponse(BaseModel):
    """
    Response schema for login, register and refresh.

    The refresh token travels only in its HTTPOnly cookie.
    """

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token expiration time in seconds from now")
    user: AccountResponse


class RolesResponse(BaseModel):
    roles: list[str]


class ProfileUpdateRequest(BaseModel):
    """Self-service profile update. Roles and email cannot be changed here."""

    name: str = Field(..., min_length=1, max_length=120)


class RoleUpdateRequest(BaseModel):
    """Admin replacement of an account's role list."""

    roles: list[Role] = Field(..., min_length=1)


class CsrfTokenResponse(BaseModel):
    csrf_token: str


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
