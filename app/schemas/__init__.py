"""
Pydantic schemas for API responses and requests
"""
from app.schemas.auth import (
    AccountResponse,
    CsrfTokenResponse,
    LoginRequest,
    MessageResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    RoleUpdateRequest,
    RolesResponse,
    SessionResponse,
)

__all__ = [
    "AccountResponse",
    "CsrfTokenResponse",
    "LoginRequest",
    "MessageResponse",
    "ProfileUpdateRequest",
    "RegisterRequest",
    "RoleUpdateRequest",
    "RolesResponse",
    "SessionResponse",
]
