"""
Authentication API endpoints.

This module provides endpoints for:
- Account registration and login (JWT access token + refresh cookie)
- Token refresh (with rotation)
- Logout (revoke one refresh token) and logout from all devices
- Current account info, roles and profile update

Every mutating endpoint here requires a valid CSRF pair; see app.core.csrf.
"""

from fastapi import APIRouter, Depends, Response, status

from app.api.dependencies import Issuer, RefreshCookie, Sessions, Store
from app.core.auth import CurrentAccount, CurrentIdentity
from app.core.csrf import csrf_protect
from app.core.logging import get_logger
from app.core.security import TokenIssuer
from app.schemas.auth import (
    AccountResponse,
    LoginRequest,
    MessageResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    RolesResponse,
    SessionResponse,
)
from app.services.rate_limit import auth_rate_limit
from app.services.session import SessionResult

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"], dependencies=[Depends(csrf_protect)])


def _session_response(result: SessionResult, issuer: TokenIssuer) -> SessionResponse:
    return SessionResponse(
        access_token=result.access_token,
        expires_in=int(issuer.access_ttl.total_seconds()),
        user=AccountResponse.model_validate(result.account, from_attributes=True),
    )


@router.post(
    "/register",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(auth_rate_limit)],
)
async def register(
    payload: RegisterRequest,
    response: Response,
    sessions: Sessions,
    issuer: Issuer,
) -> SessionResponse:
    """
    Create a customer account and log it in.

    The refresh token is set as an HTTPOnly cookie; the access token is
    returned in the response body.
    """
    result = await sessions.register(payload.email, payload.password, payload.name)
    sessions.set_refresh_cookie(response, result.refresh_token)
    return _session_response(result, issuer)


@router.post("/login", response_model=SessionResponse, dependencies=[Depends(auth_rate_limit)])
async def login(
    credentials: LoginRequest,
    response: Response,
    sessions: Sessions,
    issuer: Issuer,
) -> SessionResponse:
    """
    Authenticate with email and password.

    Each login opens an additional session; other devices stay logged in.
    The CSRF token fetched before login is bound to the anonymous session and
    must be fetched again afterwards.
    """
    result = await sessions.login(credentials.email, credentials.password)
    sessions.set_refresh_cookie(response, result.refresh_token)
    return _session_response(result, issuer)


@router.post("/token", response_model=SessionResponse)
async def refresh_token(
    response: Response,
    refresh_token: RefreshCookie,
    sessions: Sessions,
    issuer: Issuer,
) -> SessionResponse:
    """
    Trade the refresh cookie for a new access token and a new refresh cookie.

    The presented refresh token is consumed: presenting it again fails.
    """
    result = await sessions.refresh(refresh_token)
    sessions.set_refresh_cookie(response, result.refresh_token)
    return _session_response(result, issuer)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    refresh_token: RefreshCookie,
    sessions: Sessions,
) -> MessageResponse:
    """
    Revoke the refresh token of this session.

    The access token is not affected and expires naturally.
    """
    await sessions.logout(refresh_token)
    sessions.clear_refresh_cookie(response)
    return MessageResponse(message="Successfully logged out")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all_devices(
    identity: CurrentIdentity,
    response: Response,
    sessions: Sessions,
) -> MessageResponse:
    """Revoke every refresh token of the current account."""
    await sessions.logout_all(identity.account_id)
    sessions.clear_refresh_cookie(response)
    return MessageResponse(message="Successfully logged out from all devices")


@router.get("/user", response_model=AccountResponse)
async def get_current_user_info(account: CurrentAccount) -> AccountResponse:
    """Current authenticated account."""
    return AccountResponse.model_validate(account, from_attributes=True)


@router.get("/user/roles", response_model=RolesResponse)
async def get_current_user_roles(identity: CurrentIdentity) -> RolesResponse:
    """Roles as asserted by the access token."""
    return RolesResponse(roles=list(identity.roles))


@router.patch("/me", response_model=AccountResponse)
async def update_profile(
    payload: ProfileUpdateRequest,
    account: CurrentAccount,
    store: Store,
) -> AccountResponse:
    updated = await store.update_profile(account, name=payload.name)
    logger.info("profile_updated", account_id=updated.id)
    return AccountResponse.model_validate(updated, from_attributes=True)
