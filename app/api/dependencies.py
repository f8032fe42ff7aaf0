"""
Shared dependencies for API endpoints.

Per-app singletons (settings, token issuer, account locks) live on
``request.app.state``; per-request objects are built here from them.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.core.database import get_db
from app.core.security import TokenIssuer
from app.services.credential_store import CredentialStore
from app.services.session import SessionManager


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer  # type: ignore[no-any-return]


async def get_credential_store(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CredentialStore:
    return CredentialStore(db)


async def get_session_manager(
    request: Request,
    store: Annotated[CredentialStore, Depends(get_credential_store)],
) -> SessionManager:
    return SessionManager(
        store=store,
        issuer=request.app.state.token_issuer,
        settings=request.app.state.settings,
        locks=request.app.state.account_locks,
    )


def get_refresh_token_from_cookie(request: Request) -> str | None:
    """Raw refresh token from its HTTPOnly cookie; validation is the session manager's job."""
    settings: Settings = request.app.state.settings
    return request.cookies.get(settings.REFRESH_COOKIE_NAME)


Issuer = Annotated[TokenIssuer, Depends(get_token_issuer)]
Store = Annotated[CredentialStore, Depends(get_credential_store)]
Sessions = Annotated[SessionManager, Depends(get_session_manager)]
RefreshCookie = Annotated[str | None, Depends(get_refresh_token_from_cookie)]
