"""
Access guard dependencies for FastAPI route protection.

This module provides dependency functions for:
- Authenticating the bearer access token of a request
- Gating routes on a role
- Hiding other accounts' resources from non-admin callers
- Loading the current account for profile endpoints
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Role
from app.core.database import get_db
from app.core.errors import ForbiddenError, NotFoundError, UnauthorizedError
from app.core.logging import get_logger, set_account_context
from app.core.security import ExpiredTokenError, InvalidTokenError, TokenIssuer
from app.models.account import Accounts
from app.services.credential_store import CredentialStore

logger = get_logger(__name__)

# Define the security scheme for OpenAPI documentation
bearer_scheme = HTTPBearer(auto_error=False)

BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, as asserted by a verified access token."""

    account_id: str
    roles: tuple[str, ...]

    def has_role(self, role: Role | str) -> bool:
        value = role.value if isinstance(role, Role) else role
        return value in self.roles

    @property
    def is_admin(self) -> bool:
        return self.has_role(Role.ADMIN)


async def get_current_identity(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Identity:
    """
    Verify the ``Authorization: Bearer`` access token.

    Cookies are never consulted here; the refresh cookie is only accepted by
    the refresh and logout endpoints.

    Raises:
        UnauthorizedError: token missing, malformed, tampered or expired
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Not authenticated", headers=BEARER_CHALLENGE)

    issuer: TokenIssuer = request.app.state.token_issuer
    try:
        claims = issuer.verify(credentials.credentials, "access")
    except ExpiredTokenError:
        # Routine for clients that refresh lazily
        logger.debug("access_token_expired")
        raise UnauthorizedError("Token expired", headers=BEARER_CHALLENGE) from None
    except InvalidTokenError as exc:
        logger.warning("access_token_invalid", error=str(exc))
        raise UnauthorizedError(
            "Could not validate credentials", headers=BEARER_CHALLENGE
        ) from None

    identity = Identity(account_id=claims.subject, roles=claims.roles)
    request.state.identity = identity
    set_account_context(identity.account_id)
    return identity


def require_role(role: Role) -> Callable[..., Awaitable[Identity]]:
    """
    Dependency factory gating a route on one role.

    Usage:
        @router.patch("/things", dependencies=[Depends(require_role(Role.ADMIN))])
    """

    async def _require_role(
        identity: Annotated[Identity, Depends(get_current_identity)],
    ) -> Identity:
        if not identity.has_role(role):
            logger.info("role_denied", required=role.value)
            raise ForbiddenError(f"{role.value.capitalize()} privileges required")
        return identity

    return _require_role


def ensure_owner(identity: Identity, owner_id: str) -> None:
    """
    Allow the owner of a resource, or an admin, through.

    Anyone else gets NotFound rather than Forbidden so the existence of other
    accounts' resources is not revealed.

    Args:
        identity: Caller resolved by get_current_identity
        owner_id: Account that owns the resource

    Raises:
        NotFoundError: caller is neither the owner nor an admin
    """
    if identity.account_id != owner_id and not identity.is_admin:
        raise NotFoundError("Account not found")


async def get_current_account(
    identity: Annotated[Identity, Depends(get_current_identity)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Accounts:
    """
    Load the account behind the access token.

    Raises:
        UnauthorizedError: the account was deleted after the token was issued
    """
    account = await CredentialStore(db).find_account_by_id(identity.account_id)
    if account is None:
        raise UnauthorizedError("Account not found", headers=BEARER_CHALLENGE)
    return account


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Checks X-Forwarded-For header first (for proxies/load balancers),
    falls back to direct client IP.

    Args:
        request: FastAPI request object

    Returns:
        Client IP address as string
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first (client)
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_user_agent(request: Request) -> str:
    """Extract User-Agent header from request ("unknown" if not present)."""
    return request.headers.get("User-Agent", "unknown")


# Type aliases for dependency injection
CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
CurrentAccount = Annotated[Accounts, Depends(get_current_account)]
AdminIdentity = Annotated[Identity, Depends(require_role(Role.ADMIN))]
