"""
Session manager: login, register, refresh (with rotation) and logout.

Session state lives in the credential store as refresh-token fingerprints.
An access token is never looked up server-side, so it stays valid until it
expires even after logout; keep ACCESS_TOKEN_EXPIRE_MINUTES short.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import Response
from fastapi.concurrency import run_in_threadpool

from app.config import DEFAULT_ROLES, MIN_PASSWORD_LENGTH, Settings
from app.core.errors import ConflictError, NotFoundError, UnauthorizedError
from app.core.logging import get_logger
from app.core.security import (
    ExpiredTokenError,
    InvalidTokenError,
    TokenIssuer,
    dummy_password_hash,
    get_password_hash,
    verify_password,
)
from app.models.account import Accounts
from app.services.credential_store import CredentialStore

logger = get_logger(__name__)

INVALID_CREDENTIALS = "Incorrect email or password"
INVALID_REFRESH_TOKEN = "Invalid refresh token"


@dataclass(frozen=True)
class SessionResult:
    """Outcome of a successful login, register or refresh."""

    account: Accounts
    access_token: str
    refresh_token: str


class AccountLocks:
    """
    Per-account asyncio locks, shared by every request of the process.

    Entries are dropped as soon as nobody holds or waits for them.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, account_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(account_id, asyncio.Lock())
        self._holders[account_id] = self._holders.get(account_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[account_id] -= 1
            if not self._holders[account_id]:
                del self._holders[account_id]
                del self._locks[account_id]

    def __len__(self) -> int:
        return len(self._locks)


class SessionManager:
    """
    Orchestrates the credential lifecycle of an account.

    Refresh tokens are single use: ``refresh`` swaps the presented token's
    fingerprint for a new one, and only while the old one is still stored.
    The swap runs under a per-account lock and is itself a conditional
    delete, so two concurrent refreshes with the same token yield exactly one
    success.
    """

    def __init__(
        self,
        *,
        store: CredentialStore,
        issuer: TokenIssuer,
        settings: Settings,
        locks: AccountLocks,
    ) -> None:
        self._store = store
        self._issuer = issuer
        self._settings = settings
        self._locks = locks

    async def _start_session(self, account: Accounts) -> SessionResult:
        access_token = self._issuer.issue_access_token(account.id, account.roles)
        refresh_token = self._issuer.issue_refresh_token(account.id)
        await self._store.add_fingerprint(account.id, self._issuer.fingerprint(refresh_token))
        return SessionResult(account=account, access_token=access_token, refresh_token=refresh_token)

    async def login(self, email: str, password: str) -> SessionResult:
        """
        Authenticate by email and password and open a new session.

        Raises:
            UnauthorizedError: unknown email or wrong password
        """
        account = await self._store.find_account_by_email(email)

        if account is None:
            if self._settings.AUTO_PROVISION_ON_LOGIN and len(password) >= MIN_PASSWORD_LENGTH:
                logger.warning("account_auto_provisioned", email=email)
                return await self.register(email, password, "User")
            await run_in_threadpool(verify_password, password, dummy_password_hash())
            logger.info("login_failed", reason="unknown_email")
            raise UnauthorizedError(INVALID_CREDENTIALS)

        if not await run_in_threadpool(verify_password, password, account.password_hash):
            logger.info("login_failed", reason="bad_password", account_id=account.id)
            raise UnauthorizedError(INVALID_CREDENTIALS)

        result = await self._start_session(account)
        logger.info("login_succeeded", account_id=account.id)
        return result

    async def register(self, email: str, password: str, name: str) -> SessionResult:
        """
        Create an account with the default roles and open a session for it.

        Raises:
            ConflictError: the email is already registered
        """
        # The unique index enforces this as well
        if await self._store.find_account_by_email(email) is not None:
            raise ConflictError("An account with this email already exists")

        password_hash = await run_in_threadpool(get_password_hash, password)
        account = await self._store.create_account(
            email=email,
            password_hash=password_hash,
            name=name,
            roles=[role.value for role in DEFAULT_ROLES],
        )
        result = await self._start_session(account)
        logger.info("account_registered", account_id=account.id)
        return result

    async def resolve_refresh_token(self, refresh_token: str | None) -> tuple[Accounts, str]:
        """
        Map a raw refresh token to its account and stored fingerprint.

        Tampered, expired, orphaned and revoked tokens all fail the same way
        so the response does not reveal which check failed.

        Raises:
            UnauthorizedError: the token cannot be used
        """
        if not refresh_token:
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        try:
            claims = self._issuer.verify(refresh_token, "refresh")
        except ExpiredTokenError:
            logger.debug("refresh_rejected", reason="expired")
            raise UnauthorizedError(INVALID_REFRESH_TOKEN) from None
        except InvalidTokenError as exc:
            logger.warning("refresh_rejected", reason="invalid", error=str(exc))
            raise UnauthorizedError(INVALID_REFRESH_TOKEN) from None

        account = await self._store.find_account_by_id(claims.subject)
        if account is None:
            logger.warning("refresh_rejected", reason="account_missing", account_id=claims.subject)
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        fingerprint = self._issuer.fingerprint(refresh_token)
        if not await self._store.has_fingerprint(account.id, fingerprint):
            # Signed and unexpired but no longer stored: consumed or logged out
            logger.warning("refresh_rejected", reason="revoked", account_id=account.id)
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        return account, fingerprint

    async def refresh(self, refresh_token: str | None) -> SessionResult:
        """
        Trade a refresh token for a new access/refresh pair.

        Raises:
            UnauthorizedError: the token is missing, invalid or already used
        """
        account, fingerprint = await self.resolve_refresh_token(refresh_token)
        new_refresh_token = self._issuer.issue_refresh_token(account.id)

        async with self._locks.hold(account.id):
            rotated = await self._store.rotate_fingerprint(
                account.id, fingerprint, self._issuer.fingerprint(new_refresh_token)
            )
        if not rotated:
            logger.warning("refresh_rejected", reason="lost_rotation_race", account_id=account.id)
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        access_token = self._issuer.issue_access_token(account.id, account.roles)
        logger.info("refresh_rotated", account_id=account.id)
        return SessionResult(
            account=account, access_token=access_token, refresh_token=new_refresh_token
        )

    async def logout(self, refresh_token: str | None) -> Accounts:
        """
        Revoke the presented refresh token.

        Raises:
            UnauthorizedError: same conditions as ``refresh``
        """
        account, fingerprint = await self.resolve_refresh_token(refresh_token)
        async with self._locks.hold(account.id):
            removed = await self._store.remove_fingerprint(account.id, fingerprint)
        if not removed:
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)
        logger.info("logout", account_id=account.id)
        return account

    async def logout_all(self, account_id: str) -> int:
        """Revoke every refresh token of the account (all devices)."""
        async with self._locks.hold(account_id):
            removed = await self._store.clear_fingerprints(account_id)
        logger.info("logout_all", account_id=account_id, revoked=removed)
        return removed

    async def revoke_sessions(self, account_id: str) -> int:
        """
        Administrative global logout of another account.

        Raises:
            NotFoundError: no such account
        """
        if await self._store.find_account_by_id(account_id) is None:
            raise NotFoundError("Account not found")
        return await self.logout_all(account_id)

    def set_refresh_cookie(self, response: Response, refresh_token: str) -> None:
        """Deliver the refresh token; it is never put in a response body."""
        response.set_cookie(
            key=self._settings.REFRESH_COOKIE_NAME,
            value=refresh_token,
            httponly=True,  # Prevent JavaScript access (XSS protection)
            secure=self._settings.cookie_secure,  # HTTPS only in production
            samesite="strict",
            max_age=self._settings.refresh_cookie_max_age,
            path="/",
        )

    def clear_refresh_cookie(self, response: Response) -> None:
        # Attributes must match set_refresh_cookie for browsers to drop it
        response.delete_cookie(
            key=self._settings.REFRESH_COOKIE_NAME,
            path="/",
            httponly=True,
            secure=self._settings.cookie_secure,
            samesite="strict",
        )
