"""
Security utilities for authentication.

This module provides:
- Password hashing and verification using bcrypt
- TokenIssuer: signed access/refresh JWT minting and verification
- Refresh token fingerprinting (keyed HMAC, the only form ever persisted)
"""

import base64
import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Literal

import bcrypt
import jwt

from app.config import Settings

TokenKind = Literal["access", "refresh"]


class InvalidTokenError(Exception):
    """Token failed signature, structure, kind or expiry checks."""


class ExpiredTokenError(InvalidTokenError):
    """Token signature is fine but it is past its expiry."""


def _prepare_password_for_bcrypt(password: str) -> str:
    """
    Prepare password for bcrypt by handling long passwords.

    Bcrypt has a 72 byte limit. For passwords longer than 72 bytes,
    we SHA256 hash them first and encode as base64.
    """
    password_bytes = password.encode("utf-8")

    if len(password_bytes) <= 72:
        return password

    # SHA256 produces 32 bytes, base64 encoding produces 44 chars (well under 72)
    hashed = hashlib.sha256(password_bytes).digest()
    return base64.b64encode(hashed).decode("ascii")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against a bcrypt hash.

    CPU bound; async callers run it in the thread pool.
    """
    prepared_password = _prepare_password_for_bcrypt(plain_password)
    try:
        return bcrypt.checkpw(prepared_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    For passwords longer than 72 bytes (bcrypt's limit), we SHA256 hash them first.
    """
    prepared_password = _prepare_password_for_bcrypt(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(prepared_password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


@lru_cache(maxsize=1)
def dummy_password_hash() -> str:
    """
    Hash of a random password nobody knows.

    Checked against when the account does not exist, so an unknown email
    costs the same bcrypt work as a wrong password.
    """
    return get_password_hash(secrets.token_urlsafe(32))


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of an access or refresh token."""

    subject: str
    kind: TokenKind
    issued_at: datetime
    expires_at: datetime
    roles: tuple[str, ...] = ()


class TokenIssuer:
    """
    Stateless signer/verifier for the two credential kinds.

    Access tokens carry identity and a roles snapshot and are signed with
    SECRET_KEY. Refresh tokens carry identity only, are signed with
    REFRESH_SECRET_KEY and get a random ``jti`` so two tokens minted in the
    same second never collide. Nothing here touches the credential store.
    """

    def __init__(
        self,
        *,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
    ) -> None:
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self._algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        return cls(
            access_secret=settings.SECRET_KEY,
            refresh_secret=settings.REFRESH_SECRET_KEY,
            algorithm=settings.ALGORITHM,
            access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        )

    def _secret_for(self, kind: TokenKind) -> str:
        return self._access_secret if kind == "access" else self._refresh_secret

    def issue_access_token(self, account_id: str, roles: list[str] | tuple[str, ...]) -> str:
        now = datetime.now(UTC)
        payload = {
            "sub": account_id,
            "roles": list(roles),
            "type": "access",
            "iat": now,
            "exp": now + self.access_ttl,
        }
        return jwt.encode(payload, self._access_secret, algorithm=self._algorithm)

    def issue_refresh_token(self, account_id: str) -> str:
        now = datetime.now(UTC)
        payload = {
            "sub": account_id,
            "type": "refresh",
            "jti": secrets.token_urlsafe(16),
            "iat": now,
            "exp": now + self.refresh_ttl,
        }
        return jwt.encode(payload, self._refresh_secret, algorithm=self._algorithm)

    def verify(self, token: str, expected_kind: TokenKind) -> TokenClaims:
        """
        Check signature, expiry and kind of a token.

        Raises:
            ExpiredTokenError: the token is well-formed but expired
            InvalidTokenError: anything else is wrong with the token
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_for(expected_kind),
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise ExpiredTokenError("Token expired") from exc
        except jwt.PyJWTError as exc:
            raise InvalidTokenError("Invalid token") from exc

        if payload.get("type") != expected_kind:
            raise InvalidTokenError("Unexpected token type")

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise InvalidTokenError("Invalid token subject")

        roles = payload.get("roles", [])
        if not isinstance(roles, list):
            raise InvalidTokenError("Invalid roles claim")

        return TokenClaims(
            subject=subject,
            kind=expected_kind,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=UTC),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
            roles=tuple(str(role) for role in roles),
        )

    def fingerprint(self, refresh_token: str) -> str:
        """Keyed hash of a raw refresh token; what the store keeps instead of the token."""
        return hmac.new(
            self._refresh_secret.encode("utf-8"),
            refresh_token.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
