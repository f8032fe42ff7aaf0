"""
Double-submit CSRF protection.

The token is an itsdangerous-signed ``{"sid", "n"}`` payload: ``sid`` binds it
to the current session identifier and ``n`` is a random nonce. The same value
is set as a script-readable cookie and must be echoed back by the client on
every mutating request. A cross-site attacker can make the browser send the
cookie but cannot read it to echo it.
"""

import hashlib
import hmac
import secrets
from typing import Any

from fastapi import Request, Response
from itsdangerous import BadData, URLSafeTimedSerializer

from app.config import Settings
from app.core.auth import get_client_ip, get_user_agent
from app.core.errors import InvalidCsrfTokenError
from app.core.logging import get_logger

logger = get_logger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
FORM_FIELD = "_csrf"


class CsrfGuard:
    def __init__(self, settings: Settings) -> None:
        self._serializer = URLSafeTimedSerializer(settings.CSRF_SECRET_KEY, salt="csrf")
        self._cookie_name = settings.CSRF_COOKIE_NAME
        self._header_name = settings.CSRF_HEADER_NAME
        self._refresh_cookie_name = settings.REFRESH_COOKIE_NAME
        self._max_age = settings.csrf_cookie_max_age
        self._secure = settings.cookie_secure

    def session_identifier(self, request: Request) -> str:
        """
        Identify the browser session a token is bound to.

        Hash of the refresh cookie once logged in, otherwise of client IP and
        user agent. Logging in therefore changes the identifier.
        """
        refresh_cookie = request.cookies.get(self._refresh_cookie_name)
        if refresh_cookie:
            source = refresh_cookie
        else:
            source = f"{get_client_ip(request)}-{get_user_agent(request)}"
        return hashlib.sha256(source.encode("utf-8")).hexdigest()

    def _is_valid_for(self, token: str, session_id: str) -> bool:
        try:
            payload = self._serializer.loads(token, max_age=self._max_age)
        except BadData:
            return False
        return isinstance(payload, dict) and hmac.compare_digest(
            str(payload.get("sid", "")), session_id
        )

    def generate_token(self, request: Request, response: Response, overwrite: bool = False) -> str:
        """
        Return a token for the caller's session and set the CSRF cookie.

        An existing cookie token that is still valid for this session is
        reused unless ``overwrite`` is set.
        """
        session_id = self.session_identifier(request)
        token = request.cookies.get(self._cookie_name)

        if overwrite or not token or not self._is_valid_for(token, session_id):
            token = self._serializer.dumps({"sid": session_id, "n": secrets.token_urlsafe(16)})

        response.set_cookie(
            key=self._cookie_name,
            value=token,
            httponly=False,  # Client script must read it to echo it back
            secure=self._secure,
            samesite="strict",
            max_age=self._max_age,
            path="/",
        )
        return token

    async def _submitted_token(self, request: Request) -> str | None:
        token = request.headers.get(self._header_name)
        if token:
            return token

        content_type = request.headers.get("Content-Type", "")
        body: Any = None
        if content_type.startswith("application/json"):
            try:
                body = await request.json()
            except ValueError:
                body = None
        elif content_type.startswith(
            ("application/x-www-form-urlencoded", "multipart/form-data")
        ):
            body = await request.form()
        if body is not None and hasattr(body, "get"):
            value = body.get(FORM_FIELD)
            if isinstance(value, str) and value:
                return value

        return request.query_params.get(FORM_FIELD) or None

    async def protect(self, request: Request) -> None:
        """
        Validate the double-submit pair of a mutating request.

        Raises:
            InvalidCsrfTokenError: token missing, mismatched, tampered,
                expired or bound to another session
        """
        if request.method in SAFE_METHODS:
            return

        cookie_token = request.cookies.get(self._cookie_name)
        submitted = await self._submitted_token(request)

        if not cookie_token or not submitted:
            reason = "missing"
        elif not hmac.compare_digest(cookie_token.encode(), submitted.encode()):
            reason = "mismatch"
        elif not self._is_valid_for(cookie_token, self.session_identifier(request)):
            reason = "invalid"
        else:
            return

        logger.warning(
            "csrf_rejected",
            reason=reason,
            path=request.url.path,
            method=request.method,
        )
        raise InvalidCsrfTokenError("Invalid CSRF token")


async def csrf_protect(request: Request) -> None:
    """
    Route dependency enforcing CSRF when the app's SecurityPolicy asks for it.

    Usage:
        router = APIRouter(dependencies=[Depends(csrf_protect)])
    """
    if not request.app.state.policy.enforce_csrf:
        return
    guard: CsrfGuard = request.app.state.csrf_guard
    await guard.protect(request)
