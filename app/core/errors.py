"""
Error taxonomy and HTTP rendering.

Every credential, signature and store failure is normalised to one of the
ServiceError subclasses below before it reaches the client. Handlers render
them as ``{"detail": <message>, "code": <error_code>}``; internal causes are
logged but never echoed.
"""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.logging import get_logger

logger = get_logger(__name__)


class ServiceError(Exception):
    """Base class for errors mapped to HTTP responses."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "bad_request"

    def __init__(self, message: str, *, headers: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.headers = headers


class BadRequestError(ServiceError):
    """Malformed input (400)."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "bad_request"


class UnauthorizedError(ServiceError):
    """Missing, invalid, expired or revoked credential (401)."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "unauthorized"


class ForbiddenError(ServiceError):
    """Authenticated but lacking the required role (403)."""

    status_code = status.HTTP_403_FORBIDDEN
    error_code = "forbidden"


class NotFoundError(ServiceError):
    """Absent resource, or a resource the caller may not see (404)."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"


class ConflictError(ServiceError):
    """Duplicate registration (409)."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "conflict"


class InvalidCsrfTokenError(ServiceError):
    """Double-submit CSRF check failed (403)."""

    status_code = status.HTTP_403_FORBIDDEN
    error_code = "invalid_csrf_token"


class RateLimitedError(ServiceError):
    """Too many attempts from one client (429)."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = "rate_limited"


def _error_response(
    status_code: int,
    message: str,
    code: str,
    headers: dict[str, str] | None = None,
    errors: list[Any] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {"detail": message, "code": code}
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers that render the taxonomy above."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError) -> JSONResponse:
        logger.info(
            "request_rejected",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=exc.error_code,
        )
        return _error_response(exc.status_code, exc.message, exc.error_code, exc.headers)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in exc.errors()
        ]
        logger.info("request_validation_failed", path=request.url.path, errors=errors)
        return _error_response(
            status.HTTP_400_BAD_REQUEST, "Invalid request", BadRequestError.error_code, errors=errors
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            exc_info=exc,
        )
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "server_error"
        )
