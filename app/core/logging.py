"""
Structured logging configuration using structlog.

Provides JSON-formatted logs with contextual information attached to every
event.

Features:
- JSON structured logging outside development
- Pretty console logging for development
- Request ID tracking
- Authenticated account binding (account_id)
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any, cast

import structlog
from structlog.types import EventDict, Processor

from app.config import Settings

# Context variables for request tracking
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
account_id_ctx: ContextVar[str | None] = ContextVar("account_id", default=None)


def add_context_info(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add contextual information to log records."""
    request_id = request_id_ctx.get(None)
    if request_id:
        event_dict["request_id"] = request_id

    account_id = account_id_ctx.get(None)
    if account_id:
        event_dict["account_id"] = account_id

    return event_dict


def configure_logging(settings: Settings) -> None:
    """
    Configure structured logging for the application.

    In development: Pretty console output with colors
    Everywhere else: JSON-formatted logs for aggregation
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_context_info,
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.ENVIRONMENT == "development":
        processors: list[Processor] = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True)
        ]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper()),
    )

    # Reduce noise from third-party libraries
    if settings.ENVIRONMENT != "development":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance

    Example:
        logger = get_logger(__name__)
        logger.info("login_succeeded", account_id="4f0c...", ip="192.168.1.1")
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))


def set_request_context(request_id: str, account_id: str | None = None) -> None:
    """
    Set context variables for the current request.

    Called by the request-id middleware at the start of each request so that
    every log line of the request carries the same request ID.

    Args:
        request_id: Unique request identifier
        account_id: Optional account ID if already known
    """
    request_id_ctx.set(request_id)
    if account_id:
        account_id_ctx.set(account_id)


def set_account_context(account_id: str) -> None:
    """
    Attach the authenticated account to all further logs of this request.

    Args:
        account_id: Subject of the verified access token
    """
    account_id_ctx.set(account_id)


def clear_request_context() -> None:
    """Clear context variables after request completes."""
    request_id_ctx.set(None)
    account_id_ctx.set(None)
