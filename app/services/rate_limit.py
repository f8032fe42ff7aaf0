"""Rate limiting service using Redis."""

from datetime import timedelta

import redis.asyncio as redis
from fastapi import Request
from redis.exceptions import RedisError

from app.config import Settings
from app.core.auth import get_client_ip
from app.core.errors import RateLimitedError
from app.core.logging import get_logger

logger = get_logger(__name__)


async def check_auth_rate_limit(
    ip_address: str,
    redis_client: redis.Redis,  # type: ignore[type-arg]
    settings: Settings,
) -> None:
    """
    Enforce the login/register attempt limit per IP address.

    Limit: AUTH_RATE_LIMIT attempts per IP per AUTH_RATE_WINDOW_MINUTES.
    Gracefully degrades if Redis is unavailable (allows the request).

    Raises:
        RateLimitedError: 429 if rate limit exceeded
    """
    key = f"auth_rate:{ip_address}"
    window = timedelta(minutes=settings.AUTH_RATE_WINDOW_MINUTES)

    try:
        # Get current count
        count_bytes = await redis_client.get(key)
        count = int(count_bytes) if count_bytes else 0

        if count >= settings.AUTH_RATE_LIMIT:
            logger.warning(
                "auth_rate_limit_exceeded",
                ip_address=ip_address,
                count=count,
                limit=settings.AUTH_RATE_LIMIT,
            )
            raise RateLimitedError(
                "Too many attempts. Please try again later.",
                headers={"Retry-After": str(int(window.total_seconds()))},
            )

        # Increment counter with expiration
        pipe = redis_client.pipeline()
        pipe.incr(key)
        if count == 0:
            # First attempt from this IP in this window - set expiration
            pipe.expire(key, window)
        await pipe.execute()
    except RedisError:
        logger.warning("auth_rate_limit_redis_error", ip_address=ip_address, exc_info=True)
        return

    logger.debug(
        "auth_rate_check",
        ip_address=ip_address,
        count=count + 1,
        limit=settings.AUTH_RATE_LIMIT,
    )


async def auth_rate_limit(request: Request) -> None:
    """Route dependency applying check_auth_rate_limit when the SecurityPolicy enables it."""
    if not request.app.state.policy.rate_limit_auth:
        return
    await check_auth_rate_limit(
        get_client_ip(request), request.app.state.redis, request.app.state.settings
    )
