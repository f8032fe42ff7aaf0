import redis.asyncio as redis

from app.config import Settings


def create_redis_client(settings: Settings) -> redis.Redis:  # type: ignore[type-arg]
    """
    Build the app-wide async redis client.

    Connections are opened lazily, so this never blocks startup.
    """
    return redis.from_url(
        str(settings.REDIS_URL),
        encoding="utf-8",
        decode_responses=True,
    )
