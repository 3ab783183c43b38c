"""Redis connection pool for streak change notifications.

Notifications are optional: an empty ``STREAK_REDIS_URL`` leaves the pool
unset, and callers that can run without it use ``get_redis_or_none()``.
"""

import redis.asyncio as redis

_pool: redis.Redis | None = None


async def init_redis(url: str) -> None:
    """Initialize the Redis connection pool."""
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis_or_none() -> redis.Redis | None:
    """Get the Redis client, or None when the pool was never initialized."""
    return _pool
