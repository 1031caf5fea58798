import logging

import redis.asyncio as redis

from certgen.config import settings

logger = logging.getLogger(__name__)

_pool: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Return a shared async Redis connection (lazy-initialised)."""
    global _pool
    if _pool is None:
        _pool = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
        )
    return _pool


async def redis_status() -> str:
    """Ping Redis for the health endpoint; never raises."""
    try:
        r = await get_redis()
        await r.ping()
    except (redis.RedisError, OSError) as exc:
        logger.warning("Redis unavailable: %s", exc)
        return "unavailable"
    return "ok"


async def close_redis() -> None:
    global _pool
    if _pool is not None:
        await _pool.aclose()
        _pool = None
