import logging
from functools import lru_cache

from redis.asyncio import Redis

from app.core.settings import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "loan-service"


@lru_cache(maxsize=1)
def get_redis_client() -> Redis:
    """Process-wide client; short socket timeouts so a slow cache never stalls a request."""
    return Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout_seconds,
        socket_connect_timeout=settings.redis_socket_timeout_seconds,
    )


async def close_redis_client() -> None:
    if get_redis_client.cache_info().currsize == 0:
        return
    client = get_redis_client()
    get_redis_client.cache_clear()
    try:
        await client.aclose()
    except Exception as exc:
        logger.warning("Redis client close failed: %s", exc)


def redis_key(*parts) -> str:
    """``loan-service:<part>:<part>...``"""
    return ":".join([KEY_PREFIX, *(str(part) for part in parts)])
