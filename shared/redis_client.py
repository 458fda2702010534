"""
Redis client singleton for cross-process slot locks.

Only used when SLOT_LOCK_BACKEND=redis, i.e. when several API workers must
agree on who holds a slot while checking and committing a booking.
"""

import logging
from functools import lru_cache

import redis.asyncio as redis
from redis import ConnectionError as RedisConnectionError

logger = logging.getLogger(__name__)


@lru_cache
def get_redis_client(redis_url: str) -> "redis.Redis":
    """
    Get cached Redis client instance with production-ready configuration.

    Redis Key Patterns:
        - Slot locks: agenda:slot-lock:{YYYY-MM-DDTHH}

    Returns:
        Redis async client configured with connection pool and retry logic
    """
    try:
        client = redis.from_url(
            redis_url,
            max_connections=20,
            decode_responses=True,
            retry_on_timeout=True,
            health_check_interval=30,
        )

        logger.info(
            f"Redis client initialized: {redis_url} "
            f"(max_connections=20, retry_on_timeout=True, health_check_interval=30s)"
        )
        return client

    except RedisConnectionError as e:
        logger.error(f"Redis connection failed: {e}", exc_info=True)
        raise


async def close_redis_client(redis_url: str) -> None:
    """
    Close Redis connection gracefully.

    Note:
        Should be called during application shutdown.
    """
    try:
        client = get_redis_client(redis_url)
        await client.aclose()
        logger.info("Redis client closed")
    except Exception as e:
        logger.warning(f"Error closing Redis client: {e}")
