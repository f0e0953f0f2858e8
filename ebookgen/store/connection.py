"""
Redis connection management for the durable store.

Provides a singleton asyncio Redis connection shared by the registry,
workers and scheduler of one process.
"""

from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from ebookgen.config import config
from ebookgen.errors import StoreError
from ebookgen.utils.logging import store_logger as logger

# Singleton connection
_redis_connection: Optional[Redis] = None


async def get_redis_connection() -> Redis:
    """
    Get the Redis connection singleton.

    Returns:
        Redis connection instance

    Raises:
        StoreError: If REDIS_URL is not configured or Redis is unreachable
    """
    global _redis_connection

    if _redis_connection is None:
        redis_url = config.REDIS_URL
        if not redis_url:
            raise StoreError(
                "REDIS_URL environment variable is required for the page queue. "
                "Set up a local or hosted Redis and configure REDIS_URL."
            )

        # rediss:// (TLS) is handled by from_url
        connection = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=10,
            socket_connect_timeout=10,
            retry_on_timeout=True,
            health_check_interval=30,
        )

        try:
            await connection.ping()
        except RedisError as e:
            await connection.aclose()
            raise StoreError(f"Failed to connect to Redis: {e}")

        host = redis_url.split("@")[-1] if "@" in redis_url else redis_url
        logger.info("Redis connected", host=host)
        _redis_connection = connection

    return _redis_connection


async def close_redis_connection():
    """Close the Redis connection (for cleanup)."""
    global _redis_connection
    if _redis_connection is not None:
        await _redis_connection.aclose()
        _redis_connection = None


async def redis_health_check(client: Optional[Redis] = None) -> dict:
    """
    Check Redis connection health.

    Returns:
        Dict with health status and dispatch queue length
    """
    try:
        conn = client or await get_redis_connection()
        await conn.ping()
        return {
            "status": "healthy",
            "connected": True,
            "queue_length": await conn.llen(config.DISPATCH_QUEUE_NAME),
        }
    except (RedisError, StoreError) as e:
        return {
            "status": "unhealthy",
            "connected": False,
            "error": str(e)
        }
