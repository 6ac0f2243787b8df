"""
Redis Client.

Shared asyncio Redis client for the poll event channels and the email
queue, created lazily from redis.yaml and the REDIS_PASSWORD secret.

Usage:
    from storefront.backend.core.redis import get_redis

    redis = get_redis()
    await redis.zadd("poll:admin:events", {payload: score})
"""

import redis.asyncio as aioredis

from storefront.backend.core.logging import get_logger

logger = get_logger(__name__)

_client: aioredis.Redis | None = None


def create_redis() -> aioredis.Redis:
    """Create a new Redis client using the project's Redis URL."""
    from storefront.backend.core.config import get_app_config, get_redis_url

    redis_config = get_app_config().redis
    client = aioredis.from_url(
        get_redis_url(),
        decode_responses=redis_config.decode_responses,
        socket_timeout=redis_config.socket_timeout,
        socket_connect_timeout=redis_config.socket_timeout,
    )
    logger.info(
        "Redis client created",
        extra={"host": redis_config.host, "port": redis_config.port, "db": redis_config.db},
    )
    return client


def get_redis() -> aioredis.Redis:
    """Get the shared Redis client (lazy initialization)."""
    global _client
    if _client is None:
        _client = create_redis()
    return _client


async def close_redis() -> None:
    """Close the shared client. Called during application shutdown."""
    global _client
    if _client is not None:
        await _client.aclose()
        logger.info("Redis client closed")
        _client = None
