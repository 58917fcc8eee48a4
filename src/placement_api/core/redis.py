"""
Redis Connection

Shared async Redis client. Redis is optional: rate limiting falls back to
process memory when it is not connected.
"""

import logging

from redis.asyncio import Redis, from_url

from placement_api.core.config import settings

logger = logging.getLogger(__name__)

redis_client: Redis | None = None


async def init_redis() -> Redis:
    """Connect to Redis. Call on application startup."""
    global redis_client
    client = from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    await client.ping()
    redis_client = client
    logger.info("Redis connection established")
    return redis_client


async def get_redis() -> Redis | None:
    """Return the shared client, or None when Redis is not connected."""
    return redis_client


async def close_redis() -> None:
    """Close the Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
