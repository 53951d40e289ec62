"""
Redis client initialization and connection management.

This module provides the Redis client that backs the route cache when
cache_backend is set to "redis".
"""

import logging

import redis.asyncio as redis
from buyback.app.core.config import settings

logger = logging.getLogger(__name__)


# Create async Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def ping_redis() -> bool:
    """
    Test Redis connection.
    
    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await redis_client.ping()
    except Exception as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False
