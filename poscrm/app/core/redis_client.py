"""
Redis client initialization.

Redis holds revoked access tokens.
"""

import logging
import redis.asyncio as redis
from redis.exceptions import RedisError
from poscrm.app.core.config import settings

logger = logging.getLogger("poscrm.redis")

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """FastAPI dependency returning the shared client."""
    return redis_client


async def ping_redis() -> bool:
    """True if Redis answers a PING."""
    try:
        return await redis_client.ping()
    except (RedisError, OSError) as e:
        logger.warning("Redis ping failed: %s", e)
        return False
