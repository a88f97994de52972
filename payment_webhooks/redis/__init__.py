from typing import Optional
from redis.asyncio import Redis
from redis.asyncio.connection import ConnectionPool
from payment_webhooks.core.config import settings

redis_client: Optional[Redis] = None


def get_redis() -> Optional[Redis]:
    """
    Shared Redis client, created on first use. None when REDIS_URL is unset.
    """
    global redis_client
    if redis_client is None and settings.REDIS_URL:
        redis_pool = ConnectionPool.from_url(settings.REDIS_URL)
        redis_client = Redis(connection_pool=redis_pool)
    return redis_client


async def close_redis():
    """Close Redis connections on app shutdown."""
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        await redis_client.connection_pool.disconnect()
        redis_client = None
