import logging
from typing import Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


def create_redis_client(url: str) -> aioredis.Redis:
    """Build a Redis client. Connections are opened lazily on first command."""
    return aioredis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
        health_check_interval=30,
    )


async def ping_redis(client: aioredis.Redis) -> bool:
    """Check connectivity at startup. An unreachable Redis is not fatal: the cache degrades to always-miss."""
    try:
        await client.ping()
        logger.info("Redis connection established successfully")
        return True
    except (RedisError, OSError) as e:
        logger.warning("Redis unavailable, caching disabled until it recovers: %s", e)
        return False


async def close_redis(client: Optional[aioredis.Redis]) -> None:
    if client is None:
        return
    try:
        await client.aclose()
        logger.info("Redis connection closed")
    except (RedisError, OSError) as e:
        logger.warning("Error while closing Redis connection: %s", e)
