# sarvasync/infrastructure/redis_cache.py
from typing import Optional
import redis.asyncio as aioredis
from sarvasync.config import get_settings

_redis_client: Optional[aioredis.Redis] = None


def get_redis() -> aioredis.Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = aioredis.from_url(get_settings().REDIS_URL, decode_responses=True)
    return _redis_client


def set_redis(client: aioredis.Redis) -> None:
    global _redis_client
    _redis_client = client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
