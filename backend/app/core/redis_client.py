"""
Redis client initialization and connection management.

This module provides the Redis client used for batch-job run locks.
"""

import redis.asyncio as redis
from backend.app.core.config import settings


# Create async Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """
    Get Redis client instance.

    This can be used as a FastAPI dependency if needed.
    """
    return redis_client


async def ping_redis() -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await redis_client.ping()
    except Exception:
        return False


async def acquire_lock(client, key: str, owner: str, ttl_seconds: int) -> bool:
    """
    Take a best-effort exclusive lock (SET NX EX).

    Returns:
        True if the lock was acquired by `owner`
    """
    return bool(await client.set(key, owner, nx=True, ex=ttl_seconds))


async def release_lock(client, key: str, owner: str) -> bool:
    """
    Release a lock only if `owner` still holds it.

    Returns:
        True if a lock was deleted
    """
    current = await client.get(key)
    if isinstance(current, bytes):
        current = current.decode()
    if current != owner:
        return False
    return bool(await client.delete(key))
