"""Shared Redis client used for real-time appointment events."""

import asyncio

import redis

from app.config import settings

_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """
    Return the process-wide Redis client, creating it on first use.

    The client is synchronous; async callers go through ``asyncio.to_thread``.
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username if settings.redis_password else None,
            password=settings.redis_password or None,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=settings.redis_socket_timeout,
            socket_timeout=settings.redis_socket_timeout,
            socket_keepalive=True,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    """Return True if Redis answers PING."""
    try:
        return bool(await asyncio.to_thread(get_redis_client().ping))
    except redis.RedisError:
        return False


def close_redis_connection() -> None:
    """Drop the shared client and its connection pool."""
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None
