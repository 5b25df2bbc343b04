"""
Redis connection management.
Builds the asyncio Redis client shared by a queue, its jobs and its workers.
"""

import logging

from redis.asyncio import Redis

from kue.config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_client(settings: Settings | None = None) -> Redis:
    """
    Create a Redis client from settings.

    `redis_url` wins when set; otherwise host/port/db/password are used.
    Responses are decoded to `str`.

    Args:
        settings: Settings to use. Defaults to the cached settings.

    Returns:
        Redis: An asyncio Redis client. Connections are opened lazily.
    """
    settings = settings or get_settings()

    if settings.redis_url:
        client = Redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.redis_socket_timeout_seconds,
        )
        logger.info("Redis client created from URL")
        return client

    client = Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        password=settings.redis_password,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout_seconds,
    )
    logger.info(
        "Redis client created",
        extra={"host": settings.redis_host, "port": settings.redis_port, "db": settings.redis_db},
    )
    return client


async def close_client(client: Redis) -> None:
    """Close a client and its connection pool."""
    await client.aclose()
    logger.info("Redis client closed")
