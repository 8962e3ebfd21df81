"""
Cache Client

Creates the process-wide Redis client used by the session store. The client is
built once at startup, shared by reference, and closed once at shutdown.
An unreachable cache is not an error: callers receive None and fall back to
in-memory storage.
"""

from __future__ import annotations

import logging
from typing import Optional

from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

logger = logging.getLogger("news_rag.cache")


async def connect_redis(url: Optional[str]) -> Optional[Redis]:
    """
    Connect to Redis and verify the connection with PING.

    Returns
    -------
    Optional[Redis]
        A connected client, or None when no URL is configured or the server
        cannot be reached.
    """
    if not url:
        logger.warning("REDIS_URL not set, using in-memory session storage")
        return None

    client = from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=20,
        socket_keepalive=True,
        health_check_interval=30,
    )

    try:
        await client.ping()
    except (RedisError, OSError) as exc:
        logger.error("Failed to initialize Redis, continuing without it: %s", exc)
        await client.aclose()
        return None

    logger.info("Redis ping successful")
    return client


async def close_redis(client: Optional[Redis]) -> None:
    if client is None:
        return
    await client.aclose()
    logger.info("Redis connection closed")
