# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
Redis Connection Factory — Async connection for the persisted auth session.

Connections are created explicitly and handed to the components that use
them; nothing is cached at module level.
"""

from __future__ import annotations

import redis.asyncio as aioredis
from redis.backoff import ExponentialBackoff
from redis.retry import Retry
from redis.exceptions import (
    ConnectionError,
    TimeoutError,
    BusyLoadingError,
)

_RETRY = Retry(ExponentialBackoff(cap=2, base=0.1), retries=3)
_RETRY_ERRORS = [ConnectionError, TimeoutError, BusyLoadingError, OSError]


def create_redis(url: str) -> aioredis.Redis:
    """
    Build an async Redis client for the given URL.

    Uses retry-on-error so stale pool connections are transparently reconnected.
    """
    return aioredis.from_url(
        url,
        decode_responses=True,
        max_connections=4,
        health_check_interval=15,
        retry_on_timeout=True,
        retry_on_error=_RETRY_ERRORS,
        retry=_RETRY,
        socket_connect_timeout=5,
        socket_timeout=10,
        socket_keepalive=True,
    )


async def ping(redis: aioredis.Redis) -> bool:
    """Check that the Redis server answers."""
    try:
        return bool(await redis.ping())
    except (ConnectionError, TimeoutError, OSError):
        return False
