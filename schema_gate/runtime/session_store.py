# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
Session Store — Local key-value persistence for the identity-provider session.

The session survives process restarts. Its lifetime follows sign-in and
sign-out only; selecting another tenant never touches it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as aioredis

logger = logging.getLogger("gate.session_store")


class SessionStore(ABC):
    """Persists one serialized session blob."""

    @abstractmethod
    async def load(self) -> Optional[str]:
        ...

    @abstractmethod
    async def save(self, blob: str) -> None:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...


class MemorySessionStore(SessionStore):
    """Process-local store; the session is lost on restart."""

    def __init__(self) -> None:
        self._blob: Optional[str] = None

    async def load(self) -> Optional[str]:
        return self._blob

    async def save(self, blob: str) -> None:
        self._blob = blob

    async def clear(self) -> None:
        self._blob = None


class RedisSessionStore(SessionStore):
    """
    Redis-backed store.

    Redis key: {key} (plain string, no TTL; cleared explicitly on sign-out).
    """

    def __init__(self, redis: aioredis.Redis, key: str) -> None:
        self._redis = redis
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    async def load(self) -> Optional[str]:
        blob = await self._redis.get(self._key)
        if isinstance(blob, bytes):
            blob = blob.decode("utf-8")
        return blob

    async def save(self, blob: str) -> None:
        await self._redis.set(self._key, blob)
        logger.debug("Persisted auth session under %s", self._key)

    async def clear(self) -> None:
        await self._redis.delete(self._key)
