"""
backend/fairline/store.py

Purpose:
    Cache/store primitives shared by the prefetch scheduler (writer) and the
    odds aggregator (reader). Values are JSON strings; reads after the TTL
    are misses. Counters use an atomic increment.

    RedisStore is the production backend; MemoryStore is the single-process
    fallback used when REDIS_URL is unset, and in tests.

Dependencies:
    - redis (redis.asyncio)
"""

from __future__ import annotations

import fnmatch
import logging
import time
from typing import Callable, Protocol

import redis.asyncio as aioredis

logger = logging.getLogger("fairline.store")


class CacheStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> bool: ...

    async def incr(self, key: str, ttl_seconds: int | None = None) -> int: ...

    async def keys(self, pattern: str) -> list[str]: ...

    async def delete(self, key: str) -> None: ...

    async def publish(self, channel: str, message: str) -> int: ...

    async def aclose(self) -> None: ...


class RedisStore:
    """redis.asyncio backed store. ``keys`` uses SCAN so it never blocks the server."""

    def __init__(self, client: aioredis.Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        return cls(aioredis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        return await self._redis.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> bool:
        if ttl_seconds and ttl_seconds > 0:
            return bool(await self._redis.set(key, value, ex=int(ttl_seconds)))
        return bool(await self._redis.set(key, value))

    async def incr(self, key: str, ttl_seconds: int | None = None) -> int:
        if not ttl_seconds or ttl_seconds <= 0:
            return int(await self._redis.incr(key))
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, int(ttl_seconds))
            value, _ = await pipe.execute()
        return int(value)

    async def keys(self, pattern: str) -> list[str]:
        return [key async for key in self._redis.scan_iter(match=pattern, count=500)]

    async def delete(self, key: str) -> None:
        await self._redis.delete(key)

    async def publish(self, channel: str, message: str) -> int:
        return int(await self._redis.publish(channel, message))

    async def aclose(self) -> None:
        await self._redis.aclose()


class MemoryStore:
    """In-process TTL store with Redis glob semantics for ``keys``."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}
        self.published: list[tuple[str, str]] = []

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def _expiry(self, ttl_seconds: int | None) -> float | None:
        if ttl_seconds and ttl_seconds > 0:
            return self._clock() + ttl_seconds
        return None

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> bool:
        self._data[key] = (value, self._expiry(ttl_seconds))
        return True

    async def incr(self, key: str, ttl_seconds: int | None = None) -> int:
        current = self._live(key)
        number = int(current) + 1 if current is not None else 1
        expires_at = self._expiry(ttl_seconds)
        if expires_at is None and key in self._data:
            expires_at = self._data[key][1]
        self._data[key] = (str(number), expires_at)
        return number

    async def keys(self, pattern: str) -> list[str]:
        return [k for k in list(self._data) if fnmatch.fnmatchcase(k, pattern) and self._live(k) is not None]

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def publish(self, channel: str, message: str) -> int:
        # No subscribers in-process; messages are kept for inspection.
        self.published.append((channel, message))
        return 0

    async def aclose(self) -> None:
        self._data.clear()


def build_store(redis_url: str = "") -> CacheStore:
    if redis_url:
        logger.info("Using Redis cache store")
        return RedisStore.from_url(redis_url)
    logger.warning("REDIS_URL not set - using in-process cache store")
    return MemoryStore()
