"""
Expiring key-value storage for live session data.

Every value lives under a per-key TTL. The store is authoritative for the
students and submissions of a live session; nothing falls back to the durable
database when it cannot be reached.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from lara.config import Settings
from lara.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class ExpiringStore:
    """Interface shared by the in-memory and Redis backends."""

    async def put(self, key: str, value: str, ttl: int) -> None:
        raise NotImplementedError

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def get_all(self, prefix: str) -> dict[str, str]:
        raise NotImplementedError

    async def keys(self, prefix: str) -> list[str]:
        """Live keys under ``prefix``, without reading their values."""
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def extend_ttl(self, key: str, ttl: int) -> bool:
        """Push the key's expiry out to at least ``ttl`` seconds from now."""
        raise NotImplementedError

    async def close(self) -> None:
        return None


class MemoryStore(ExpiringStore):
    """Thread-safe in-process store, used for tests and single-process setups."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._values: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _live(self, key: str) -> Optional[tuple[str, float]]:
        entry = self._values.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._values[key]
            return None
        return entry

    async def put(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            current = self._live(key)
            expires_at = self._clock() + ttl
            if current is not None:
                expires_at = max(expires_at, current[1])
            self._values[key] = (value, expires_at)

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry else None

    async def get_all(self, prefix: str) -> dict[str, str]:
        with self._lock:
            keys = [key for key in self._values if key.startswith(prefix)]
            result = {}
            for key in keys:
                entry = self._live(key)
                if entry is not None:
                    result[key] = entry[0]
            return result

    async def keys(self, prefix: str) -> list[str]:
        with self._lock:
            return [key for key in list(self._values) if key.startswith(prefix) and self._live(key) is not None]

    async def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    async def extend_ttl(self, key: str, ttl: int) -> bool:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return False
            self._values[key] = (entry[0], max(entry[1], self._clock() + ttl))
            return True

    def cleanup_expired(self) -> None:
        """Drop entries whose TTL has passed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, (_, expires_at) in self._values.items() if expires_at <= now]
            for key in expired:
                del self._values[key]


class RedisStore(ExpiringStore):
    """Redis backend. Connection problems surface as ``StoreUnavailable``."""

    def __init__(self, url: str, client: Optional[redis.Redis] = None):
        self.redis = client or redis.from_url(url, encoding="utf-8", decode_responses=True)

    async def put(self, key: str, value: str, ttl: int) -> None:
        try:
            current = await self.redis.ttl(key)
            await self.redis.set(key, value, ex=max(ttl, current))
        except RedisError as exc:
            raise StoreUnavailable() from exc

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.redis.get(key)
        except RedisError as exc:
            raise StoreUnavailable() from exc

    async def get_all(self, prefix: str) -> dict[str, str]:
        keys = await self.keys(prefix)
        if not keys:
            return {}
        try:
            values = await self.redis.mget(keys)
        except RedisError as exc:
            raise StoreUnavailable() from exc
        # keys can expire between SCAN and MGET
        return {key: value for key, value in zip(keys, values) if value is not None}

    async def keys(self, prefix: str) -> list[str]:
        try:
            return [key async for key in self.redis.scan_iter(match=f"{prefix}*", count=200)]
        except RedisError as exc:
            raise StoreUnavailable() from exc

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(key)
        except RedisError as exc:
            raise StoreUnavailable() from exc

    async def extend_ttl(self, key: str, ttl: int) -> bool:
        try:
            return bool(await self.redis.expire(key, ttl, gt=True))
        except RedisError as exc:
            raise StoreUnavailable() from exc

    async def close(self) -> None:
        await self.redis.aclose()


def build_store(settings: Settings) -> ExpiringStore:
    """Create the expiring store selected by ``STORE_BACKEND``."""
    backend = settings.STORE_BACKEND.lower()
    if backend == "memory":
        logger.info("Using in-memory expiring store")
        return MemoryStore()
    if backend == "redis":
        return RedisStore(settings.REDIS_URL)
    raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND}")
