from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic_core import to_jsonable_python
from redis import Redis
from redis.exceptions import RedisError

from supplydesk.config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300
DEFAULT_CHECK_PERIOD_SECONDS = 60


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    keys: int


class Cache(Protocol):
    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def flush_all(self) -> None:
        ...

    def stats(self) -> CacheStats:
        ...

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...


class MemoryCache:
    """In-process key/value store with a TTL per entry.

    Expired entries are dropped lazily on read and by a periodic sweep that
    runs between ``start()`` and ``stop()``. ``None`` is the miss marker, so
    setting a key to ``None`` removes it instead of storing it.
    """

    def __init__(
        self,
        default_ttl_seconds: int = DEFAULT_TTL_SECONDS,
        check_period_seconds: int = DEFAULT_CHECK_PERIOD_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl_seconds = default_ttl_seconds
        self.check_period_seconds = check_period_seconds
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._sweep_task: asyncio.Task | None = None

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[1] <= self._clock():
                del self._entries[key]
                entry = None
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return entry[0]

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            if value is None:
                self._entries.pop(key, None)
                return
            self._entries[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def flush_all(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses, keys=len(self._entries))

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Evicted %d expired cache entries", len(expired))
        return len(expired)

    async def start(self) -> None:
        if self._sweep_task is not None:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.check_period_seconds)
            self.sweep()


class RedisCache:
    """Cache backed by Redis ``SETEX``; values are stored as JSON.

    Redis errors are logged and reported as a miss, so the caller falls back
    to recomputing the value.
    """

    def __init__(
        self,
        client_factory: Callable[[], Redis],
        default_ttl_seconds: int = DEFAULT_TTL_SECONDS,
        key_prefix: str = "supplydesk:",
    ) -> None:
        self._client_factory = client_factory
        self.default_ttl_seconds = default_ttl_seconds
        self.key_prefix = key_prefix
        self._hits = 0
        self._misses = 0

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def get(self, key: str) -> Any | None:
        try:
            raw = self._client_factory().get(self._key(key))
        except RedisError as exc:
            logger.warning("Redis get failed for %s: %s", key, exc)
            raw = None
        if not raw:
            self._misses += 1
            return None
        try:
            value = json.loads(raw)
        except (json.JSONDecodeError, TypeError, ValueError):
            self._misses += 1
            return None
        self._hits += 1
        return value

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        payload = json.dumps(to_jsonable_python(value))
        try:
            self._client_factory().setex(self._key(key), ttl, payload)
        except RedisError as exc:
            logger.warning("Redis set failed for %s: %s", key, exc)

    def delete(self, key: str) -> None:
        try:
            self._client_factory().delete(self._key(key))
        except RedisError as exc:
            logger.warning("Redis delete failed for %s: %s", key, exc)

    def _scan_keys(self) -> list:
        return list(self._client_factory().scan_iter(match=f"{self.key_prefix}*"))

    def flush_all(self) -> None:
        self._hits = 0
        self._misses = 0
        try:
            keys = self._scan_keys()
            if keys:
                self._client_factory().delete(*keys)
        except RedisError as exc:
            logger.warning("Redis flush failed: %s", exc)

    def stats(self) -> CacheStats:
        try:
            keys = len(self._scan_keys())
        except RedisError as exc:
            logger.warning("Redis key scan failed: %s", exc)
            keys = 0
        return CacheStats(hits=self._hits, misses=self._misses, keys=keys)

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None


def build_cache(settings: Settings) -> Cache:
    if settings.cache.backend == "redis":
        client = Redis.from_url(settings.redis_url)
        return RedisCache(
            lambda: client,
            default_ttl_seconds=settings.cache.ttl_seconds,
            key_prefix=settings.cache.key_prefix,
        )
    return MemoryCache(
        default_ttl_seconds=settings.cache.ttl_seconds,
        check_period_seconds=settings.cache.check_period_seconds,
    )
