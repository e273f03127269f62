"""Key/value cache stores with per-entry expiry and glob invalidation.

Two implementations share the CacheStore interface:

- InMemoryCacheStore: process-local, bounded, thread-safe.
- RedisCacheStore: networked, backed by ``redis.asyncio``.

Patterns follow Redis glob syntax (``*``, ``?``, ``[...]``, ``\\``
escapes) in both stores. Backend failures surface as
CacheUnavailableError; callers decide whether to absorb them.
"""

import abc
import re
import time
from collections import OrderedDict
from collections.abc import Callable
from threading import Lock

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from generation_router.errors import CacheUnavailableError

logger = structlog.get_logger()

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def escape_glob(value: str) -> str:
    """Escape glob metacharacters so ``value`` matches only itself."""
    return _GLOB_SPECIAL.sub(r"\\\1", value)


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a Redis-style glob into an anchored regex."""
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\" and i + 1 < len(pattern):
            parts.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        elif char == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                parts.append(re.escape(char))
            else:
                body = pattern[i + 1 : end].replace("\\", "\\\\")
                parts.append(f"[{body}]")
                i = end
        else:
            parts.append(re.escape(char))
        i += 1
    return re.compile("".join(parts), re.DOTALL)


class CacheStore(abc.ABC):
    """Async key/value store for serialized cache entries."""

    @abc.abstractmethod
    async def get(self, key: str) -> str | None:
        """Value for ``key``, or None when absent or expired."""

    @abc.abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store ``value``; a TTL of 0 means the entry never expires."""

    @abc.abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove one key. Returns whether it existed."""

    @abc.abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """Remove every key matching the glob. Returns the count removed."""

    @abc.abstractmethod
    async def keys(self, pattern: str) -> list[str]:
        """Live keys matching the glob."""

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryCacheStore(CacheStore):
    """Bounded in-process store.

    Thread-safe via Lock. Single-instance only; every method body runs
    without awaiting, so asyncio callers never interleave inside one.
    When full, the least recently used entry is evicted.
    """

    def __init__(
        self,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_entries = max_entries
        self._clock = clock
        # key -> (expires_at or None, value)
        self._entries: OrderedDict[str, tuple[float | None, str]] = OrderedDict()
        self._lock = Lock()

    async def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds > 0 else None
        with self._lock:
            self._entries[key] = (expires_at, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("cache_entry_evicted", cache_key=evicted)

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    async def delete_pattern(self, pattern: str) -> int:
        regex = glob_to_regex(pattern)
        with self._lock:
            matched = [k for k in self._entries if regex.fullmatch(k)]
            for key in matched:
                del self._entries[key]
            return len(matched)

    async def keys(self, pattern: str) -> list[str]:
        regex = glob_to_regex(pattern)
        with self._lock:
            self._purge_expired()
            return [k for k in self._entries if regex.fullmatch(k)]

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._entries)

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [
            key
            for key, (expires_at, _) in self._entries.items()
            if expires_at is not None and now >= expires_at
        ]
        for key in expired:
            del self._entries[key]


class RedisCacheStore(CacheStore):
    """Redis-backed store. Expiry is delegated to Redis ``EX``."""

    SCAN_BATCH = 500

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheStore":
        return cls(aioredis.Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        try:
            value = await self._client.get(key)
        except RedisError as exc:
            raise CacheUnavailableError(f"GET {key} failed: {exc}") from exc
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            if ttl_seconds > 0:
                await self._client.set(key, value, ex=ttl_seconds)
            else:
                await self._client.set(key, value)
        except RedisError as exc:
            raise CacheUnavailableError(f"SET {key} failed: {exc}") from exc

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._client.unlink(key))
        except RedisError as exc:
            raise CacheUnavailableError(f"UNLINK {key} failed: {exc}") from exc

    async def delete_pattern(self, pattern: str) -> int:
        keys = await self.keys(pattern)
        removed = 0
        try:
            for start in range(0, len(keys), self.SCAN_BATCH):
                batch = keys[start : start + self.SCAN_BATCH]
                removed += await self._client.unlink(*batch)
        except RedisError as exc:
            raise CacheUnavailableError(
                f"UNLINK by pattern {pattern} failed: {exc}"
            ) from exc
        return removed

    async def keys(self, pattern: str) -> list[str]:
        try:
            return [
                k.decode("utf-8") if isinstance(k, bytes) else k
                async for k in self._client.scan_iter(
                    match=pattern, count=self.SCAN_BATCH
                )
            ]
        except RedisError as exc:
            raise CacheUnavailableError(f"SCAN {pattern} failed: {exc}") from exc

    async def close(self) -> None:
        await self._client.aclose()
