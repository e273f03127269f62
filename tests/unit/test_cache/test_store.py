"""Tests for cache stores and glob helpers."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from generation_router.cache.store import (
    InMemoryCacheStore,
    RedisCacheStore,
    escape_glob,
    glob_to_regex,
)
from generation_router.errors import CacheUnavailableError


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestGlob:
    @pytest.mark.parametrize(
        ("pattern", "key", "matches"),
        [
            ("ai_chat:*", "ai_chat:abc", True),
            ("ai_chat:*", "ai_tutor:abc", False),
            ("ai_chat:*:user:u1", "ai_chat:abc:user:u1", True),
            ("ai_chat:*:user:u1", "ai_chat:abc:user:u12", False),
            ("a?c", "abc", True),
            ("a[bx]c", "axc", True),
            ("a[bx]c", "ayc", False),
            (r"a\*c", "a*c", True),
            (r"a\*c", "abc", False),
        ],
    )
    def test_glob_to_regex(self, pattern: str, key: str, matches: bool) -> None:
        assert bool(glob_to_regex(pattern).fullmatch(key)) is matches

    def test_escape_glob_matches_literally(self) -> None:
        user_id = "weird*[id]?"
        regex = glob_to_regex(f"p:*:user:{escape_glob(user_id)}")
        assert regex.fullmatch(f"p:abc:user:{user_id}")
        assert not regex.fullmatch("p:abc:user:weirdXXidY")


class TestInMemoryCacheStore:
    async def test_set_get(self) -> None:
        store = InMemoryCacheStore()
        await store.set("k", "v", 60)
        assert await store.get("k") == "v"
        assert await store.get("missing") is None

    async def test_expiry(self) -> None:
        clock = FakeClock()
        store = InMemoryCacheStore(clock=clock)
        await store.set("k", "v", 60)
        clock.now += 59
        assert await store.get("k") == "v"
        clock.now += 1
        assert await store.get("k") is None
        assert len(store) == 0

    async def test_zero_ttl_never_expires(self) -> None:
        clock = FakeClock()
        store = InMemoryCacheStore(clock=clock)
        await store.set("k", "v", 0)
        clock.now += 10**9
        assert await store.get("k") == "v"

    async def test_lru_eviction(self) -> None:
        store = InMemoryCacheStore(max_entries=2)
        await store.set("a", "1", 0)
        await store.set("b", "2", 0)
        await store.get("a")
        await store.set("c", "3", 0)
        assert await store.get("b") is None
        assert await store.get("a") == "1"
        assert await store.get("c") == "3"

    async def test_delete(self) -> None:
        store = InMemoryCacheStore()
        await store.set("k", "v", 0)
        assert await store.delete("k") is True
        assert await store.delete("k") is False

    async def test_delete_pattern_idempotent(self) -> None:
        store = InMemoryCacheStore()
        await store.set("ai_chat:1", "v", 0)
        await store.set("ai_chat:2", "v", 0)
        await store.set("ai_tutor:1", "v", 0)
        assert await store.delete_pattern("ai_chat:*") == 2
        assert await store.delete_pattern("ai_chat:*") == 0
        assert await store.keys("*") == ["ai_tutor:1"]

    async def test_keys_skip_expired(self) -> None:
        clock = FakeClock()
        store = InMemoryCacheStore(clock=clock)
        await store.set("p:old", "v", 10)
        await store.set("p:new", "v", 100)
        clock.now += 50
        assert await store.keys("p:*") == ["p:new"]


class TestRedisCacheStore:
    def _store(self) -> tuple[RedisCacheStore, MagicMock]:
        client = MagicMock()
        return RedisCacheStore(client), client

    async def test_set_with_ttl(self) -> None:
        store, client = self._store()
        client.set = AsyncMock()
        await store.set("k", "v", 30)
        client.set.assert_awaited_once_with("k", "v", ex=30)

    async def test_set_without_ttl(self) -> None:
        store, client = self._store()
        client.set = AsyncMock()
        await store.set("k", "v", 0)
        client.set.assert_awaited_once_with("k", "v")

    async def test_get_decodes_bytes(self) -> None:
        store, client = self._store()
        client.get = AsyncMock(return_value=b"value")
        assert await store.get("k") == "value"

    async def test_delete_pattern_uses_scan(self) -> None:
        store, client = self._store()

        async def scan_iter(match: str, count: int):  # type: ignore[no-untyped-def]
            for key in ("p:1", "p:2"):
                yield key

        client.scan_iter = scan_iter
        client.unlink = AsyncMock(return_value=2)
        assert await store.delete_pattern("p:*") == 2
        client.unlink.assert_awaited_once_with("p:1", "p:2")

    async def test_delete_pattern_nothing_matched(self) -> None:
        store, client = self._store()

        async def scan_iter(match: str, count: int):  # type: ignore[no-untyped-def]
            return
            yield

        client.scan_iter = scan_iter
        client.unlink = AsyncMock()
        assert await store.delete_pattern("p:*") == 0
        client.unlink.assert_not_awaited()

    async def test_backend_error_wrapped(self) -> None:
        store, client = self._store()
        client.get = AsyncMock(side_effect=RedisConnectionError("refused"))
        with pytest.raises(CacheUnavailableError):
            await store.get("k")

    async def test_close(self) -> None:
        store, client = self._store()
        client.aclose = AsyncMock()
        await store.close()
        client.aclose.assert_awaited_once()
