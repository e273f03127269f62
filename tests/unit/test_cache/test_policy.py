"""Tests for cache policies and the policy table."""

import pytest
from pydantic import ValidationError

from generation_router.cache.policy import CachePolicy, CachePolicyTable


@pytest.fixture
def table() -> CachePolicyTable:
    return CachePolicyTable(
        {
            "chat": CachePolicy(ttl_seconds=3600, key_prefix="ai_chat"),
            "tutor": CachePolicy(ttl_seconds=60, key_prefix="ai_tutor"),
        }
    )


class TestCachePolicy:
    def test_defaults(self) -> None:
        p = CachePolicy(key_prefix="x")
        assert p.enabled is True
        assert p.ttl_seconds == 300
        assert p.per_user is False

    def test_negative_ttl_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CachePolicy(ttl_seconds=-1, key_prefix="x")

    @pytest.mark.parametrize("prefix", ["", "has space", "has:colon", "glob*"])
    def test_prefix_charset(self, prefix: str) -> None:
        with pytest.raises(ValidationError):
            CachePolicy(key_prefix=prefix)

    def test_frozen(self) -> None:
        p = CachePolicy(key_prefix="x")
        with pytest.raises(ValidationError):
            p.ttl_seconds = 10  # type: ignore[misc]


class TestCachePolicyTable:
    def test_get(self, table: CachePolicyTable) -> None:
        assert table.get("chat").ttl_seconds == 3600  # type: ignore[union-attr]
        assert table.get("missing") is None

    def test_update(self, table: CachePolicyTable) -> None:
        updated = table.update("tutor", ttl_seconds=120, per_user=True)
        assert updated.ttl_seconds == 120
        assert updated.per_user is True
        assert updated.key_prefix == "ai_tutor"
        assert table.get("tutor") == updated

    def test_update_unknown_action(self, table: CachePolicyTable) -> None:
        with pytest.raises(KeyError):
            table.update("missing", enabled=False)

    def test_update_invalid_value_keeps_old(self, table: CachePolicyTable) -> None:
        with pytest.raises(ValidationError):
            table.update("tutor", ttl_seconds=-5)
        assert table.get("tutor").ttl_seconds == 60  # type: ignore[union-attr]

    def test_update_duplicate_prefix(self, table: CachePolicyTable) -> None:
        with pytest.raises(ValueError, match="already used"):
            table.update("tutor", key_prefix="ai_chat")

    def test_duplicate_prefix_in_constructor(self) -> None:
        with pytest.raises(ValueError):
            CachePolicyTable(
                {
                    "a": CachePolicy(key_prefix="same"),
                    "b": CachePolicy(key_prefix="same"),
                }
            )

    def test_set_new_action(self, table: CachePolicyTable) -> None:
        table.set("breakdown", CachePolicy(ttl_seconds=120, key_prefix="ai_breakdown"))
        assert set(table.snapshot()) == {"chat", "tutor", "breakdown"}

    def test_snapshot_is_a_copy(self, table: CachePolicyTable) -> None:
        snap = table.snapshot()
        snap.clear()
        assert len(table.snapshot()) == 2
