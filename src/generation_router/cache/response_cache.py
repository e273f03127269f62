"""Content-addressed response cache with per-action policies.

Keys look like ``<prefix>:<sha256[:16]>`` or, for user-scoped
actions, ``<prefix>:<sha256[:16]>:user:<user_id>`` with the user id
percent-encoded. The prefix is the action's namespace, so two actions
never share an entry.

Every store failure is absorbed here: reads degrade to a miss, writes
and invalidations to a no-op. Nothing in this module raises into the
routing path.
"""

import hashlib
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

import structlog
from pydantic import BaseModel, ValidationError

from generation_router.cache.policy import CachePolicy, CachePolicyTable
from generation_router.cache.store import CacheStore, escape_glob
from generation_router.llm.schemas import GenerationRequest, GenerationResult

logger = structlog.get_logger()

HASH_LENGTH = 16
# Rough per-entry footprint used by stats(); entries average 1-5 KB.
ESTIMATED_ENTRY_BYTES = 3000


def _user_segment(user_id: str) -> str:
    """Percent-encode a user id so it never contains ``:`` or glob syntax."""
    return quote(user_id, safe="")


class CacheStats(BaseModel):
    """Best-effort snapshot of cache occupancy."""

    entries: dict[str, int]
    estimated_total_size_bytes: int
    policies: dict[str, CachePolicy]
    failed_actions: list[str] = []


class ResponseCache:
    """Caches GenerationResults per action category."""

    def __init__(
        self,
        store: CacheStore,
        policies: CachePolicyTable,
        *,
        max_cacheable_tokens: int = 5000,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._store = store
        self._policies = policies
        self._max_cacheable_tokens = max_cacheable_tokens
        self._clock = clock

    # -- keys -----------------------------------------------------------

    def build_key(
        self,
        action: str,
        prompt: str,
        system_prompt: str | None = None,
        user_id: str | None = None,
    ) -> str:
        """Deterministic cache key for a request's content.

        Content is trimmed and lower-cased before hashing. ``user_id``
        only takes part when the action's policy is user-scoped.

        Raises:
            KeyError: If ``action`` has no cache policy.
        """
        policy = self._require_policy(action)
        return self._key(policy, prompt, system_prompt, user_id)

    @staticmethod
    def _key(
        policy: CachePolicy,
        prompt: str,
        system_prompt: str | None,
        user_id: str | None,
    ) -> str:
        hasher = hashlib.sha256()
        for part in (system_prompt or "", prompt):
            # length prefix keeps part boundaries unambiguous
            data = part.strip().lower().encode("utf-8")
            hasher.update(len(data).to_bytes(8, "big"))
            hasher.update(data)
        key = f"{policy.key_prefix}:{hasher.hexdigest()[:HASH_LENGTH]}"
        if policy.per_user and user_id:
            key += f":user:{_user_segment(user_id)}"
        return key

    # -- read / write ---------------------------------------------------

    async def get(
        self,
        action: str,
        prompt: str,
        system_prompt: str | None = None,
        user_id: str | None = None,
    ) -> GenerationResult | None:
        """Cached result annotated with ``from_cache=True``, or None."""
        policy = self._policies.get(action)
        if policy is None or not policy.enabled:
            return None

        key = self._key(policy, prompt, system_prompt, user_id)
        try:
            raw = await self._store.get(key)
        except Exception:
            logger.error("cache_get_failed", action=action, cache_key=key, exc_info=True)
            return None

        if raw is None:
            logger.debug("cache_miss", action=action, cache_key=key)
            return None

        try:
            cached = GenerationResult.model_validate_json(raw)
        except ValidationError:
            logger.warning("cache_entry_corrupt", action=action, cache_key=key)
            await self._discard(key)
            return None

        logger.debug("cache_hit", action=action, cache_key=key)
        return cached.model_copy(update={"from_cache": True})

    async def put(
        self,
        action: str,
        prompt: str,
        result: GenerationResult,
        system_prompt: str | None = None,
        user_id: str | None = None,
    ) -> bool:
        """Store a fresh result. Returns whether it was cached.

        Skipped silently when the policy is disabled, the output is
        blank, or the token count is above the cacheable ceiling.
        """
        policy = self._policies.get(action)
        if policy is None or not policy.enabled:
            return False

        if not result.output.strip():
            logger.debug("cache_skip_empty", action=action)
            return False

        if result.tokens_used > self._max_cacheable_tokens:
            logger.debug(
                "cache_skip_expensive",
                action=action,
                tokens_used=result.tokens_used,
                ceiling=self._max_cacheable_tokens,
            )
            return False

        key = self._key(policy, prompt, system_prompt, user_id)
        entry = result.model_copy(
            update={"from_cache": False, "cached_at": self._clock()}
        )
        try:
            await self._store.set(key, entry.model_dump_json(), policy.ttl_seconds)
        except Exception:
            logger.error("cache_set_failed", action=action, cache_key=key, exc_info=True)
            return False

        logger.debug(
            "cache_stored",
            action=action,
            cache_key=key,
            ttl_seconds=policy.ttl_seconds,
            tokens_used=result.tokens_used,
        )
        return True

    async def get_for(self, request: GenerationRequest) -> GenerationResult | None:
        return await self.get(
            request.action, request.prompt, request.system_prompt, request.user_id
        )

    async def put_for(
        self, request: GenerationRequest, result: GenerationResult
    ) -> bool:
        return await self.put(
            request.action,
            request.prompt,
            result,
            request.system_prompt,
            request.user_id,
        )

    async def warm_up(
        self, entries: Iterable[tuple[GenerationRequest, GenerationResult]]
    ) -> int:
        """Preload precomputed results. Returns how many were stored."""
        stored = 0
        for request, result in entries:
            if await self.put_for(request, result):
                stored += 1
        logger.info("cache_warmed_up", stored=stored)
        return stored

    # -- invalidation ---------------------------------------------------

    async def invalidate(
        self,
        action: str | None = None,
        user_id: str | None = None,
        pattern: str | None = None,
    ) -> int:
        """Drop cached entries. Returns the number removed.

        Modes:
        - ``action`` + ``user_id``: that user's entries for the action
        - ``action``: every entry for the action
        - ``pattern``: raw glob supplied by an operator
        - no arguments: every configured action namespace

        Store failures are logged and reported as 0 removed.

        Raises:
            ValueError: On argument combinations outside the modes above.
        """
        if pattern is not None and (action is not None or user_id is not None):
            raise ValueError("pattern cannot be combined with action or user_id")
        if user_id is not None and action is None:
            raise ValueError("user_id requires action")

        if pattern is not None:
            return await self._delete_pattern(pattern)

        if action is None:
            removed = 0
            for policy in self._policies.snapshot().values():
                removed += await self._delete_pattern(f"{policy.key_prefix}:*")
            return removed

        policy = self._policies.get(action)
        if policy is None:
            logger.warning("cache_invalidate_unknown_action", action=action)
            return 0
        if user_id is not None:
            return await self._delete_pattern(
                f"{policy.key_prefix}:*:user:{escape_glob(_user_segment(user_id))}"
            )
        return await self._delete_pattern(f"{policy.key_prefix}:*")

    async def _delete_pattern(self, pattern: str) -> int:
        try:
            removed = await self._store.delete_pattern(pattern)
        except Exception:
            logger.error("cache_invalidation_failed", pattern=pattern, exc_info=True)
            return 0
        logger.info("cache_invalidated", pattern=pattern, removed=removed)
        return removed

    async def _discard(self, key: str) -> None:
        try:
            await self._store.delete(key)
        except Exception:
            logger.error("cache_delete_failed", cache_key=key, exc_info=True)

    # -- policies & stats -----------------------------------------------

    def is_enabled(self, action: str) -> bool:
        policy = self._policies.get(action)
        return policy is not None and policy.enabled

    def ttl(self, action: str) -> int | None:
        policy = self._policies.get(action)
        return policy.ttl_seconds if policy else None

    def update_policy(self, action: str, **changes: Any) -> CachePolicy:
        """Retune an action's policy at runtime (see CachePolicyTable.update)."""
        updated = self._policies.update(action, **changes)
        logger.info("cache_policy_updated", action=action, **updated.model_dump())
        return updated

    async def stats(self) -> CacheStats:
        """Entry counts per action and a rough size estimate.

        A failing enumeration for one action is logged and skipped.
        """
        policies = self._policies.snapshot()
        entries: dict[str, int] = {}
        failed: list[str] = []
        for action, policy in policies.items():
            try:
                keys = await self._store.keys(f"{policy.key_prefix}:*")
            except Exception:
                logger.error("cache_stats_failed", action=action, exc_info=True)
                failed.append(action)
                continue
            entries[action] = len(keys)

        return CacheStats(
            entries=entries,
            estimated_total_size_bytes=sum(entries.values()) * ESTIMATED_ENTRY_BYTES,
            policies=policies,
            failed_actions=failed,
        )

    def _require_policy(self, action: str) -> CachePolicy:
        policy = self._policies.get(action)
        if policy is None:
            raise KeyError(f"No cache policy for action: '{action}'")
        return policy
