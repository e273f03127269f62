"""Per-action cache policies with runtime updates."""

from threading import Lock
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

KEY_PREFIX_PATTERN = r"^[A-Za-z0-9_-]+$"


class CachePolicy(BaseModel):
    """Caching rules for one action category.

    ``per_user`` scopes entries to the requesting user; otherwise an
    entry is shared by every user sending the same content.
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    ttl_seconds: int = Field(default=300, ge=0)
    key_prefix: str = Field(pattern=KEY_PREFIX_PATTERN)
    per_user: bool = False


class CachePolicyTable:
    """Owned, lock-protected mapping of action -> CachePolicy.

    Policies themselves are immutable; an update swaps in a new
    validated instance, so readers never see a half-applied change.
    Namespace prefixes stay unique across actions.
    """

    def __init__(self, policies: dict[str, CachePolicy]) -> None:
        self._lock = Lock()
        self._policies: dict[str, CachePolicy] = {}
        for action, policy in policies.items():
            self._check_prefix_unique(action, policy.key_prefix)
            self._policies[action] = policy

    def get(self, action: str) -> CachePolicy | None:
        with self._lock:
            return self._policies.get(action)

    def snapshot(self) -> dict[str, CachePolicy]:
        """Point-in-time copy of all policies."""
        with self._lock:
            return dict(self._policies)

    def set(self, action: str, policy: CachePolicy) -> CachePolicy:
        """Install or replace the policy for ``action``."""
        with self._lock:
            self._check_prefix_unique(action, policy.key_prefix)
            self._policies[action] = policy
            return policy

    def update(self, action: str, **changes: Any) -> CachePolicy:
        """Apply field changes to an existing policy.

        Raises:
            KeyError: If ``action`` has no policy.
            pydantic.ValidationError: If the result is invalid
                (e.g. negative TTL).
            ValueError: If the new prefix is already used.
        """
        with self._lock:
            current = self._policies.get(action)
            if current is None:
                raise KeyError(f"No cache policy for action: '{action}'")
            updated = CachePolicy.model_validate(
                {**current.model_dump(), **changes}
            )
            self._check_prefix_unique(action, updated.key_prefix)
            self._policies[action] = updated
            return updated

    def _check_prefix_unique(self, action: str, prefix: str) -> None:
        for other_action, other in self._policies.items():
            if other_action != action and other.key_prefix == prefix:
                raise ValueError(
                    f"Cache key prefix '{prefix}' already used by "
                    f"action '{other_action}'"
                )
