"""Response caching: stores, per-action policies, the response cache."""

from generation_router.cache.policy import CachePolicy, CachePolicyTable
from generation_router.cache.response_cache import CacheStats, ResponseCache
from generation_router.cache.store import (
    CacheStore,
    InMemoryCacheStore,
    RedisCacheStore,
)

__all__ = [
    "CachePolicy",
    "CachePolicyTable",
    "CacheStats",
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "ResponseCache",
]
