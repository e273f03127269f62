"""One-stop factory for assembling the full generation stack.

Usage::

    from generation_router.config import get_settings
    from generation_router.llm import GenerationRequest
    from generation_router.llm.setup import create_generation_router

    router = create_generation_router(get_settings())
    result = await router.route(
        GenerationRequest(action="chat", prompt="hi", user_id="u-1")
    )
"""

from datetime import timedelta

import structlog

from generation_router.budget.ledger import TokenBudgetLedger
from generation_router.cache.policy import CachePolicyTable
from generation_router.cache.response_cache import ResponseCache
from generation_router.cache.store import (
    CacheStore,
    InMemoryCacheStore,
    RedisCacheStore,
)
from generation_router.config import CacheBackend, Settings
from generation_router.llm.factory import create_providers
from generation_router.llm.registry import RegistryConfig, load_registry
from generation_router.llm.router import GenerationRouter, UsageCallback

logger = structlog.get_logger()


def create_cache_store(settings: Settings) -> CacheStore:
    """Cache store for the configured backend."""
    if settings.cache_backend == CacheBackend.REDIS:
        return RedisCacheStore.from_url(settings.redis_url)
    return InMemoryCacheStore(max_entries=settings.cache_max_entries)


def create_generation_router(
    settings: Settings,
    *,
    registry: RegistryConfig | None = None,
    store: CacheStore | None = None,
    usage_callback: UsageCallback | None = None,
) -> GenerationRouter:
    """Assemble GenerationRouter with providers, cache and budget ledger.

    Args:
        settings: Application settings with API keys and registry path.
        registry: Pre-loaded registry; read from ``settings.registry_path``
            when omitted.
        store: Cache store override (tests, shared Redis client).
        usage_callback: Awaited with (request, result) after every
            provider-served generation.

    Returns:
        Configured GenerationRouter ready for use.
    """
    registry = registry or load_registry(settings.registry_path)
    providers = create_providers(settings, registry)

    cache = ResponseCache(
        store or create_cache_store(settings),
        CachePolicyTable(registry.cache_policies()),
        max_cacheable_tokens=settings.max_cacheable_tokens,
    )
    ledger = TokenBudgetLedger(
        daily_limit=settings.daily_token_limit,
        per_request_limit=settings.per_request_token_limit,
        window=timedelta(hours=settings.budget_window_hours),
    )

    router = GenerationRouter(
        providers=providers,
        registry=registry,
        cache=cache,
        ledger=ledger,
        code_confidence_threshold=settings.code_confidence_threshold,
        backoff_seconds=settings.fallback_backoff_seconds,
        backoff_max_seconds=settings.fallback_backoff_max_seconds,
        usage_callback=usage_callback,
    )
    logger.info(
        "generation_router_created",
        providers=list(providers.keys()),
        cache_backend=settings.cache_backend.value,
        daily_token_limit=settings.daily_token_limit,
    )
    return router
