"""GenerationRouter -- central entry point for all generation calls.

Per request, in order:
1. Admission: reserve the token estimate in the user's budget window
2. Response cache lookup (a hit is free: the reservation is released)
3. Classify the prompt and resolve the provider chain
4. Walk the chain; recoverable failures escalate to the next provider
5. Record actual usage and store the result in the cache
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from pydantic import BaseModel

from generation_router.budget.ledger import BudgetStatus, TokenBudgetLedger
from generation_router.cache.policy import CachePolicy
from generation_router.cache.response_cache import CacheStats, ResponseCache
from generation_router.classifier import CodeIntent, classify
from generation_router.errors import (
    ChainExhaustedError,
    ProviderAttempt,
    ProviderError,
    ProviderErrorKind,
)
from generation_router.llm.pricing import CostTable
from generation_router.llm.providers.base import LLMProvider
from generation_router.llm.registry import ProviderDescriptor, RegistryConfig
from generation_router.llm.schemas import GenerationRequest, GenerationResult

logger = structlog.get_logger()

UsageCallback = Callable[[GenerationRequest, GenerationResult], Awaitable[None]]
Classifier = Callable[[str, str | None], CodeIntent]
Sleep = Callable[[float], Awaitable[None]]


class RoutingStats(BaseModel):
    """Which providers each kind of prompt would be routed through."""

    available_providers: list[str]
    code_chain: list[str]
    general_chain: list[str]
    estimated_tokens: dict[str, int]


class GenerationRouter:
    """Routes generation requests with admission, caching and fallback.

    Chain order (from the registry):
    - code prompts above the confidence threshold:
      code-specialized -> general -> high-capability
    - everything else: general -> high-capability

    ``INVALID_REQUEST`` aborts the chain and is re-raised as is; every
    other failure escalates. An exhausted chain raises
    ChainExhaustedError with one ProviderAttempt per failed step.
    """

    def __init__(
        self,
        providers: dict[str, LLMProvider],
        registry: RegistryConfig,
        cache: ResponseCache,
        ledger: TokenBudgetLedger,
        *,
        classifier: Classifier = classify,
        code_confidence_threshold: float = 0.7,
        backoff_seconds: float = 0.25,
        backoff_max_seconds: float = 2.0,
        usage_callback: UsageCallback | None = None,
        cost_table: CostTable | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._providers = providers
        self._registry = registry
        self._cache = cache
        self._ledger = ledger
        self._classifier = classifier
        self._code_threshold = code_confidence_threshold
        self._backoff_seconds = backoff_seconds
        self._backoff_max_seconds = backoff_max_seconds
        self._usage_callback = usage_callback
        self._costs = cost_table if cost_table is not None else registry.cost_table()
        self._sleep = sleep

    async def route(self, request: GenerationRequest) -> GenerationResult:
        """Serve one request from the cache or the provider chain.

        Raises:
            AdmissionRejectedError: Budget ceiling hit; nothing was called.
            InvalidRequestError: A provider rejected the request itself.
            ChainExhaustedError: Every provider in the chain failed.
        """
        with structlog.contextvars.bound_contextvars(
            action=request.action, user_id=request.user_id
        ):
            estimated = self.estimate_tokens(request)
            reservation = self._ledger.reserve(request.user_id, estimated)

            try:
                cached = await self._cache.get_for(request)
                if cached is not None:
                    result = cached
                else:
                    result = await self._execute_chain(request)
            except BaseException:
                # failure or cancellation: nothing billable was recorded
                self._ledger.release(reservation)
                raise

            if result.from_cache:
                self._ledger.release(reservation)
                logger.info(
                    "generation_routed",
                    provider=result.provider,
                    model=result.model_id,
                    from_cache=True,
                )
                return result

            self._ledger.record_usage(
                request.user_id,
                result.tokens_used,
                result.cost_cents,
                reservation,
                action=request.action,
            )
            await self._cache.put_for(request, result)
            await self._notify_usage(request, result)
            logger.info(
                "generation_routed",
                provider=result.provider,
                model=result.model_id,
                tokens_in=result.tokens_in,
                tokens_out=result.tokens_out,
                cost_cents=result.cost_cents,
                latency_ms=result.latency_ms,
                truncated=result.truncated,
                from_cache=False,
            )
            return result

    def estimate_tokens(self, request: GenerationRequest) -> int:
        """Pre-flight estimate: caller's max_tokens or the action default."""
        if request.max_tokens is not None:
            return request.max_tokens
        return self._registry.estimated_tokens(request.action)

    def resolve_chain(self, request: GenerationRequest) -> list[ProviderDescriptor]:
        """Ordered providers to try for this request."""
        intent = self._classifier(request.prompt, request.system_prompt)
        use_code = intent.is_code and intent.confidence > self._code_threshold
        logger.debug(
            "code_intent_classified",
            is_code=intent.is_code,
            confidence=intent.confidence,
            signals=list(intent.signals),
            code_chain=use_code,
        )
        return self._registry.get_chain(code=use_code)

    # -- internal: chain iteration --------------------------------------

    async def _execute_chain(self, request: GenerationRequest) -> GenerationResult:
        """Walk the chain until one provider succeeds."""
        attempts: list[ProviderAttempt] = []
        failed_calls = 0

        for position, descriptor in enumerate(self.resolve_chain(request)):
            provider = self._get_active_provider(descriptor, attempts)
            if provider is None:
                continue

            if failed_calls:
                await self._backoff(position)

            try:
                result = await provider.generate(request)
            except ProviderError as exc:
                self._record_failure(attempts, exc.provider, exc.kind, exc)
                if not exc.kind.is_recoverable:
                    raise
                failed_calls += 1
                continue
            except Exception as exc:
                # Adapter broke its contract; treat as transient.
                self._record_failure(
                    attempts, descriptor.name, ProviderErrorKind.UNKNOWN, exc
                )
                failed_calls += 1
                continue

            return self._annotate(result, request, attempts)

        logger.error(
            "provider_chain_exhausted",
            attempts=[(a.provider, a.kind.value) for a in attempts],
        )
        raise ChainExhaustedError(request.action, attempts)

    def _get_active_provider(
        self,
        descriptor: ProviderDescriptor,
        attempts: list[ProviderAttempt],
    ) -> LLMProvider | None:
        """Get provider if it exists and is enabled."""
        provider = self._providers.get(descriptor.name)
        if provider is None:
            attempts.append(
                ProviderAttempt(
                    descriptor.name,
                    ProviderErrorKind.UNAVAILABLE,
                    "provider not configured",
                )
            )
            return None
        if not provider.enabled:
            attempts.append(
                ProviderAttempt(
                    descriptor.name,
                    ProviderErrorKind.UNAVAILABLE,
                    "provider disabled",
                )
            )
            return None
        return provider

    async def _backoff(self, position: int) -> None:
        delay = min(self._backoff_seconds * position, self._backoff_max_seconds)
        if delay > 0:
            await self._sleep(delay)

    # -- helpers --------------------------------------------------------

    @staticmethod
    def _record_failure(
        attempts: list[ProviderAttempt],
        provider: str,
        kind: ProviderErrorKind,
        exc: Exception,
    ) -> None:
        retry_after = exc.retry_after if isinstance(exc, ProviderError) else None
        attempts.append(ProviderAttempt(provider, kind, str(exc), retry_after))
        logger.warning(
            "provider_attempt_failed",
            provider=provider,
            error_kind=kind.value,
            retry_after=retry_after,
            error=str(exc),
        )

    def _annotate(
        self,
        result: GenerationResult,
        request: GenerationRequest,
        attempts: list[ProviderAttempt],
    ) -> GenerationResult:
        """Stamp action, priced cost and the failed attempts before success."""
        update: dict[str, Any] = {"action": request.action, "from_cache": False}
        if (result.provider, result.model_id) in self._costs:
            update["cost_cents"] = self._costs.cost_cents(
                result.provider, result.model_id, result.tokens_in, result.tokens_out
            )
        if attempts:
            update["metadata"] = {
                **result.metadata,
                "fallback_attempts": [
                    {"provider": a.provider, "kind": a.kind.value} for a in attempts
                ],
            }
            logger.info(
                "provider_fallback_succeeded",
                provider=result.provider,
                failed_attempts=len(attempts),
            )
        return result.model_copy(update=update)

    async def _notify_usage(
        self, request: GenerationRequest, result: GenerationResult
    ) -> None:
        if self._usage_callback is None:
            return
        try:
            await self._usage_callback(request, result)
        except Exception:
            logger.error(
                "usage_callback_failed",
                provider=result.provider,
                exc_info=True,
            )

    # -- administration -------------------------------------------------

    async def invalidate_cache(
        self,
        action: str | None = None,
        user_id: str | None = None,
        pattern: str | None = None,
    ) -> int:
        return await self._cache.invalidate(action, user_id, pattern)

    async def get_cache_stats(self) -> CacheStats:
        return await self._cache.stats()

    def get_budget_status(self, user_id: str) -> BudgetStatus:
        return self._ledger.get_status(user_id)

    def update_cache_policy(self, action: str, **changes: Any) -> CachePolicy:
        return self._cache.update_policy(action, **changes)

    def available_providers(self) -> list[str]:
        return [name for name, p in self._providers.items() if p.enabled]

    def describe_routes(self) -> RoutingStats:
        """Routing rules for monitoring."""
        return RoutingStats(
            available_providers=self.available_providers(),
            code_chain=[d.name for d in self._registry.get_chain(code=True)],
            general_chain=[d.name for d in self._registry.get_chain(code=False)],
            estimated_tokens={
                name: action.estimated_tokens
                for name, action in self._registry.actions.items()
            },
        )
