"""Abstract LLM provider interface."""

import abc
import asyncio
import time
from dataclasses import dataclass

import structlog

from generation_router.errors import (
    ProviderError,
    ProviderErrorKind,
    ProviderUnavailableError,
    provider_error,
)
from generation_router.llm.registry import ProviderDescriptor
from generation_router.llm.schemas import GenerationRequest, GenerationResult

logger = structlog.get_logger()


@dataclass(frozen=True)
class Completion:
    """Raw outcome of one backend call, before normalization."""

    text: str
    tokens_in: int = 0
    tokens_out: int = 0
    finish_reason: str | None = None
    truncated: bool = False


class LLMProvider(abc.ABC):
    """Base class for all provider adapters.

    Subclasses implement ``_complete()`` against their SDK. The public
    ``generate()`` wraps it with the descriptor's timeout, turns every
    failure into a classified ProviderError and normalizes the output
    into a GenerationResult.

    Providers support runtime enable/disable for handling
    rate limits, quota exhaustion, or API outages.
    """

    def __init__(self, descriptor: ProviderDescriptor) -> None:
        self.descriptor = descriptor
        self._enabled: bool = True

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def enabled(self) -> bool:
        """Whether this provider is currently available."""
        return self._enabled

    def disable(self, reason: str = "") -> None:
        """Disable provider at runtime (rate limit, API down, etc.)."""
        self._enabled = False
        logger.warning("llm_provider_disabled", provider=self.name, reason=reason)

    def enable(self) -> None:
        """Re-enable provider."""
        self._enabled = True
        logger.info("llm_provider_enabled", provider=self.name)

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Run one generation call.

        Raises:
            ProviderError: Always one of its kind-specific subclasses.
                A timeout is reported as ``UNAVAILABLE``.
        """
        timeout = self.descriptor.timeout_seconds
        with self._measure_latency() as timer:
            try:
                completion = await asyncio.wait_for(
                    self._complete(request), timeout=timeout
                )
            except ProviderError:
                raise
            except TimeoutError as exc:
                raise ProviderUnavailableError(
                    self.name, f"timed out after {timeout}s"
                ) from exc
            except Exception as exc:
                raise provider_error(
                    self._classify(exc),
                    self.name,
                    f"{type(exc).__name__}: {exc}",
                    retry_after=_retry_after(exc),
                ) from exc

        metadata: dict[str, object] = {}
        if completion.finish_reason is not None:
            metadata["finish_reason"] = completion.finish_reason
        if completion.truncated:
            metadata["truncated"] = True

        return GenerationResult(
            output=completion.text,
            provider=self.name,
            model_id=self.descriptor.model_id,
            tokens_in=completion.tokens_in,
            tokens_out=completion.tokens_out,
            latency_ms=timer.elapsed_ms,
            action=request.action,
            metadata=metadata,
        )

    @abc.abstractmethod
    async def _complete(self, request: GenerationRequest) -> Completion:
        """Call the backend SDK and return its raw completion."""
        ...

    def _classify(self, exc: Exception) -> ProviderErrorKind:
        """Map an SDK exception onto the provider error taxonomy.

        Uses duck typing (getattr) on the HTTP status so that anthropic,
        openai and google-genai errors share one rule set. Subclasses
        extend this for SDK-specific transport errors.
        """
        # anthropic.APIStatusError, openai.APIStatusError
        status_code = getattr(exc, "status_code", None)
        if isinstance(status_code, int):
            return classify_status(status_code)

        # google-genai exceptions (.code attribute)
        code = getattr(exc, "code", None)
        if isinstance(code, int):
            return classify_status(code)

        if isinstance(exc, ConnectionError | OSError):
            return ProviderErrorKind.UNAVAILABLE
        return ProviderErrorKind.UNKNOWN

    def _resolve_limits(self, request: GenerationRequest) -> tuple[int, float]:
        """Effective (max_tokens, temperature) for this backend."""
        ceiling = self.descriptor.max_tokens_per_request
        max_tokens = min(request.max_tokens or ceiling, ceiling)
        temperature = (
            request.temperature
            if request.temperature is not None
            else self.descriptor.default_temperature
        )
        return max_tokens, temperature

    def _measure_latency(self) -> "_LatencyTimer":
        """Context manager for measuring call latency."""
        return _LatencyTimer()


def classify_status(status: int) -> ProviderErrorKind:
    """Classify an HTTP status code.

    400/422 mean the payload itself is wrong everywhere. Auth and
    not-found failures are specific to one backend's account or model
    catalogue, so another provider may still succeed.
    """
    if status == 429:
        return ProviderErrorKind.RATE_LIMITED
    if status in (400, 422):
        return ProviderErrorKind.INVALID_REQUEST
    if status >= 500 or status in (401, 403, 404, 408):
        return ProviderErrorKind.UNAVAILABLE
    return ProviderErrorKind.UNKNOWN


def _retry_after(exc: Exception) -> float | None:
    """Read a Retry-After header (seconds) off an SDK error, if any."""
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if headers is None:
        return None
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class _LatencyTimer:
    """Simple latency measurement helper."""

    def __init__(self) -> None:
        self.start: float = 0
        self.elapsed_ms: int = 0

    def __enter__(self) -> "_LatencyTimer":
        self.start = time.perf_counter()
        return self

    def __exit__(self, *args: object) -> None:
        self.elapsed_ms = int((time.perf_counter() - self.start) * 1000)
