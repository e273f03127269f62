"""Typed failures surfaced by the generation router.

Callers of ``GenerationRouter.route`` only ever see the exceptions in
this module: admission rejections, a non-recoverable provider error,
or an exhausted fallback chain. Cache failures never leave the
response cache.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class ProviderErrorKind(StrEnum):
    """Closed set of failure classes a provider adapter can report."""

    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    INVALID_REQUEST = "invalid_request"
    UNKNOWN = "unknown"

    @property
    def is_recoverable(self) -> bool:
        """Whether the router may fall back to the next provider."""
        return self is not ProviderErrorKind.INVALID_REQUEST


class AdmissionReason(StrEnum):
    PER_REQUEST_CEILING_EXCEEDED = "per_request_ceiling_exceeded"
    DAILY_BUDGET_EXHAUSTED = "daily_budget_exhausted"


class AdmissionRejectedError(Exception):
    """Token budget ledger refused the request before any provider call.

    Attributes:
        reason: Which ceiling was hit.
        user_id: The rejected user.
        estimated_tokens: Pre-flight estimate that was checked.
        limit: The ceiling that was exceeded.
        current_usage: Tokens already consumed (or reserved) in the window.
        reset_at: When the user's current window ends.
    """

    def __init__(
        self,
        reason: AdmissionReason,
        *,
        user_id: str,
        estimated_tokens: int,
        limit: int,
        current_usage: int,
        reset_at: datetime,
    ) -> None:
        self.reason = reason
        self.user_id = user_id
        self.estimated_tokens = estimated_tokens
        self.limit = limit
        self.current_usage = current_usage
        self.reset_at = reset_at
        if reason is AdmissionReason.PER_REQUEST_CEILING_EXCEEDED:
            message = (
                f"Request estimated to use {estimated_tokens} tokens, "
                f"which exceeds the {limit} token per request limit"
            )
        else:
            message = (
                f"Daily token limit would be exceeded. Current usage: "
                f"{current_usage}, estimated request: {estimated_tokens}, "
                f"daily limit: {limit}"
            )
        super().__init__(message)


class ProviderError(Exception):
    """Classified failure of a single provider call.

    ``kind`` is fixed per subclass; use :func:`provider_error` to build
    the right subclass from a kind.
    """

    kind: ProviderErrorKind = ProviderErrorKind.UNKNOWN

    def __init__(
        self,
        provider: str,
        message: str = "",
        *,
        retry_after: float | None = None,
    ) -> None:
        self.provider = provider
        self.detail = message
        self.retry_after = retry_after
        super().__init__(f"{provider}: {self.kind.value}: {message}")


class RateLimitedError(ProviderError):
    kind = ProviderErrorKind.RATE_LIMITED


class ProviderUnavailableError(ProviderError):
    kind = ProviderErrorKind.UNAVAILABLE


class InvalidRequestError(ProviderError):
    """Request itself is bad; no other provider will accept it either."""

    kind = ProviderErrorKind.INVALID_REQUEST


class UnknownProviderError(ProviderError):
    kind = ProviderErrorKind.UNKNOWN


_ERROR_CLASSES: dict[ProviderErrorKind, type[ProviderError]] = {
    ProviderErrorKind.RATE_LIMITED: RateLimitedError,
    ProviderErrorKind.UNAVAILABLE: ProviderUnavailableError,
    ProviderErrorKind.INVALID_REQUEST: InvalidRequestError,
    ProviderErrorKind.UNKNOWN: UnknownProviderError,
}


def provider_error(
    kind: ProviderErrorKind,
    provider: str,
    message: str = "",
    *,
    retry_after: float | None = None,
) -> ProviderError:
    """Instantiate the ProviderError subclass matching ``kind``."""
    return _ERROR_CLASSES[kind](provider, message, retry_after=retry_after)


@dataclass(frozen=True)
class ProviderAttempt:
    """One failed step of a fallback chain."""

    provider: str
    kind: ProviderErrorKind
    message: str
    retry_after: float | None = None


class ChainExhaustedError(Exception):
    """Every provider in the resolved chain failed recoverably."""

    def __init__(self, action: str, attempts: list[ProviderAttempt]) -> None:
        self.action = action
        self.attempts = attempts
        details = "; ".join(f"{a.provider}: {a.kind.value}" for a in attempts)
        super().__init__(f"All providers failed for action '{action}': {details}")


class CacheUnavailableError(Exception):
    """Cache store backend could not serve the operation.

    Raised by cache store implementations only; the response cache
    absorbs it and degrades to a miss or no-op.
    """
