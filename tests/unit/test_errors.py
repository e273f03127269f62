"""Tests for the provider error taxonomy."""

from datetime import UTC, datetime

import pytest

from generation_router.errors import (
    AdmissionReason,
    AdmissionRejectedError,
    ChainExhaustedError,
    InvalidRequestError,
    ProviderAttempt,
    ProviderErrorKind,
    ProviderUnavailableError,
    RateLimitedError,
    UnknownProviderError,
    provider_error,
)


class TestProviderErrorKind:
    def test_only_invalid_request_is_fatal(self) -> None:
        assert not ProviderErrorKind.INVALID_REQUEST.is_recoverable
        assert ProviderErrorKind.RATE_LIMITED.is_recoverable
        assert ProviderErrorKind.UNAVAILABLE.is_recoverable
        assert ProviderErrorKind.UNKNOWN.is_recoverable


class TestProviderError:
    @pytest.mark.parametrize(
        ("kind", "cls"),
        [
            (ProviderErrorKind.RATE_LIMITED, RateLimitedError),
            (ProviderErrorKind.UNAVAILABLE, ProviderUnavailableError),
            (ProviderErrorKind.INVALID_REQUEST, InvalidRequestError),
            (ProviderErrorKind.UNKNOWN, UnknownProviderError),
        ],
    )
    def test_factory_picks_subclass(
        self, kind: ProviderErrorKind, cls: type
    ) -> None:
        err = provider_error(kind, "deepseek-chat", "boom", retry_after=2.0)
        assert isinstance(err, cls)
        assert err.kind is kind
        assert err.provider == "deepseek-chat"
        assert err.detail == "boom"
        assert err.retry_after == 2.0

    def test_message_format(self) -> None:
        err = RateLimitedError("openai-gpt4", "slow down")
        assert str(err) == "openai-gpt4: rate_limited: slow down"


class TestAdmissionRejectedError:
    def test_per_request_message(self) -> None:
        err = AdmissionRejectedError(
            AdmissionReason.PER_REQUEST_CEILING_EXCEEDED,
            user_id="u1",
            estimated_tokens=5000,
            limit=3000,
            current_usage=0,
            reset_at=datetime(2026, 1, 2, tzinfo=UTC),
        )
        assert "5000" in str(err)
        assert "3000" in str(err)
        assert err.reason is AdmissionReason.PER_REQUEST_CEILING_EXCEEDED

    def test_daily_message(self) -> None:
        err = AdmissionRejectedError(
            AdmissionReason.DAILY_BUDGET_EXHAUSTED,
            user_id="u1",
            estimated_tokens=100,
            limit=1000,
            current_usage=950,
            reset_at=datetime(2026, 1, 2, tzinfo=UTC),
        )
        assert "Current usage: 950" in str(err)
        assert err.current_usage == 950


class TestChainExhaustedError:
    def test_lists_every_attempt(self) -> None:
        attempts = [
            ProviderAttempt("a", ProviderErrorKind.UNAVAILABLE, "down"),
            ProviderAttempt("b", ProviderErrorKind.RATE_LIMITED, "429", 1.5),
        ]
        err = ChainExhaustedError("chat", attempts)
        assert err.attempts == attempts
        assert "a: unavailable" in str(err)
        assert "b: rate_limited" in str(err)
