"""Tests for application configuration."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from generation_router.config import CacheBackend, Environment, Settings


class TestSettings:
    """Test Settings model validation and computed fields."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Settings loads with all defaults (no env vars needed)."""
        monkeypatch.delenv("ENVIRONMENT", raising=False)
        s = Settings(_env_file=None)
        assert s.environment == Environment.DEVELOPMENT
        assert s.cache_backend == CacheBackend.MEMORY
        assert s.daily_token_limit == 30_000
        assert s.per_request_token_limit == 3000
        assert s.max_cacheable_tokens == 5000
        assert s.registry_path == Path("config/providers.yaml")
        assert s.is_dev is True
        assert s.is_prod is False

    def test_secret_str_not_exposed(self) -> None:
        """API keys are not exposed in repr or string conversion."""
        s = Settings(
            deepseek_api_key="super-secret-key",  # type: ignore[arg-type]
            _env_file=None,
        )
        repr_str = repr(s)
        assert "super-secret-key" not in repr_str
        assert s.deepseek_api_key is not None
        assert s.deepseek_api_key.get_secret_value() == "super-secret-key"

    def test_api_keys_optional(self) -> None:
        """All API keys are optional by default."""
        s = Settings(_env_file=None)
        assert s.gemini_api_key is None
        assert s.anthropic_api_key is None
        assert s.openai_api_key is None
        assert s.deepseek_api_key is None

    def test_environment_enum(self) -> None:
        s = Settings(environment="production", _env_file=None)  # type: ignore[arg-type]
        assert s.is_prod is True
        assert s.is_dev is False

    def test_invalid_environment(self) -> None:
        with pytest.raises(ValidationError):
            Settings(environment="invalid", _env_file=None)  # type: ignore[arg-type]

    def test_reads_environment_variables(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CACHE_BACKEND", "redis")
        monkeypatch.setenv("DAILY_TOKEN_LIMIT", "1000")
        s = Settings(_env_file=None)
        assert s.cache_backend == CacheBackend.REDIS
        assert s.daily_token_limit == 1000
