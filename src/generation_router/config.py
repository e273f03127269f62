"""Centralized application configuration via environment variables."""

from enum import StrEnum
from functools import lru_cache
from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class CacheBackend(StrEnum):
    MEMORY = "memory"
    REDIS = "redis"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All LLM API keys use SecretStr to prevent accidental logging.
    Provider descriptors, per-action defaults and cache policies live
    in the YAML registry at ``registry_path``; this class only holds
    process-level knobs and credentials.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- App ---
    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "DEBUG"

    # --- Cache store ---
    cache_backend: CacheBackend = CacheBackend.MEMORY
    cache_max_entries: int = 10_000
    redis_url: str = "redis://localhost:6379/0"
    # Responses above this token count are never cached.
    max_cacheable_tokens: int = 5000

    # --- LLM API Keys ---
    openai_api_key: SecretStr | None = None
    deepseek_api_key: SecretStr | None = None
    anthropic_api_key: SecretStr | None = None
    gemini_api_key: SecretStr | None = None

    # --- DeepSeek ---
    # DeepSeek uses OpenAI-compatible API via OpenAI SDK with custom base_url.
    deepseek_base_url: str = "https://api.deepseek.com"

    # --- Provider Registry ---
    registry_path: Path = Path("config/providers.yaml")

    # --- Token budget ---
    daily_token_limit: int = 30_000
    per_request_token_limit: int = 3000
    budget_window_hours: int = 24

    # --- Routing ---
    code_confidence_threshold: float = 0.7
    fallback_backoff_seconds: float = 0.25
    fallback_backoff_max_seconds: float = 2.0

    # --- Convenience properties ---
    @property
    def is_dev(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_prod(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton.

    Usage::

        from generation_router.config import get_settings
        settings = get_settings()
    """
    return Settings()
