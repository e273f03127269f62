"""Tests for provider factory and router assembly."""

from pathlib import Path

import pytest

from generation_router.cache.store import InMemoryCacheStore, RedisCacheStore
from generation_router.config import CacheBackend, Settings
from generation_router.llm.factory import create_providers
from generation_router.llm.providers.anthropic import AnthropicProvider
from generation_router.llm.providers.openai_compat import OpenAICompatProvider
from generation_router.llm.registry import RegistryConfig
from generation_router.llm.router import GenerationRouter
from generation_router.llm.setup import create_cache_store, create_generation_router


@pytest.fixture
def registry() -> RegistryConfig:
    return RegistryConfig.model_validate(
        {
            "providers": {
                "deepseek-chat": {
                    "backend": "deepseek",
                    "model_id": "deepseek-chat",
                    "capabilities": ["general"],
                    "cost_per_1k": {"input": 0.014, "output": 0.028},
                },
                "claude": {
                    "backend": "anthropic",
                    "model_id": "claude-sonnet",
                    "capabilities": ["high_capability"],
                    "cost_per_1k": {"input": 0.3, "output": 1.5},
                },
                "mystery": {
                    "backend": "not-a-backend",
                    "model_id": "x",
                    "capabilities": ["general"],
                    "cost_per_1k": {"input": 0, "output": 0},
                },
            },
            "actions": {
                "chat": {"cache": {"ttl_seconds": 60, "key_prefix": "ai_chat"}},
            },
        }
    )


class TestProviderFactory:
    def test_no_keys_returns_empty(self, registry: RegistryConfig) -> None:
        s = Settings(_env_file=None)
        assert create_providers(s, registry) == {}

    def test_deepseek_uses_openai_compat(self, registry: RegistryConfig) -> None:
        s = Settings(deepseek_api_key="test-key", _env_file=None)  # type: ignore[arg-type]
        providers = create_providers(s, registry)
        assert list(providers) == ["deepseek-chat"]
        assert isinstance(providers["deepseek-chat"], OpenAICompatProvider)

    def test_anthropic_key_creates_provider(self, registry: RegistryConfig) -> None:
        s = Settings(anthropic_api_key="test-key", _env_file=None)  # type: ignore[arg-type]
        providers = create_providers(s, registry)
        assert isinstance(providers["claude"], AnthropicProvider)
        assert providers["claude"].descriptor.model_id == "claude-sonnet"

    def test_unknown_backend_skipped(self, registry: RegistryConfig) -> None:
        s = Settings(
            deepseek_api_key="a",  # type: ignore[arg-type]
            anthropic_api_key="b",  # type: ignore[arg-type]
            _env_file=None,
        )
        assert "mystery" not in create_providers(s, registry)


class TestSetup:
    def test_memory_store_by_default(self) -> None:
        store = create_cache_store(Settings(cache_max_entries=5, _env_file=None))
        assert isinstance(store, InMemoryCacheStore)

    def test_redis_store(self) -> None:
        s = Settings(cache_backend=CacheBackend.REDIS, _env_file=None)
        assert isinstance(create_cache_store(s), RedisCacheStore)

    def test_create_router_with_registry(self, registry: RegistryConfig) -> None:
        s = Settings(deepseek_api_key="k", _env_file=None)  # type: ignore[arg-type]
        router = create_generation_router(s, registry=registry)
        assert isinstance(router, GenerationRouter)
        assert router.available_providers() == ["deepseek-chat"]

    def test_create_router_from_registry_path(self) -> None:
        shipped = Path(__file__).parents[3] / "config" / "providers.yaml"
        s = Settings(registry_path=shipped, _env_file=None)
        router = create_generation_router(s)
        routes = router.describe_routes()
        assert routes.code_chain[0] == "deepseek-coder"
        assert routes.available_providers == []

    def test_missing_registry_file(self, tmp_path: Path) -> None:
        s = Settings(registry_path=tmp_path / "missing.yaml", _env_file=None)
        with pytest.raises(FileNotFoundError):
            create_generation_router(s)
