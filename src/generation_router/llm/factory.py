"""Provider factory -- creates adapters for every descriptor with an API key.

Uses PROVIDER_REGISTRY for extensibility. Adding a new backend
requires only a new entry in PROVIDER_CONFIGS.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import SecretStr

from generation_router.config import Settings
from generation_router.llm.providers import PROVIDER_REGISTRY, LLMProvider
from generation_router.llm.registry import RegistryConfig

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProviderFactoryConfig:
    """How to pull credentials for one backend out of Settings."""

    get_api_key: Callable[[Settings], SecretStr | None]
    get_base_url: Callable[[Settings], str] | None = None


PROVIDER_CONFIGS: dict[str, ProviderFactoryConfig] = {
    "openai": ProviderFactoryConfig(
        get_api_key=lambda s: s.openai_api_key,
    ),
    "deepseek": ProviderFactoryConfig(
        get_api_key=lambda s: s.deepseek_api_key,
        get_base_url=lambda s: s.deepseek_base_url,
    ),
    "anthropic": ProviderFactoryConfig(
        get_api_key=lambda s: s.anthropic_api_key,
    ),
    "gemini": ProviderFactoryConfig(
        get_api_key=lambda s: s.gemini_api_key,
    ),
}


def create_providers(
    settings: Settings,
    registry: RegistryConfig,
) -> dict[str, LLMProvider]:
    """Instantiate one adapter per registry descriptor.

    Returns dict: descriptor name -> LLMProvider instance, in registry
    order. Descriptors whose backend has no API key configured (or is
    unknown) are skipped; the router reports them as unavailable.
    """
    providers: dict[str, LLMProvider] = {}

    for name, descriptor in registry.providers.items():
        provider_cls = PROVIDER_REGISTRY.get(descriptor.backend)
        config = PROVIDER_CONFIGS.get(descriptor.backend)
        if provider_cls is None or config is None:
            logger.warning(
                "llm_backend_unknown", provider=name, backend=descriptor.backend
            )
            continue

        api_key_secret = config.get_api_key(settings)
        if api_key_secret is None:
            logger.info(
                "llm_provider_skipped_no_key",
                provider=name,
                backend=descriptor.backend,
            )
            continue

        kwargs: dict[str, Any] = {"api_key": api_key_secret.get_secret_value()}
        if config.get_base_url is not None:
            kwargs["base_url"] = config.get_base_url(settings)

        providers[name] = provider_cls(descriptor, **kwargs)
        logger.info(
            "llm_provider_registered",
            provider=name,
            backend=descriptor.backend,
            model=descriptor.model_id,
        )

    if not providers:
        logger.warning("no_llm_providers_configured")

    return providers
