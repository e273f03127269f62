"""Provider registry: descriptors, actions, cache policies, chain order.

Loaded from config/providers.yaml at startup, validated by Pydantic.
Adding a provider or an action category is a YAML edit; the router
never branches on concrete provider identity.

GenerationRouter uses get_chain() to obtain the ordered list of
ProviderDescriptor objects to try for a request.
"""

from enum import StrEnum
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

from generation_router.cache.policy import CachePolicy
from generation_router.llm.pricing import CostPer1K, CostTable


class Capability(StrEnum):
    """Capability classes a provider can be tagged with."""

    GENERAL = "general"
    CODE = "code"
    HIGH_CAPABILITY = "high_capability"


class ProviderDescriptor(BaseModel):
    """Static configuration of one backend.

    ``backend`` selects the adapter implementation (openai, deepseek,
    anthropic, gemini); ``name`` is the unique identifier reported in
    every GenerationResult.
    """

    model_config = ConfigDict(frozen=True)

    name: str = ""  # populated from dict key during validation
    backend: str
    model_id: str
    capabilities: tuple[Capability, ...]
    cost_per_1k: CostPer1K
    max_tokens_per_request: int = Field(default=3000, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0)
    default_temperature: float = Field(default=0.7, ge=0.0, le=2.0)


class ActionConfig(BaseModel):
    """Action category: admission estimate and cache policy."""

    description: str = ""
    estimated_tokens: int = Field(default=1000, gt=0)
    cache: CachePolicy | None = None


class RegistryConfig(BaseModel):
    """Top-level registry: providers + actions.

    Validates that:
    - At least one provider is tagged 'general'
    - At least one provider is tagged 'high_capability'
    - Every provider has at least one capability
    - Cache key prefixes are unique across actions
    """

    providers: dict[str, ProviderDescriptor]
    actions: dict[str, ActionConfig] = {}
    default_estimated_tokens: int = Field(default=1000, gt=0)

    @model_validator(mode="before")
    @classmethod
    def _populate_names(cls, data: object) -> object:
        """Copy provider dict keys into descriptor ``name`` fields."""
        if isinstance(data, dict) and isinstance(data.get("providers"), dict):
            data = dict(data)
            providers: dict[str, object] = {}
            for name, raw in data["providers"].items():
                if isinstance(raw, dict):
                    raw = {**raw, "name": name}
                providers[name] = raw
            data["providers"] = providers
        return data

    @model_validator(mode="after")
    def validate_providers(self) -> "RegistryConfig":
        """Check capability coverage and cache prefix uniqueness."""
        errors: list[str] = []

        tags = [set(p.capabilities) for p in self.providers.values()]
        for name, provider in self.providers.items():
            if not provider.capabilities:
                errors.append(f"Provider '{name}' has no capabilities")
        if not any(Capability.GENERAL in t for t in tags):
            errors.append("At least one provider must be tagged 'general'")
        if not any(Capability.HIGH_CAPABILITY in t for t in tags):
            errors.append("At least one provider must be tagged 'high_capability'")

        seen_prefixes: dict[str, str] = {}
        for action_name, action in self.actions.items():
            if action.cache is None:
                continue
            prefix = action.cache.key_prefix
            if prefix in seen_prefixes:
                errors.append(
                    f"Actions '{seen_prefixes[prefix]}' and '{action_name}' "
                    f"share cache key prefix '{prefix}'"
                )
            seen_prefixes[prefix] = action_name

        if errors:
            raise ValueError(
                "Provider registry validation failed:\n"
                + "\n".join(f"  - {e}" for e in errors)
            )
        return self

    def get_chain(self, *, code: bool = False) -> list[ProviderDescriptor]:
        """Ordered provider chain.

        Code prompts: code-specialized -> general -> high-capability.
        Everything else: general -> high-capability. A provider tagged
        high_capability always lands in the last-resort group; within a
        group, configuration order decides.
        """
        groups = [Capability.CODE, Capability.GENERAL] if code else [Capability.GENERAL]
        chain: list[ProviderDescriptor] = []
        for capability in groups:
            for provider in self.providers.values():
                if (
                    capability in provider.capabilities
                    and Capability.HIGH_CAPABILITY not in provider.capabilities
                    and provider not in chain
                ):
                    chain.append(provider)
        chain.extend(
            p
            for p in self.providers.values()
            if Capability.HIGH_CAPABILITY in p.capabilities
        )
        return chain

    def get_action(self, action: str) -> ActionConfig | None:
        return self.actions.get(action)

    def estimated_tokens(self, action: str) -> int:
        """Pre-flight token estimate for an action category."""
        config = self.actions.get(action)
        return config.estimated_tokens if config else self.default_estimated_tokens

    def cache_policies(self) -> dict[str, CachePolicy]:
        return {
            name: action.cache
            for name, action in self.actions.items()
            if action.cache is not None
        }

    def cost_table(self) -> CostTable:
        return CostTable(
            {(p.name, p.model_id): p.cost_per_1k for p in self.providers.values()}
        )


def load_registry(config_path: Path) -> RegistryConfig:
    """Load and validate the provider registry from YAML.

    Args:
        config_path: Path to providers.yaml. Typically comes from
            Settings.registry_path.

    Raises:
        FileNotFoundError: if YAML file doesn't exist.
        ValueError: if YAML parsing or validation fails.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Registry config not found: {config_path}")

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse registry config '{config_path}': {e}") from e
    return RegistryConfig.model_validate(raw)
