"""LLM provider adapters.

PROVIDER_REGISTRY maps backend names (the ``backend`` field of a
descriptor in providers.yaml) to their adapter classes. To add a new
backend:

1. Create a new module in this package (e.g., mistral.py)
2. Implement LLMProvider subclass with ``_complete()``
3. Add entry to PROVIDER_REGISTRY below and to factory.PROVIDER_CONFIGS

No changes to router.py needed.
"""

from generation_router.llm.providers.anthropic import AnthropicProvider
from generation_router.llm.providers.base import Completion, LLMProvider
from generation_router.llm.providers.gemini import GeminiProvider
from generation_router.llm.providers.openai_compat import OpenAICompatProvider

PROVIDER_REGISTRY: dict[str, type[LLMProvider]] = {
    "openai": OpenAICompatProvider,
    "deepseek": OpenAICompatProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
}

__all__ = [
    "PROVIDER_REGISTRY",
    "AnthropicProvider",
    "Completion",
    "GeminiProvider",
    "LLMProvider",
    "OpenAICompatProvider",
]
