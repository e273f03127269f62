"""Anthropic Claude provider."""

from typing import Any

import anthropic

from generation_router.errors import ProviderErrorKind
from generation_router.llm.providers.base import Completion, LLMProvider
from generation_router.llm.registry import ProviderDescriptor
from generation_router.llm.schemas import GenerationRequest


class AnthropicProvider(LLMProvider):
    """Anthropic adapter using official SDK."""

    def __init__(self, descriptor: ProviderDescriptor, api_key: str) -> None:
        super().__init__(descriptor)
        self._client = anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=descriptor.timeout_seconds,
            max_retries=0,
        )

    async def _complete(self, request: GenerationRequest) -> Completion:
        """Generate text completion via Anthropic."""
        max_tokens, temperature = self._resolve_limits(request)
        kwargs: dict[str, Any] = {
            "model": self.descriptor.model_id,
            "max_tokens": max_tokens,
            "temperature": min(temperature, 1.0),  # Anthropic caps at 1.0
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system_prompt:
            kwargs["system"] = request.system_prompt

        response = await self._client.messages.create(**kwargs)

        text = "".join(
            block.text for block in response.content if block.type == "text"
        )
        return Completion(
            text=text,
            tokens_in=response.usage.input_tokens,
            tokens_out=response.usage.output_tokens,
            finish_reason=response.stop_reason,
            truncated=response.stop_reason == "max_tokens",
        )

    def _classify(self, exc: Exception) -> ProviderErrorKind:
        if isinstance(exc, anthropic.APIConnectionError):
            return ProviderErrorKind.UNAVAILABLE
        return super()._classify(exc)
