"""OpenAI-compatible provider (OpenAI + DeepSeek)."""

import openai

from generation_router.errors import ProviderErrorKind
from generation_router.llm.providers.base import Completion, LLMProvider
from generation_router.llm.registry import ProviderDescriptor
from generation_router.llm.schemas import GenerationRequest

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."


class OpenAICompatProvider(LLMProvider):
    """Adapter for OpenAI API and compatible services (DeepSeek).

    DeepSeek uses the same API format with a different base_url.
    Both the general and the coder DeepSeek models go through here.
    """

    def __init__(
        self,
        descriptor: ProviderDescriptor,
        api_key: str,
        base_url: str | None = None,
    ) -> None:
        super().__init__(descriptor)
        # SDK retries are disabled: fallback escalation is the router's job.
        self._client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=descriptor.timeout_seconds,
            max_retries=0,
        )

    async def _complete(self, request: GenerationRequest) -> Completion:
        """Generate text completion via OpenAI-compatible API."""
        max_tokens, temperature = self._resolve_limits(request)
        messages = [
            {
                "role": "system",
                "content": request.system_prompt or DEFAULT_SYSTEM_PROMPT,
            },
            {"role": "user", "content": request.prompt},
        ]

        response = await self._client.chat.completions.create(
            model=self.descriptor.model_id,
            # OpenAI SDK expects union of typed message params, but
            # accepts plain dicts at runtime.
            messages=messages,  # type: ignore[arg-type]
            temperature=temperature,
            max_tokens=max_tokens,
        )

        choice = response.choices[0]
        usage = response.usage
        return Completion(
            text=choice.message.content or "",
            tokens_in=usage.prompt_tokens if usage else 0,
            tokens_out=usage.completion_tokens if usage else 0,
            finish_reason=choice.finish_reason,
            truncated=choice.finish_reason == "length",
        )

    def _classify(self, exc: Exception) -> ProviderErrorKind:
        # APITimeoutError is a subclass of APIConnectionError
        if isinstance(exc, openai.APIConnectionError):
            return ProviderErrorKind.UNAVAILABLE
        return super()._classify(exc)
