"""Google Gemini provider via google-genai SDK."""

from google import genai
from google.genai import types

from generation_router.llm.providers.base import Completion, LLMProvider
from generation_router.llm.registry import ProviderDescriptor
from generation_router.llm.schemas import GenerationRequest


class GeminiProvider(LLMProvider):
    """Gemini adapter using google-genai SDK.

    google-genai errors carry the HTTP status in ``.code``, which the
    base classification already understands.
    """

    def __init__(self, descriptor: ProviderDescriptor, api_key: str) -> None:
        super().__init__(descriptor)
        self._client = genai.Client(api_key=api_key)

    async def _complete(self, request: GenerationRequest) -> Completion:
        """Generate text completion via Gemini."""
        max_tokens, temperature = self._resolve_limits(request)
        config = types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=max_tokens,
            system_instruction=request.system_prompt,
        )

        response = await self._client.aio.models.generate_content(
            model=self.descriptor.model_id,
            contents=request.prompt,
            config=config,
        )

        usage = response.usage_metadata
        finish_reason = None
        if response.candidates and response.candidates[0].finish_reason:
            finish_reason = str(response.candidates[0].finish_reason.value)
        return Completion(
            text=response.text or "",
            tokens_in=(usage.prompt_token_count or 0) if usage else 0,
            tokens_out=(usage.candidates_token_count or 0) if usage else 0,
            finish_reason=finish_reason,
            truncated=finish_reason == "MAX_TOKENS",
        )
