"""Shared schemas for LLM infrastructure."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class GenerationRequest(BaseModel):
    """Input for one routed generation call. Immutable."""

    model_config = ConfigDict(frozen=True)

    action: str  # generate-tasks, breakdown, tutor, chat, ...
    prompt: str
    user_id: str
    system_prompt: str | None = None
    max_tokens: int | None = Field(default=None, gt=0)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class GenerationResult(BaseModel):
    """Normalized response from any provider or from the cache. Immutable.

    ``metadata`` carries non-error annotations such as
    ``finish_reason`` and ``truncated``.
    """

    model_config = ConfigDict(frozen=True)

    output: str
    provider: str  # descriptor name: deepseek-chat, openai-gpt4, ...
    model_id: str  # deepseek-chat, gpt-4o-mini, ...
    tokens_in: int = 0
    tokens_out: int = 0
    cost_cents: int = 0
    latency_ms: int = 0
    action: str = ""
    from_cache: bool = False
    cached_at: datetime | None = None
    finished_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def tokens_used(self) -> int:
        return self.tokens_in + self.tokens_out

    @property
    def truncated(self) -> bool:
        return bool(self.metadata.get("truncated", False))
