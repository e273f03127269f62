"""LLM infrastructure: providers, schemas, registry, router.

Quick start::

    from generation_router.config import get_settings
    from generation_router.llm import GenerationRequest
    from generation_router.llm.setup import create_generation_router

    router = create_generation_router(get_settings())
    result = await router.route(
        GenerationRequest(action="chat", prompt="hi", user_id="u-1")
    )
"""

from generation_router.llm.schemas import GenerationRequest, GenerationResult

__all__ = [
    "GenerationRequest",
    "GenerationResult",
]
