"""
OpenAI Client Access.

Provides the shared ``AsyncOpenAI`` client and small helpers for the
non-streaming completions used by screening, titles and tools.
"""

from __future__ import annotations

from typing import Any, Optional

from openai import AsyncOpenAI

from edify_ai.core.logging_config import get_logger
from edify_ai.core.monitoring import log_llm_call
from edify_ai.server.core.config import settings

logger = get_logger(__name__)

_client: Optional[AsyncOpenAI] = None


def get_openai_client() -> AsyncOpenAI:
    """Dependency returning the process-wide OpenAI client."""
    global _client
    if _client is None:
        _client = AsyncOpenAI(api_key=settings.openai.api_key)
    return _client


async def complete_text(
    client: AsyncOpenAI,
    model: str,
    messages: list[dict[str, str]],
    **options: Any,
) -> str:
    """
    Run a chat completion and return the first choice's text.

    Args:
        client: OpenAI client
        model: Model name
        messages: Chat messages in OpenAI format
        **options: Extra completion options (temperature, max_tokens, response_format)

    Returns:
        The message content, or an empty string when the model returned none
    """
    response = await client.chat.completions.create(model=model, messages=messages, **options)
    usage = getattr(response, "usage", None)
    if usage is not None:
        log_llm_call(model=model, tokens_used=usage.total_tokens)
    if not response.choices:
        return ""
    return response.choices[0].message.content or ""
