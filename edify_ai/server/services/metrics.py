"""
Usage Metrics Recording.

Writes one metrics row per chat prompt or AI tool run. Chat prompts are
mirrored into ``ai_tools_metrics`` so that blocked chat messages enter the
same moderation queue as tool prompts.
"""

from __future__ import annotations

import time
import uuid
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from edify_ai.core.database.entities import AIToolsMetric, ChatMetric
from edify_ai.core.logging_config import get_logger
from edify_ai.core.models.content_flags import ContentFlags

logger = get_logger(__name__)

CHAT_PROMPT_TYPE = "chat"


class ChatMetricsParams(BaseModel):
    """Inputs for ``record_chat_metrics``."""

    user_id: str
    session_id: Optional[str] = None
    model: str
    input_length: float = 0
    response_length: float = 0
    start_time: float = Field(description="Epoch seconds when the request started")
    input_tokens: float = 0
    output_tokens: float = 0
    total_tokens: float = 0
    price_gbp: float = 0.0
    content_flags: ContentFlags = Field(default_factory=ContentFlags)
    error_type: Optional[str] = None
    status_code: Optional[int] = None
    prompt_id: Optional[str] = None
    prompt_text: Optional[str] = None


class AIToolsMetricsParams(BaseModel):
    """Inputs for ``record_ai_tools_metrics``."""

    user_id: str
    model: str
    input_length: float = 0
    response_length: float = 0
    start_time: float = Field(description="Epoch seconds when the request started")
    input_tokens: float = 0
    output_tokens: float = 0
    total_tokens: float = 0
    price_gbp: float = 0.0
    content_flags: ContentFlags = Field(default_factory=ContentFlags)
    error_type: Optional[str] = None
    status_code: Optional[int] = None
    prompt_id: Optional[str] = None
    prompt_type: str


def byte_length(text: Optional[str]) -> int:
    """UTF-8 encoded length of ``text``."""
    return len((text or "").encode("utf-8"))


def _elapsed_ms(start_time: float) -> int:
    return round((time.time() - start_time) * 1000)


async def record_chat_metrics(session: AsyncSession, params: ChatMetricsParams) -> ChatMetric:
    """
    Record a chat prompt.

    Inserts the ``chat_metrics`` row and its ``ai_tools_metrics`` mirror in
    one transaction. The mirror points back at the chat row through
    ``prompt_id``.

    Args:
        session: Database session
        params: Usage and screening values

    Returns:
        The persisted chat metrics row
    """
    flags = params.content_flags.model_dump()
    duration_ms = _elapsed_ms(params.start_time)
    price = round(params.price_gbp, 6) if params.price_gbp else 0.0

    chat_metric = ChatMetric(
        user_id=params.user_id,
        session_id=params.session_id,
        model=params.model,
        input_length=round(params.input_length),
        response_length=round(params.response_length),
        duration_ms=duration_ms,
        input_tokens=round(params.input_tokens),
        output_tokens=round(params.output_tokens),
        total_tokens=round(params.total_tokens),
        price_gbp=price,
        content_flags=flags,
        error_type=params.error_type,
        status_code=params.status_code,
        prompt_id=params.prompt_id,
        prompt_text=params.prompt_text,
    )
    session.add(chat_metric)
    await session.flush()

    session.add(
        AIToolsMetric(
            user_id=params.user_id,
            model=params.model,
            input_length=chat_metric.input_length,
            response_length=chat_metric.response_length,
            duration_ms=duration_ms,
            input_tokens=chat_metric.input_tokens,
            output_tokens=chat_metric.output_tokens,
            total_tokens=chat_metric.total_tokens,
            price_gbp=price,
            content_flags=flags,
            error_type=params.error_type,
            status_code=params.status_code,
            prompt_id=chat_metric.id,
            prompt_type=CHAT_PROMPT_TYPE,
            flagged=params.content_flags.any(),
        )
    )
    await session.commit()
    await session.refresh(chat_metric)
    logger.info(
        f"Recorded chat metrics {chat_metric.id}: user={params.user_id}, tokens={chat_metric.total_tokens}, "
        f"price_gbp={price}, flagged={params.content_flags.any()}"
    )
    return chat_metric


async def record_ai_tools_metrics(session: AsyncSession, params: AIToolsMetricsParams) -> AIToolsMetric:
    """
    Record an AI tool run.

    Fraudulent intent also marks automation misuse in the stored flags.

    Args:
        session: Database session
        params: Usage and screening values

    Returns:
        The persisted metrics row
    """
    flags = params.content_flags.model_dump()
    flags["automation_misuse_detected"] = (
        params.content_flags.fraudulent_intent_detected or params.content_flags.automation_misuse_detected
    )
    price = round(params.price_gbp, 6) if params.price_gbp else 0.0

    metric = AIToolsMetric(
        user_id=params.user_id,
        model=params.model,
        input_length=round(params.input_length),
        response_length=round(params.response_length),
        duration_ms=_elapsed_ms(params.start_time),
        input_tokens=round(params.input_tokens),
        output_tokens=round(params.output_tokens),
        total_tokens=round(params.total_tokens),
        price_gbp=price,
        content_flags=flags,
        error_type=params.error_type,
        status_code=params.status_code,
        prompt_id=params.prompt_id or str(uuid.uuid4()),
        prompt_type=params.prompt_type,
        flagged=params.content_flags.any(),
    )
    session.add(metric)
    await session.commit()
    await session.refresh(metric)
    logger.info(
        f"Recorded {params.prompt_type} metrics {metric.id}: user={params.user_id}, "
        f"price_gbp={price}, flagged={metric.flagged}"
    )
    return metric
