"""
Chat Service.

Runs the streaming chat proxy: screen the prompt, build the conversation
context, relay the model's token stream as server-sent events and record
usage once the stream completes.

Also holds the message-list transformations used by the session routes
(edits, retries and title suggestions).
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from edify_ai.core.database.entities import ChatMetric
from edify_ai.core.database.repositories import ChatMetricRepository, ChatSessionRepository
from edify_ai.core.logging_config import get_logger
from edify_ai.core.models.chat import ChatMessage, MessageRole
from edify_ai.core.models.content_flags import FLAG_NAMES, ContentFlags
from edify_ai.core.monitoring import log_content_violation, log_llm_call
from edify_ai.server.core.config import settings
from edify_ai.server.schemas import DoneEvent, ErrorEvent, TokenEvent, ViolationEvent
from edify_ai.server.services.content_safety import screen_chat_message, violation_message
from edify_ai.server.services.exchange import ExchangeRateService
from edify_ai.server.services.llm import complete_text
from edify_ai.server.services.metrics import ChatMetricsParams, byte_length, record_chat_metrics

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful AI assistant. You must maintain conversation context. When asked follow-up questions, "
    "refer to the previous messages to provide contextual responses."
)
VIOLATION_ERROR_TYPE = "content_policy_violation"
GENERIC_STARTERS = {"hi", "hello", "hey", "start", "help", ""}


class ChatSessionNotFound(LookupError):
    """The referenced chat session does not exist for this user."""

    def __init__(self) -> None:
        super().__init__("Session not found")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ChatService:
    """
    Streaming chat proxy.

    The returned generators outlive the request's dependency scope, so every
    database write opens its own session from ``session_factory``.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        session_factory: async_sessionmaker[AsyncSession],
        exchange: ExchangeRateService,
    ) -> None:
        self.client = client
        self.session_factory = session_factory
        self.exchange = exchange

    async def start_chat(
        self,
        user_id: str,
        message: str,
        model: str,
        session_id: str,
        message_id: str,
    ) -> AsyncIterator[str]:
        """
        Screen a message and start streaming the assistant's reply.

        Screening and context building happen before this returns, so their
        failures surface as request errors rather than stream errors.

        Args:
            user_id: The signed-in user
            message: The user's message
            model: Model name recorded in metrics and used for pricing
            session_id: Chat session providing the conversation context
            message_id: Client id of the message, stored as the metrics prompt id

        Returns:
            An async iterator of serialized SSE payloads

        Raises:
            ChatSessionNotFound: If the session does not belong to the user.
        """
        start_time = time.time()
        flags = await screen_chat_message(self.client, message)

        if flags.any():
            await self._record_violation(user_id, message, model, session_id, message_id, start_time, flags)
            log_content_violation(user_id, "chat", flags.active())
            return self._violation_stream(flags)

        history = await self._build_history(user_id, session_id, message)
        stream = await self.client.chat.completions.create(
            model=settings.openai.chat_model,
            messages=history,
            stream=True,
            stream_options={"include_usage": True},
        )
        return self._relay(stream, user_id, message, model, session_id, message_id, start_time, flags)

    async def start_approved_chat(
        self,
        user_id: str,
        message: str,
        model: str,
        session_id: str,
        message_id: str,
    ) -> AsyncIterator[str]:
        """
        Stream a reply to a prompt a moderator already approved.

        Screening is skipped. The message is appended to the session with its
        approval marker and a metrics row is written up front; its duration and
        response length are filled in when the stream ends.

        Raises:
            ChatSessionNotFound: If the session does not exist.
        """
        start_time = time.time()
        async with self.session_factory() as db:
            sessions = ChatSessionRepository(db)
            chat_session = await sessions.get_by_id(session_id)
            if chat_session is None:
                raise ChatSessionNotFound()

            user_message = ChatMessage(
                id=message_id,
                role=MessageRole.USER,
                content=message,
                model=model,
                created_at=now_iso(),
                content_flags={"moderator_approval": "approved"},
            )
            await sessions.save_messages(chat_session, [*chat_session.messages, user_message.to_stored()])

            content_flags: Dict[str, Any] = {name: False for name in FLAG_NAMES}
            content_flags["moderator_approval"] = "approved"
            metric = await ChatMetricRepository(db).create(
                ChatMetric(
                    user_id=user_id,
                    session_id=session_id,
                    model=model,
                    input_length=len(message),
                    response_length=0,
                    duration_ms=0,
                    content_flags=content_flags,
                    prompt_text=message,
                )
            )

        stream = await self.client.chat.completions.create(
            model=settings.openai.chat_model,
            messages=[{"role": "user", "content": message}],
            temperature=0.7,
            max_tokens=1000,
            stream=True,
        )
        return self._relay_approved(stream, metric.id, start_time)

    async def _build_history(self, user_id: str, session_id: str, message: str) -> List[Dict[str, str]]:
        async with self.session_factory() as db:
            chat_session = await ChatSessionRepository(db).get_for_user(session_id, user_id)
        if chat_session is None:
            raise ChatSessionNotFound()

        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            *({"role": m["role"], "content": m["content"]} for m in chat_session.messages),
            {"role": "user", "content": message},
        ]

    async def _record_violation(
        self,
        user_id: str,
        message: str,
        model: str,
        session_id: str,
        message_id: str,
        start_time: float,
        flags: ContentFlags,
    ) -> None:
        price = await self.exchange.calculate_gbp_price(0, 0, model)
        async with self.session_factory() as db:
            await record_chat_metrics(
                db,
                ChatMetricsParams(
                    user_id=user_id,
                    session_id=session_id,
                    model=model,
                    input_length=byte_length(message),
                    response_length=byte_length(VIOLATION_ERROR_TYPE),
                    start_time=start_time,
                    price_gbp=price,
                    content_flags=flags,
                    error_type=VIOLATION_ERROR_TYPE,
                    status_code=400,
                    prompt_id=message_id,
                    prompt_text=message,
                ),
            )

    @staticmethod
    async def _violation_stream(flags: ContentFlags) -> AsyncIterator[str]:
        yield ViolationEvent(message=violation_message(flags), flags=flags.active()).model_dump_json()

    async def _relay(
        self,
        stream: Any,
        user_id: str,
        message: str,
        model: str,
        session_id: str,
        message_id: str,
        start_time: float,
        flags: ContentFlags,
    ) -> AsyncIterator[str]:
        parts: List[str] = []
        usage = None
        try:
            async for chunk in stream:
                if getattr(chunk, "usage", None):
                    usage = chunk.usage
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    parts.append(content)
                    yield TokenEvent(content=content).model_dump_json()
        except Exception as e:
            logger.error(f"Chat stream failed for session {session_id}: {e}", exc_info=True)
            yield ErrorEvent(error=str(e)).model_dump_json()
            return

        response_text = "".join(parts)
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0
        total_tokens = input_tokens + output_tokens

        try:
            price = await self.exchange.calculate_gbp_price(input_tokens, output_tokens, model)
            async with self.session_factory() as db:
                await record_chat_metrics(
                    db,
                    ChatMetricsParams(
                        user_id=user_id,
                        session_id=session_id,
                        model=model,
                        input_length=byte_length(message),
                        response_length=byte_length(response_text),
                        start_time=start_time,
                        input_tokens=input_tokens,
                        output_tokens=output_tokens,
                        total_tokens=total_tokens,
                        price_gbp=price,
                        content_flags=flags,
                        status_code=200,
                        prompt_id=message_id,
                        prompt_text=message,
                    ),
                )
        except Exception as e:
            logger.error(f"Failed to record chat metrics for message {message_id}: {e}", exc_info=True)
            yield ErrorEvent(error=str(e)).model_dump_json()
            return

        log_llm_call(model=model, tokens_used=total_tokens, cost_gbp=price)
        yield DoneEvent(
            response_length=byte_length(response_text), total_tokens=total_tokens, price_gbp=price
        ).model_dump_json()

    async def _relay_approved(self, stream: Any, metric_id: str, start_time: float) -> AsyncIterator[str]:
        parts: List[str] = []
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    parts.append(content)
                    yield TokenEvent(content=content).model_dump_json()
        except Exception as e:
            logger.error(f"Approved chat stream failed for metrics {metric_id}: {e}", exc_info=True)
            yield ErrorEvent(error=str(e)).model_dump_json()
            return
        finally:
            # partial replies and client disconnects still close out the metrics row
            await self._record_response(metric_id, start_time, "".join(parts))

        yield DoneEvent(response_length=len("".join(parts))).model_dump_json()

    async def _record_response(self, metric_id: str, start_time: float, response_text: str) -> None:
        async with self.session_factory() as db:
            metrics = ChatMetricRepository(db)
            metric = await metrics.get_by_id(metric_id)
            if metric is not None:
                await metrics.update(
                    metric,
                    {"duration_ms": round((time.time() - start_time) * 1000), "response_length": len(response_text)},
                )


# =====================================================================
# Message list transformations
# =====================================================================


def apply_edit(messages: List[Dict[str, Any]], message: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Apply an edited user message to a stored message list.

    The user message keeps its previous content in ``edit_history``. When an
    assistant reply follows it, that reply gains an ``edit`` entry in its
    ``response_history`` (seeded with the original reply) and temporarily
    carries the edited content until the new response is stored.

    Args:
        messages: Stored messages
        message: The edited message; matched by ``id``

    Returns:
        A new message list; unchanged when the id is unknown
    """
    updated = [dict(m) for m in messages]
    index = next((i for i, m in enumerate(updated) if m.get("id") == message.get("id")), None)
    if index is None:
        return updated

    original = updated[index]
    updated[index] = {
        **original,
        "content": message["content"],
        "edit_history": [
            *(original.get("edit_history") or []),
            {"previous_content": original["content"], "edited_at": now_iso()},
        ],
    }

    if index + 1 < len(updated) and updated[index + 1].get("role") == MessageRole.ASSISTANT.value:
        reply = updated[index + 1]
        history = reply.get("response_history") or [
            {"content": reply["content"], "created_at": reply.get("created_at"), "type": "original"}
        ]
        updated[index + 1] = {
            **reply,
            "response_history": [
                *history,
                {"content": message["content"], "created_at": now_iso(), "type": "edit"},
            ],
            "content": message["content"],
        }
    return updated


def apply_retry(
    messages: List[Dict[str, Any]], message_id: str, response: Dict[str, Any]
) -> List[Dict[str, Any]]:
    """
    Record a regenerated assistant reply.

    The reply following the user message ``message_id`` takes the new content.
    Its ``response_history`` is seeded with the original reply on first retry
    and ``currentResponseIndex`` points at the newest entry.

    Returns:
        A new message list; unchanged when no reply follows the message
    """
    updated = [dict(m) for m in messages]
    index = next((i for i, m in enumerate(updated) if m.get("id") == message_id), None)
    if index is None or index + 1 >= len(updated):
        return updated

    reply = updated[index + 1]
    history = reply.get("response_history") or [
        {
            "id": reply.get("id"),
            "content": reply["content"],
            "created_at": reply.get("created_at"),
            "type": "original",
        }
    ]
    history = [
        *history,
        {"id": response.get("id"), "content": response["content"], "created_at": now_iso(), "type": "retry"},
    ]
    updated[index + 1] = {
        **reply,
        "content": response["content"],
        "response_history": history,
        "currentResponseIndex": len(history) - 1,
    }
    return updated


def title_subject(messages: List[Dict[str, Any]]) -> Optional[str]:
    """Pick the user message a title should describe, skipping greetings."""
    if len(messages) < 2:
        return None
    user_messages = [m for m in messages if m.get("role") == MessageRole.USER.value]
    if not user_messages:
        return None
    first = user_messages[0].get("content", "")
    if first.lower().strip() in GENERIC_STARTERS:
        return user_messages[1].get("content") if len(user_messages) > 1 else None
    return first


async def suggest_chat_title(client: AsyncOpenAI, messages: List[Dict[str, Any]]) -> Optional[str]:
    """
    Ask a small model for a 3-5 word conversation title.

    Returns:
        The title, or None when there is nothing meaningful to title or the call fails
    """
    subject = title_subject(messages)
    if not subject:
        return None

    prompt = (
        f'Generate a very brief (3-5 words) title for a conversation about: "{subject}". '
        "Response should be just the title, nothing else."
    )
    try:
        title = await complete_text(
            client,
            settings.openai.title_model,
            [{"role": "user", "content": prompt}],
            max_tokens=20,
            temperature=0.3,
        )
    except Exception as e:
        logger.error(f"Error generating title: {e}")
        return None
    return title.strip().strip('"') or None
