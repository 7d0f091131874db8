"""
Chat Streaming Endpoints.

The chat proxy: a user's prompt is screened, answered by the model and the
answer is streamed back as server-sent events. Every event payload is a JSON
object with a ``type`` of ``token``, ``violation``, ``done`` or ``error``.

Prompts blocked by screening can later be approved by a moderator; the
``approved`` endpoints replay them without screening.
"""

from fastapi import APIRouter, HTTPException, status
from sse_starlette.sse import EventSourceResponse

from edify_ai.core.database.repositories import (
    AIToolsMetricRepository,
    ChatMetricRepository,
    ChatSessionRepository,
)
from edify_ai.core.logging_config import get_logger
from edify_ai.server.exception_handlers import status_for_error_message
from edify_ai.server.schemas import ChatRequest, ChatSessionRead
from edify_ai.server.services.chat_service import ChatSessionNotFound
from edify_ai.server.services.deps import ChatServiceDep, CurrentUser, SessionDep

logger = get_logger(__name__)
router = APIRouter()


def _require_fields(body: ChatRequest) -> None:
    if not (body.message and body.model and body.session_id and body.message_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")


@router.post(
    "/chat",
    summary="Stream Chat Response",
    description="Screen a chat message and stream the assistant's reply as server-sent events.",
    response_description="A text/event-stream of token, violation, done or error events.",
    responses={
        200: {"description": "Event stream started"},
        400: {"description": "Missing required fields"},
        401: {"description": "Not signed in"},
        404: {"description": "Chat session not found"},
    },
)
async def stream_chat(body: ChatRequest, user: CurrentUser, chat_service: ChatServiceDep):
    """
    Stream a chat completion.

    The message is screened by ten content detectors first. A flagged message
    is recorded as a violation and the stream carries a single ``violation``
    event. Otherwise the session history is sent to the model, tokens are
    relayed as they arrive and usage is recorded before the final ``done``
    event.

    - **message**: The user's message.
    - **model**: Model name used for pricing.
    - **sessionId**: Chat session providing the conversation context.
    - **messageId**: Client id of the message.
    """
    _require_fields(body)
    try:
        events = await chat_service.start_chat(
            user.user_id, body.message, body.model, body.session_id, body.message_id
        )
    except ChatSessionNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to start chat for session {body.session_id}: {e}", exc_info=True)
        raise HTTPException(status_code=status_for_error_message(str(e)), detail=str(e))
    return EventSourceResponse(events)


@router.get(
    "/chat",
    response_model=list[ChatSessionRead],
    summary="List Chat Sessions",
    description="List the caller's chat sessions, newest first.",
    response_description="A list of chat sessions.",
)
async def list_chats(user: CurrentUser, session: SessionDep) -> list[ChatSessionRead]:
    sessions = await ChatSessionRepository(session).list_for_user(user.user_id)
    return [ChatSessionRead.model_validate(s) for s in sessions]


@router.post(
    "/chat/approved",
    summary="Stream Approved Chat Response",
    description="Stream the reply to a prompt a moderator has approved, without screening.",
    response_description="A text/event-stream of token, done or error events.",
    responses={
        200: {"description": "Event stream started"},
        400: {"description": "Missing required fields"},
        401: {"description": "Not signed in"},
        404: {"description": "Chat session not found"},
    },
)
async def stream_approved_chat(body: ChatRequest, user: CurrentUser, chat_service: ChatServiceDep):
    """
    Stream a reply to approved content.

    The message is appended to the session marked as moderator-approved and a
    chat metrics row is written before streaming starts; its duration and
    response length are filled in when the stream ends.
    """
    _require_fields(body)
    try:
        events = await chat_service.start_approved_chat(
            user.user_id, body.message, body.model, body.session_id, body.message_id
        )
    except ChatSessionNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to start approved chat for session {body.session_id}: {e}", exc_info=True)
        raise HTTPException(status_code=status_for_error_message(str(e)), detail=str(e))
    return EventSourceResponse(events)


@router.get(
    "/chat/approved-session/{metric_id}",
    summary="Get Approved Chat Session",
    description="Load the chat session behind a moderator-approved chat prompt.",
    response_description="The session with the approved prompt details.",
    responses={
        200: {"description": "Approved session found"},
        403: {"description": "Content not approved or owned by another user"},
        404: {"description": "Chat, approval status or session not found"},
    },
)
async def get_approved_session(metric_id: str, user: CurrentUser, session: SessionDep):
    """
    Get an approved chat session.

    - **metric_id**: Id of the chat metrics row of the approved prompt.
    """
    chat_metric = await ChatMetricRepository(session).get_by_id(metric_id)
    if chat_metric is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")

    approval = await AIToolsMetricRepository(session).get_by_prompt_id(chat_metric.id)
    if approval is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Approval status not found")
    if approval.moderator_approval != "approved":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Content not approved")
    if chat_metric.user_id != user.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized access")

    chat_session = None
    if chat_metric.session_id:
        chat_session = await ChatSessionRepository(session).get_by_id(chat_metric.session_id)
    if chat_session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")

    return {
        "success": True,
        "data": {
            "session": ChatSessionRead.model_validate(chat_session),
            "approvedPromptId": chat_metric.id,
            "promptText": chat_metric.prompt_text,
            "metricsId": metric_id,
        },
    }
