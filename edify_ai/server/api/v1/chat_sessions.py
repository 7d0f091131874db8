"""
API endpoints for managing chat sessions and messages.

Provides operations for creating, renaming, duplicating and deleting chat
sessions and for persisting the messages exchanged in them, including user
edits and regenerated assistant responses.

Every operation is scoped to the signed-in user's own sessions.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status
from pydantic import ValidationError

from edify_ai.core.database.entities import ChatSession
from edify_ai.core.database.repositories import ChatSessionRepository
from edify_ai.core.logging_config import get_logger
from edify_ai.core.models.chat import ChatMessage, MessageRole
from edify_ai.server.schemas import (
    ChatMessageCreate,
    ChatSessionCreate,
    ChatSessionRead,
    ChatSessionRename,
    RetryResponseCreate,
    TitleSuggestion,
)
from edify_ai.server.services.chat_service import apply_edit, apply_retry, suggest_chat_title
from edify_ai.server.services.content_safety import screen_chat_message
from edify_ai.server.services.deps import CurrentUser, OpenAIDep, SessionDep

logger = get_logger(__name__)
router = APIRouter()


async def _get_owned_session(repo: ChatSessionRepository, session_id: str, user_id: str) -> ChatSession:
    chat_session = await repo.get_for_user(session_id, user_id)
    if chat_session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return chat_session


@router.post(
    "/chat/session",
    response_model=ChatSessionRead,
    summary="Create Chat Session",
    description="Create a new, empty chat session for the signed-in user.",
    response_description="The created chat session.",
)
async def create_chat_session(
    session_data: ChatSessionCreate, user: CurrentUser, session: SessionDep
) -> ChatSessionRead:
    """
    Create a new chat session.

    - **title**: A human-readable title (default: "New Chat").
    - **model**: The model the session talks to.
    """
    chat_session = await ChatSessionRepository(session).create(
        ChatSession(user_id=user.user_id, title=session_data.title, model=session_data.model)
    )
    logger.info(f"Created chat session {chat_session.id} for {user.user_id}")
    return ChatSessionRead.model_validate(chat_session)


@router.get(
    "/chat/session",
    response_model=list[ChatSessionRead],
    summary="List Chat Sessions",
    description="List the signed-in user's chat sessions, newest first.",
    response_description="A list of chat sessions.",
)
async def list_chat_sessions(user: CurrentUser, session: SessionDep) -> list[ChatSessionRead]:
    sessions = await ChatSessionRepository(session).list_for_user(user.user_id)
    return [ChatSessionRead.model_validate(s) for s in sessions]


@router.get(
    "/chat/{session_id}",
    response_model=ChatSessionRead,
    summary="Get Chat Session",
    description="Retrieve one of the signed-in user's chat sessions with its messages.",
    response_description="The chat session.",
    responses={404: {"description": "Chat session not found"}},
)
async def get_chat_session(session_id: str, user: CurrentUser, session: SessionDep) -> ChatSessionRead:
    chat_session = await _get_owned_session(ChatSessionRepository(session), session_id, user.user_id)
    return ChatSessionRead.model_validate(chat_session)


@router.post(
    "/chat/{session_id}",
    response_model=ChatSessionRead,
    summary="Add Chat Message",
    description="Append a message to a chat session, or apply an edit to an existing user message.",
    response_description="The updated chat session.",
    responses={
        400: {"description": "Invalid message"},
        404: {"description": "Chat session not found"},
    },
)
async def add_chat_message(
    session_id: str,
    body: ChatMessageCreate,
    user: CurrentUser,
    session: SessionDep,
    client: OpenAIDep,
) -> ChatSessionRead:
    """
    Add a message to a session.

    User messages are screened and stored with their ``contentFlags``. With
    ``isEdit`` the message replaces the content of the message with the same
    id; the previous content moves to its ``edit_history`` and the following
    assistant reply gains an ``edit`` entry in its ``response_history``.

    - **message**: The message object as stored in the session.
    - **isEdit**: Whether the message edits an existing one.
    """
    try:
        message = ChatMessage.model_validate(body.message)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid message: {e.errors()[0]['msg']}",
        )

    repo = ChatSessionRepository(session)
    chat_session = await _get_owned_session(repo, session_id, user.user_id)

    stored = message.to_stored()
    if message.role is MessageRole.USER:
        flags = await screen_chat_message(client, message.content)
        stored["contentFlags"] = flags.model_dump()
        logger.debug(f"Content flags for message {message.id}: {flags.active()}")

    if body.is_edit:
        messages = apply_edit(chat_session.messages, stored)
    else:
        messages = [*chat_session.messages, stored]

    chat_session = await repo.save_messages(chat_session, messages)
    return ChatSessionRead.model_validate(chat_session)


@router.patch(
    "/chat/{session_id}",
    response_model=ChatSessionRead,
    summary="Rename Chat Session",
    description="Change the title of a chat session.",
    response_description="The renamed chat session.",
    responses={404: {"description": "Chat session not found"}},
)
async def rename_chat_session(
    session_id: str, body: ChatSessionRename, user: CurrentUser, session: SessionDep
) -> ChatSessionRead:
    repo = ChatSessionRepository(session)
    chat_session = await _get_owned_session(repo, session_id, user.user_id)
    chat_session = await repo.update(chat_session, {"title": body.title})
    return ChatSessionRead.model_validate(chat_session)


@router.delete(
    "/chat/{session_id}",
    summary="Delete Chat Session",
    description="Delete a chat session and its messages.",
    response_description="Deletion confirmation.",
    responses={404: {"description": "Chat session not found"}},
)
async def delete_chat_session(session_id: str, user: CurrentUser, session: SessionDep):
    repo = ChatSessionRepository(session)
    chat_session = await _get_owned_session(repo, session_id, user.user_id)
    await repo.delete(chat_session.id)
    logger.info(f"Deleted chat session {session_id}")
    return {"success": True}


@router.post(
    "/chat/{session_id}/duplicate",
    response_model=ChatSessionRead,
    summary="Duplicate Chat Session",
    description="Copy a chat session with its messages under the title '<title> (Copy)'.",
    response_description="The new chat session.",
    responses={404: {"description": "Chat session not found"}},
)
async def duplicate_chat_session(session_id: str, user: CurrentUser, session: SessionDep) -> ChatSessionRead:
    repo = ChatSessionRepository(session)
    original = await _get_owned_session(repo, session_id, user.user_id)
    copy = await repo.create(
        ChatSession(
            user_id=user.user_id,
            title=f"{original.title} (Copy)",
            model=original.model,
            messages=list(original.messages),
        )
    )
    return ChatSessionRead.model_validate(copy)


@router.post(
    "/chat/{session_id}/retry",
    response_model=ChatSessionRead,
    summary="Add Retry Response",
    description="Store a regenerated assistant response for a user message.",
    response_description="The updated chat session.",
    responses={404: {"description": "Chat session not found"}},
)
async def add_retry_response(
    session_id: str, body: RetryResponseCreate, user: CurrentUser, session: SessionDep
) -> ChatSessionRead:
    """
    Record a retried response.

    The assistant reply after **messageId** takes the new content; earlier
    responses stay in its ``response_history`` and ``currentResponseIndex``
    points at the new one.
    """
    if not body.response.get("content"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Response content is required")

    repo = ChatSessionRepository(session)
    chat_session = await _get_owned_session(repo, session_id, user.user_id)
    messages = apply_retry(chat_session.messages, body.message_id, body.response)
    chat_session = await repo.save_messages(chat_session, messages)
    return ChatSessionRead.model_validate(chat_session)


@router.post(
    "/chat/{session_id}/title",
    response_model=TitleSuggestion,
    summary="Suggest Chat Title",
    description="Generate a short title from the conversation and rename the session with it.",
    response_description="The suggested title, null when none could be generated.",
    responses={404: {"description": "Chat session not found"}},
)
async def suggest_title(
    session_id: str, user: CurrentUser, session: SessionDep, client: OpenAIDep
) -> TitleSuggestion:
    repo = ChatSessionRepository(session)
    chat_session = await _get_owned_session(repo, session_id, user.user_id)
    title = await suggest_chat_title(client, chat_session.messages)
    if title:
        await repo.update(chat_session, {"title": title})
    return TitleSuggestion(title=title)
