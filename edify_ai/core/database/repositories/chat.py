"""
Chat session and chat metrics repositories.
"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..base import utc_now
from ..entities.chat import ChatMetric, ChatSession
from .base import AsyncBaseRepository


class ChatSessionRepository(AsyncBaseRepository[ChatSession]):
    """Data access for the ``chat_sessions`` table."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, ChatSession)

    async def get_for_user(self, session_id: str, user_id: str) -> Optional[ChatSession]:
        """Get a session only if it belongs to ``user_id``."""
        result = await self.session.execute(
            select(ChatSession).where(ChatSession.id == session_id, ChatSession.user_id == user_id)
        )
        return result.scalars().first()

    async def list_for_user(self, user_id: str) -> List[ChatSession]:
        """List a user's sessions, newest first."""
        result = await self.session.execute(
            select(ChatSession).where(ChatSession.user_id == user_id).order_by(ChatSession.created_at.desc())
        )
        return list(result.scalars().all())

    async def save_messages(self, chat_session: ChatSession, messages: list) -> ChatSession:
        """Replace the stored message list.

        The JSON column is only written when a new list object is assigned.
        """
        return await self.update(chat_session, {"messages": list(messages), "updated_at": utc_now()})


class ChatMetricRepository(AsyncBaseRepository[ChatMetric]):
    """Data access for the ``chat_metrics`` table."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, ChatMetric)
