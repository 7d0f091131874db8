"""
Chat entity models.

Chat sessions keep their full message list in a JSON column. Chat metrics
record one row per chat completion or blocked prompt.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field

from ..base import Base, new_id, utc_now


class ChatSession(Base, table=True):
    """A user's conversation with the chat assistant.

    Table: chat_sessions
    """

    __tablename__ = "chat_sessions"
    __table_args__ = ({"extend_existing": True},)

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    title: str = Field(default="New Chat")
    model: str = Field(default="gpt-4-turbo-preview")
    messages: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now, sa_column_kwargs={"onupdate": utc_now})

    def __repr__(self) -> str:
        return f"ChatSession(id={self.id}, title={self.title})"


class ChatMetric(Base, table=True):
    """Usage and screening result of a single chat prompt.

    Table: chat_metrics
    """

    __tablename__ = "chat_metrics"
    __table_args__ = ({"extend_existing": True},)

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    session_id: Optional[str] = Field(default=None, index=True)
    model: str
    input_length: int = 0
    response_length: int = 0
    duration_ms: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    price_gbp: float = 0.0
    content_flags: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    error_type: Optional[str] = None
    status_code: Optional[int] = None
    prompt_id: Optional[str] = None
    prompt_text: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now, index=True)
