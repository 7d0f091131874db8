"""
Chat message value types.

Messages are stored as JSON objects inside ``chat_sessions.messages``. The
field names follow the stored layout, so some keys are camelCase.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):
    """Role of message sender in conversation."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ResponseHistoryEntry(BaseModel):
    """One alternative assistant response.

    Entries seeded from an edit carry no id of their own.
    """

    id: Optional[str] = None
    content: str
    created_at: Optional[str] = None
    type: str = Field(description="original, retry or edit")


class EditHistoryEntry(BaseModel):
    """Previous content of an edited user message."""

    previous_content: str
    edited_at: str


class ChatMessage(BaseModel):
    """A single message inside a chat session."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    role: MessageRole
    content: str
    model: Optional[str] = None
    created_at: str
    response_history: Optional[List[ResponseHistoryEntry]] = None
    current_response_index: Optional[int] = Field(default=None, alias="currentResponseIndex")
    edit_history: Optional[List[EditHistoryEntry]] = None
    metadata: Optional[Dict[str, Any]] = None
    content_flags: Optional[Dict[str, Any]] = Field(default=None, alias="contentFlags")

    def to_stored(self) -> Dict[str, Any]:
        """Serialize for the JSON column, using stored key names and dropping unset fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
