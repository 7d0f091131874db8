"""
API Schemas.

This module contains Pydantic models used for API request bodies, response
validation and server-sent event payloads. Request fields keep the camelCase
names the web client sends; required-field checks happen in the route
handlers so that missing fields produce the documented error messages.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# =====================================================================
# Chat
# =====================================================================


class ChatRequest(CamelModel):
    """Body of ``POST /api/chat`` and ``POST /api/chat/approved``."""

    message: Optional[str] = None
    model: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    message_id: Optional[str] = Field(default=None, alias="messageId")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "message": "Explain photosynthesis for year 8 students",
                "model": "gpt-4-turbo-preview",
                "sessionId": "4b0f6c1e-8d0a-4c47-9d6a-0a3c2b1f9e77",
                "messageId": "msg-1718000000000",
            }
        },
    )


class ChatSessionCreate(CamelModel):
    title: str = "New Chat"
    model: str = "gpt-4-turbo-preview"


class ChatSessionRename(CamelModel):
    title: str


class ChatMessageCreate(CamelModel):
    """Body of ``POST /api/chat/{sessionId}``."""

    message: Dict[str, Any] = Field(description="The chat message as stored in the session")
    is_edit: bool = Field(default=False, alias="isEdit")


class RetryResponseCreate(CamelModel):
    message_id: str = Field(alias="messageId")
    response: Dict[str, Any] = Field(description="The new assistant response")


class ChatSessionRead(BaseModel):
    id: str
    user_id: str
    title: str
    model: str
    messages: List[Dict[str, Any]]
    created_at: Any
    updated_at: Any

    model_config = ConfigDict(from_attributes=True)


class TitleSuggestion(BaseModel):
    title: Optional[str]


class TokenEvent(BaseModel):
    """A chunk of generated text."""

    type: Literal["token"] = "token"
    content: str


class ViolationEvent(BaseModel):
    """The prompt was blocked; ``message`` explains why."""

    type: Literal["violation"] = "violation"
    message: str
    flags: List[str] = Field(default_factory=list)


class DoneEvent(BaseModel):
    """The stream finished and usage was recorded."""

    type: Literal["done"] = "done"
    response_length: int
    total_tokens: int = 0
    price_gbp: float = 0.0


class ErrorEvent(BaseModel):
    """The stream failed after it started."""

    type: Literal["error"] = "error"
    error: str


# =====================================================================
# Billing
# =====================================================================


class CheckoutSessionCreate(CamelModel):
    price_id: Optional[str] = Field(default=None, alias="priceId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    org_id: Optional[str] = Field(default=None, alias="orgId")
    is_admin: bool = Field(default=False, alias="isAdmin")
    member_count: int = Field(default=1, alias="memberCount")
    email: Optional[str] = None


class SubscriptionPlan(BaseModel):
    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[int] = None
    interval: Optional[str] = None
    price_id: str


# =====================================================================
# Waitlist
# =====================================================================


class WaitlistJoin(BaseModel):
    email: Optional[str] = None


class WaitlistTypeUpdate(BaseModel):
    email: str
    account_type: Optional[str] = None
    organization_name: Optional[str] = None


class WaitlistStatusUpdate(BaseModel):
    status: str


class WaitlistOrgStatusUpdate(BaseModel):
    org_status: str


# =====================================================================
# Moderation
# =====================================================================


class ModerationUpdate(BaseModel):
    """Body of ``PATCH /api/moderator/violations/{id}``.

    Educators send no fields; moderators and admins send a decision.
    """

    moderator_approval: Optional[str] = None
    moderator_notes: Optional[str] = None


# =====================================================================
# AI tools
# =====================================================================


class ToolUsageCreate(CamelModel):
    prompt_id: Optional[str] = Field(default=None, alias="promptId")
    tool_type: str = Field(alias="toolType")
    metadata: Optional[Dict[str, Any]] = None


class MCQGenerateRequest(CamelModel):
    topic: Optional[str] = None
    difficulty: Optional[str] = "medium"
    question_count: int = Field(default=5, alias="questionCount", ge=1, le=50)
    answers_per_question: int = Field(default=4, alias="answersPerQuestion", ge=2, le=6)
    taxonomy_levels: Optional[List[str]] = Field(default=None, alias="taxonomyLevels")
