"""
AI tool entity models.

``ai_tools_metrics`` is the platform-wide usage ledger: every tool run and
every chat prompt lands here, and flagged rows form the moderation queue.
``ai_tool_usage`` and ``ai_usage_log`` record which tools users open.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field

from ..base import Base, new_id, utc_now


class AIToolsMetric(Base, table=True):
    """Usage, screening and moderation state of one AI tool prompt.

    Table: ai_tools_metrics
    """

    __tablename__ = "ai_tools_metrics"
    __table_args__ = ({"extend_existing": True},)

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
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
    prompt_id: Optional[str] = Field(default=None, index=True)
    prompt_type: Optional[str] = Field(default=None, index=True)
    flagged: bool = Field(default=False, index=True)

    # Moderation workflow
    moderator_approval: Optional[str] = None
    moderator_notes: Optional[str] = None
    moderator_id: Optional[str] = None
    moderation_requested_at: Optional[datetime] = None
    moderation_updated_at: Optional[datetime] = None
    user_requested_moderation: bool = False

    timestamp: datetime = Field(default_factory=utc_now, index=True)


class AIToolUsage(Base, table=True):
    """A user opening an AI tool inside an organization.

    Table: ai_tool_usage
    """

    __tablename__ = "ai_tool_usage"
    __table_args__ = ({"extend_existing": True},)

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    org_id: str = Field(index=True)
    prompt_id: Optional[str] = None
    tool_type: str
    usage_metadata: Optional[dict] = Field(default=None, sa_column=Column("metadata", JSON))
    created_at: datetime = Field(default_factory=utc_now)


class AIUsageLog(Base, table=True):
    """Access log entry for a tool usage row.

    Table: ai_usage_log
    """

    __tablename__ = "ai_usage_log"
    __table_args__ = ({"extend_existing": True},)

    id: str = Field(default_factory=new_id, primary_key=True)
    tool_usage_id: str = Field(foreign_key="ai_tool_usage.id", index=True)
    created_at: datetime = Field(default_factory=utc_now)
    accessed_at: datetime = Field(default_factory=utc_now)
