"""
Violation Reports.

Flagged ``ai_tools_metrics`` rows point at the stored prompt of the tool that
produced them. This module resolves those prompts, formats rows for the
violation reports and the moderation queue, and classifies moderation roles.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import column, select, table
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from edify_ai.core.database.entities import AIToolsMetric, User
from edify_ai.core.database.repositories import AIToolsMetricRepository, OrgMemberRepository, UserRepository
from edify_ai.core.logging_config import get_logger
from edify_ai.core.models.content_flags import violation_labels
from edify_ai.server.services.auth import AuthContext

logger = get_logger(__name__)


@dataclass(frozen=True)
class PromptSource:
    table: str
    input_column: str


PROMPT_SOURCES: Dict[str, PromptSource] = {
    "lesson_plan": PromptSource("lesson_plan_results", "input_topic"),
    "prompt_generator": PromptSource("prompt_generator_results", "input_original_prompt"),
    "long_qa": PromptSource("long_qa_generator_results", "input_topic"),
    "chat": PromptSource("chat_metrics", "prompt_text"),
    "peel_generator": PromptSource("peel_generator_results", "topic"),
    "mcq_generator": PromptSource("mcq_generator_results", "topic"),
    "report_generator": PromptSource("report_generator_results", "strengths"),
    "clarify_or_challenge": PromptSource("clarify_or_challenge", "input_text"),
    "perspective_challenge": PromptSource("perspective_challenge_results", "input"),
    "rubric_generator": PromptSource("rubrics_generator_results", "topic"),
    "sow_generator": PromptSource("sow_generator_results", "topic"),
    "quiz_generator": PromptSource("quiz_generator_results", "topic"),
    "lesson_plan_evaluator": PromptSource("lesson_plan_evaluations", "name"),
}

# The user-facing report predates the last three flags
REPORT_FLAGS = (
    "pii_detected",
    "bias_detected",
    "content_violation",
    "prompt_injection_detected",
    "fraudulent_intent_detected",
    "misinformation_detected",
    "automation_misuse_detected",
)

NOT_REQUESTED = "not_requested"


class ModerationRole(str, Enum):
    MODERATOR = "moderator"
    ADMIN = "admin"
    EDUCATOR = "educator"


def moderation_role(org_role: Optional[str]) -> Optional[ModerationRole]:
    """Classify an organization role for the moderation workflow; None when it has no access."""
    if org_role in ("moderator", "org:moderator"):
        return ModerationRole.MODERATOR
    if org_role == "org:admin":
        return ModerationRole.ADMIN
    if org_role in ("org:educator", "basic"):
        return ModerationRole.EDUCATOR
    return None


def display_username(username: Optional[str]) -> str:
    """Strip the ``_<id suffix>`` added when users are mirrored."""
    name = username or "Unknown"
    head, sep, _ = name.rpartition("_")
    return head if sep else name


def summarize_violations(flags: Optional[Mapping[str, Any]]) -> List[Dict[str, str]]:
    """
    Describe each set flag for moderation emails.

    Returns:
        ``{"type", "severity"}`` entries, e.g. ``{"type": "Child Safety", "severity": "critical"}``
    """
    summary = []
    for key, value in (flags or {}).items():
        if value is not True:
            continue
        words = key.replace("_", " ").replace("detected", "").replace("violation", "").split()
        violation_type = " ".join(word[:1].upper() + word[1:] for word in words)

        if "critical" in key or "child_safety" in key or "extremist" in key:
            severity = "critical"
        elif "high" in key or "prompt_injection" in key or "pii" in key:
            severity = "high"
        elif "low" in key:
            severity = "low"
        else:
            severity = "medium"
        summary.append({"type": violation_type, "severity": severity})
    return summary


async def fetch_prompt_input(session: AsyncSession, prompt_type: Optional[str], prompt_id: str) -> Optional[str]:
    """
    Look up the stored input of a tool prompt.

    Tool result tables are owned by their tools, so they are addressed by name
    rather than through entities. Lookups run in a savepoint so that a missing
    table does not abort the surrounding transaction.

    Args:
        session: Database session
        prompt_type: The metrics row's ``prompt_type``
        prompt_id: Id of the stored prompt

    Returns:
        The input text (``"N/A"`` when empty), or None when the prompt cannot be resolved
    """
    source = PROMPT_SOURCES.get(prompt_type or "")
    if source is None:
        return None

    source_table = table(source.table, column("id"), column(source.input_column))
    stmt = select(source_table.c[source.input_column]).where(source_table.c.id == prompt_id)
    try:
        async with session.begin_nested():
            result = await session.execute(stmt)
            row = result.first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching prompt data from {source.table}: {e}")
        return None

    if row is None:
        logger.error(f"Prompt {prompt_id} not found in {source.table}")
        return None
    return row[0] or "N/A"


async def get_chat_title(session: AsyncSession, prompt_id: Optional[str]) -> str:
    """Prompt text of a chat metric, used as the title in moderation emails."""
    if prompt_id:
        text = await fetch_prompt_input(session, "chat", prompt_id)
        if text and text != "N/A":
            return text
    return "Untitled Chat"


def parse_day(value: Optional[str], end: bool) -> Optional[datetime]:
    """Parse a ``YYYY-MM-DD`` UTC day; ``end`` selects its last millisecond."""
    if not value:
        return None
    day = datetime.strptime(value[:10], "%Y-%m-%d").replace(tzinfo=timezone.utc)
    if end:
        return day.replace(hour=23, minute=59, second=59, microsecond=999000)
    return day


async def list_user_violations(
    session: AsyncSession,
    auth: AuthContext,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Flagged prompts of the caller, or of the caller's organization for org admins.

    Args:
        session: Database session
        auth: The signed-in caller
        date_from: Inclusive ``YYYY-MM-DD`` start day
        date_to: Inclusive ``YYYY-MM-DD`` end day

    Returns:
        One report entry per flagged prompt whose input could be resolved
    """
    user_ids: Sequence[str] = [auth.user_id]
    if auth.org_id and auth.is_org_admin:
        user_ids = await OrgMemberRepository(session).member_ids(auth.org_id)

    metrics, _ = await AIToolsMetricRepository(session).list_flagged(
        user_ids=user_ids, start=parse_day(date_from, end=False), end=parse_day(date_to, end=True)
    )
    if not metrics:
        return []

    users = await UserRepository(session).get_many(m.user_id for m in metrics)
    report = []
    for metric in metrics:
        text = await fetch_prompt_input(session, metric.prompt_type, metric.prompt_id)
        if text is None:
            continue
        user = users.get(metric.user_id)
        report.append(
            {
                "id": metric.id,
                "tool": metric.prompt_type,
                "input": text,
                "violations": violation_labels(metric.content_flags, REPORT_FLAGS),
                "username": display_username(user.username if user else None),
                "timestamp": metric.timestamp,
            }
        )
    return report


def _queue_item(metric: AIToolsMetric, text: str, user: Optional[User]) -> Dict[str, Any]:
    status = metric.moderator_approval or NOT_REQUESTED
    return {
        "id": metric.id,
        "tool": metric.prompt_type,
        "input": text,
        "violations": violation_labels(metric.content_flags),
        "content_flags": metric.content_flags or {},
        "username": display_username(user.username if user else None),
        "email": (user.email if user else None) or "Unknown",
        "timestamp": metric.timestamp,
        "moderator_approval": status,
        "moderator_notes": metric.moderator_notes,
        "user_requested_moderation": bool(metric.user_requested_moderation),
        "status": status,
    }


async def list_moderation_queue(
    session: AsyncSession,
    auth: AuthContext,
    role: ModerationRole,
    page: int = 1,
    page_size: int = 10,
) -> Dict[str, Any]:
    """
    One page of the moderation queue.

    Educators see their own flagged prompts; moderators and admins see their
    organization's.

    Returns:
        ``{violations, totalCount, currentPage, pageSize}``
    """
    user_ids: Optional[Sequence[str]] = None
    if role is ModerationRole.EDUCATOR:
        user_ids = [auth.user_id]
    elif auth.org_id:
        members = await OrgMemberRepository(session).member_ids(auth.org_id)
        user_ids = members

    metrics, total = await AIToolsMetricRepository(session).list_flagged(
        user_ids=user_ids, limit=page_size, offset=(page - 1) * page_size
    )
    users = await UserRepository(session).get_many(m.user_id for m in metrics)

    violations = []
    for metric in metrics:
        text = await fetch_prompt_input(session, metric.prompt_type, metric.prompt_id)
        if text is None:
            continue
        violations.append(_queue_item(metric, text, users.get(metric.user_id)))

    return {"violations": violations, "totalCount": total, "currentPage": page, "pageSize": page_size}
