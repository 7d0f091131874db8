"""
AI Tool Usage.

Records which AI tools users open inside their organization.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from edify_ai.core.database.entities import AIToolUsage
from edify_ai.core.database.repositories import AIToolUsageRepository
from edify_ai.core.logging_config import get_logger

logger = get_logger(__name__)


async def record_tool_usage(
    session: AsyncSession,
    *,
    user_id: str,
    org_id: str,
    tool_type: str,
    prompt_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AIToolUsage:
    """Insert a usage row and its first access log entry."""
    usage = AIToolUsage(
        user_id=user_id,
        org_id=org_id,
        prompt_id=prompt_id,
        tool_type=tool_type,
        usage_metadata=metadata,
    )
    usage = await AIToolUsageRepository(session).record(usage)
    logger.info(f"Recorded {tool_type} usage {usage.id} for user {user_id} in {org_id}")
    return usage
