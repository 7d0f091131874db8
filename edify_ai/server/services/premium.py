"""
Premium Access Check.

A caller is premium through a manually granted flag or an active
subscription. Callers without premium access are limited to a number of
prompts, counted across their organization when they belong to one.
"""

from __future__ import annotations

from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from edify_ai.core.database.base import utc_now
from edify_ai.core.database.repositories import (
    AIToolsMetricRepository,
    OrganizationRepository,
    OrgMemberRepository,
    SubscriptionRepository,
    UserRepository,
)
from edify_ai.core.logging_config import get_logger
from edify_ai.server.core.config import settings

logger = get_logger(__name__)


async def _org_status(session: AsyncSession, org_id: str) -> Dict[str, bool]:
    org = await OrganizationRepository(session).get_by_id(org_id)
    premium = bool(org and org.premium)
    if not premium:
        premium = await SubscriptionRepository(session).has_active(utc_now(), organization_id=org_id)
    if premium:
        return {"premium": True, "usageExceeded": False}

    member_ids = await OrgMemberRepository(session).member_ids(org_id)
    usage = await AIToolsMetricRepository(session).count_for_users(member_ids)
    exceeded = usage >= settings.prompt_limits.organization
    logger.debug(f"Organization {org_id} usage {usage}/{settings.prompt_limits.organization}")
    return {"premium": False, "usageExceeded": exceeded}


async def _user_status(session: AsyncSession, user_id: str) -> Dict[str, bool]:
    user = await UserRepository(session).get_by_id(user_id)
    premium = bool(user and user.premium)
    if not premium:
        premium = await SubscriptionRepository(session).has_active(utc_now(), user_id=user_id)
    if premium:
        return {"premium": True, "usageExceeded": False}

    usage = await AIToolsMetricRepository(session).count_for_users([user_id])
    exceeded = usage >= settings.prompt_limits.individual
    logger.debug(f"User {user_id} usage {usage}/{settings.prompt_limits.individual}")
    return {"premium": False, "usageExceeded": exceeded}


async def check_premium(session: AsyncSession, user_id: str, org_id: Optional[str] = None) -> Dict[str, bool]:
    """
    Premium status and prompt allowance of a caller.

    Args:
        session: Database session
        user_id: The signed-in user
        org_id: The active organization, if any

    Returns:
        ``{"premium": bool, "usageExceeded": bool}``
    """
    if org_id:
        return await _org_status(session, org_id)
    return await _user_status(session, user_id)
