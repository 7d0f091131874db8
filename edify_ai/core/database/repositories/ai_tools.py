"""
AI tool metrics and usage repositories.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..entities.ai_tools import AIToolsMetric, AIToolUsage, AIUsageLog
from .base import AsyncBaseRepository, QueryBuilder


class AIToolsMetricRepository(AsyncBaseRepository[AIToolsMetric]):
    """Data access for the ``ai_tools_metrics`` table."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, AIToolsMetric)

    async def get_by_prompt_id(self, prompt_id: str) -> Optional[AIToolsMetric]:
        result = await self.session.execute(select(AIToolsMetric).where(AIToolsMetric.prompt_id == prompt_id))
        return result.scalars().first()

    async def count_for_users(self, user_ids: Sequence[str]) -> int:
        if not user_ids:
            return 0
        return await self.count(AIToolsMetric.user_id.in_(list(user_ids)))

    async def list_flagged(
        self,
        *,
        user_ids: Optional[Sequence[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Tuple[List[AIToolsMetric], int]:
        """List flagged rows that point at a stored prompt, newest first.

        Args:
            user_ids: Restrict to these owners; ``None`` means no restriction
            start: Inclusive lower bound on ``timestamp``
            end: Inclusive upper bound on ``timestamp``
            limit: Page size
            offset: Rows to skip

        Returns:
            The page of rows and the total number of matching rows
        """
        criteria = [AIToolsMetric.flagged.is_(True), AIToolsMetric.prompt_id.is_not(None)]
        if user_ids is not None:
            criteria.append(AIToolsMetric.user_id.in_(list(user_ids)))
        if start is not None:
            criteria.append(AIToolsMetric.timestamp >= start)
        if end is not None:
            criteria.append(AIToolsMetric.timestamp <= end)

        total = await self.count(*criteria)
        stmt = select(AIToolsMetric).where(*criteria).order_by(AIToolsMetric.timestamp.desc())
        stmt = QueryBuilder.apply_pagination(stmt, limit, offset)
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def list_between(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        user_ids: Optional[Sequence[str]] = None,
    ) -> List[AIToolsMetric]:
        """All rows in a time window, oldest first."""
        stmt = select(AIToolsMetric)
        if start is not None:
            stmt = stmt.where(AIToolsMetric.timestamp >= start)
        if end is not None:
            stmt = stmt.where(AIToolsMetric.timestamp <= end)
        if user_ids is not None:
            stmt = stmt.where(AIToolsMetric.user_id.in_(list(user_ids)))
        result = await self.session.execute(stmt.order_by(AIToolsMetric.timestamp.asc()))
        return list(result.scalars().all())

    async def list_priced_unflagged(self) -> List[AIToolsMetric]:
        """Rows that cost money and passed screening, newest first."""
        result = await self.session.execute(
            select(AIToolsMetric)
            .where(AIToolsMetric.flagged.is_(False), AIToolsMetric.price_gbp > 0)
            .order_by(AIToolsMetric.timestamp.desc())
        )
        return list(result.scalars().all())

    async def distinct_user_count(self, start: Optional[datetime] = None) -> int:
        stmt = select(func.count(func.distinct(AIToolsMetric.user_id)))
        if start is not None:
            stmt = stmt.where(AIToolsMetric.timestamp >= start)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())


class AIToolUsageRepository(AsyncBaseRepository[AIToolUsage]):
    """Data access for ``ai_tool_usage`` and its access log."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, AIToolUsage)

    async def record(self, usage: AIToolUsage) -> AIToolUsage:
        """Insert a usage row together with its first access log entry."""
        self.session.add(usage)
        await self.session.flush()
        self.session.add(AIUsageLog(tool_usage_id=usage.id))
        await self.session.commit()
        await self.session.refresh(usage)
        return usage

    async def log_access(self, tool_usage_id: str) -> AIUsageLog:
        log = AIUsageLog(tool_usage_id=tool_usage_id)
        self.session.add(log)
        await self.session.commit()
        await self.session.refresh(log)
        return log
