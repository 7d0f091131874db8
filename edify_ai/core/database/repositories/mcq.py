"""
MCQ generator result repository.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..entities.mcq import MCQGeneratorResult
from .base import AsyncBaseRepository, QueryBuilder


class MCQResultRepository(AsyncBaseRepository[MCQGeneratorResult]):
    """Data access for the ``mcq_generator_results`` table."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, MCQGeneratorResult)

    async def list_for_users(
        self,
        user_ids: Optional[Sequence[str]],
        *,
        limit: int,
        offset: int,
    ) -> Tuple[List[MCQGeneratorResult], int]:
        """Page through results, newest first.

        Args:
            user_ids: Owners to include; ``None`` means every owner
            limit: Page size
            offset: Rows to skip

        Returns:
            The page and the total number of matching rows
        """
        criteria = []
        if user_ids is not None:
            criteria.append(MCQGeneratorResult.user_id.in_(list(user_ids)))
        total = await self.count(*criteria)
        stmt = select(MCQGeneratorResult).where(*criteria).order_by(MCQGeneratorResult.created_at.desc())
        stmt = QueryBuilder.apply_pagination(stmt, limit, offset)
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total
