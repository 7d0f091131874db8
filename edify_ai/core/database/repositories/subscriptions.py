"""
Subscription repository.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..entities.subscriptions import Subscription
from .base import AsyncBaseRepository


class SubscriptionRepository(AsyncBaseRepository[Subscription]):
    """Data access for the ``subscriptions`` table."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Subscription)

    async def get_by_stripe_id(self, stripe_subscription_id: str) -> Optional[Subscription]:
        result = await self.session.execute(
            select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
        )
        return result.scalars().first()

    async def has_active(
        self,
        now: datetime,
        *,
        user_id: Optional[str] = None,
        organization_id: Optional[str] = None,
    ) -> bool:
        """Whether an active subscription covers the user or organization at ``now``.

        Args:
            now: Naive UTC reference time
            user_id: Subscription owner for individual plans
            organization_id: Subscription owner for organization plans

        Returns:
            True when a subscription is active and its current period has not ended
        """
        stmt = select(Subscription.id).where(
            Subscription.status == "active",
            Subscription.current_period_end > now,
        )
        if organization_id is not None:
            stmt = stmt.where(Subscription.organization_id == organization_id)
        else:
            stmt = stmt.where(Subscription.user_id == user_id)
        result = await self.session.execute(stmt.limit(1))
        return result.first() is not None
