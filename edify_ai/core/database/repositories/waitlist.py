"""
Waitlist repository.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..entities.waitlist import WaitlistEntry
from .base import AsyncBaseRepository


class WaitlistRepository(AsyncBaseRepository[WaitlistEntry]):
    """Data access for the ``waitlist`` table."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, WaitlistEntry)

    async def get_by_email(self, email: str) -> Optional[WaitlistEntry]:
        result = await self.session.execute(select(WaitlistEntry).where(WaitlistEntry.email == email))
        return result.scalars().first()
