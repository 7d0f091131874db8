"""
User, organization and membership repositories.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..entities.identity import Organization, OrgMember, User
from .base import AsyncBaseRepository


class UserRepository(AsyncBaseRepository[User]):
    """Data access for the ``users`` table."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, User)

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.email == email))
        return result.scalars().first()

    async def get_many(self, user_ids: Iterable[str]) -> Dict[str, User]:
        """Load users by id.

        Args:
            user_ids: Ids to look up; duplicates are fine

        Returns:
            Mapping of user id to user for the ids that exist
        """
        ids = list(set(user_ids))
        if not ids:
            return {}
        result = await self.session.execute(select(User).where(User.id.in_(ids)))
        return {user.id: user for user in result.scalars().all()}


class OrganizationRepository(AsyncBaseRepository[Organization]):
    """Data access for the ``organizations`` table."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Organization)


class OrgMemberRepository(AsyncBaseRepository[OrgMember]):
    """Data access for the ``org_members`` table."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, OrgMember)

    async def member_ids(self, org_id: str) -> List[str]:
        result = await self.session.execute(select(OrgMember.user_id).where(OrgMember.org_id == org_id))
        return list(result.scalars().all())

    async def upsert_membership(self, org_id: str, user_id: str, role: str) -> OrgMember:
        return await self.upsert({"org_id": org_id, "user_id": user_id}, {"role": role})
