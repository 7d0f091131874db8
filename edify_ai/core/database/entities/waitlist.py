"""
Waitlist entity model.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field

from ..base import Base, new_id, utc_now


class WaitlistEntry(Base, table=True):
    """Prospective user waiting for an invitation.

    ``status`` follows the admin workflow (``pending``, ``invited``, ...).
    ``org_status`` is only set for organization sign-ups.

    Table: waitlist
    """

    __tablename__ = "waitlist"
    __table_args__ = ({"extend_existing": True},)

    id: str = Field(default_factory=new_id, primary_key=True)
    email: str = Field(unique=True, index=True)
    status: str = Field(default="pending")
    account_type: Optional[str] = None
    organization_name: Optional[str] = None
    org_status: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
