"""
Identity entity models.

Local mirrors of the identity provider's users, organizations and
organization memberships. Rows are written by the identity webhook and read
by every route that scopes data to a user or an organization.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field

from ..base import Base, utc_now


class User(Base, table=True):
    """Platform user keyed by the identity provider's user id.

    Table: users
    """

    __tablename__ = "users"
    __table_args__ = ({"extend_existing": True},)

    id: str = Field(primary_key=True)
    email: Optional[str] = Field(default=None, index=True)
    username: Optional[str] = Field(default=None, description="Provider username with a `_<id suffix>` appended")
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None
    user_metadata: Optional[dict] = Field(default=None, sa_column=Column("metadata", JSON))
    premium: bool = Field(default=False, description="Manually granted premium access")
    stripe_customer_id: Optional[str] = Field(default=None, index=True)
    default_org_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now, sa_column_kwargs={"onupdate": utc_now})

    def __repr__(self) -> str:
        return f"User(id={self.id}, email={self.email})"


class Organization(Base, table=True):
    """Tenant organization keyed by the identity provider's organization id.

    Table: organizations
    """

    __tablename__ = "organizations"
    __table_args__ = ({"extend_existing": True},)

    id: str = Field(primary_key=True)
    name: Optional[str] = None
    slug: Optional[str] = None
    image_url: Optional[str] = None
    org_metadata: Optional[dict] = Field(default=None, sa_column=Column("metadata", JSON))
    premium: bool = Field(default=False, description="Manually granted premium access")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now, sa_column_kwargs={"onupdate": utc_now})

    def __repr__(self) -> str:
        return f"Organization(id={self.id}, name={self.name})"


class OrgMember(Base, table=True):
    """Membership of a user in an organization, with the role stripped of its ``org:`` prefix.

    Table: org_members
    """

    __tablename__ = "org_members"
    __table_args__ = ({"extend_existing": True},)

    org_id: str = Field(primary_key=True)
    user_id: str = Field(primary_key=True, index=True)
    role: str = Field(default="member")
    created_at: datetime = Field(default_factory=utc_now)
