"""
Subscription entity model.

One row per Stripe subscription, reconciled from billing webhooks.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field

from ..base import Base, new_id, utc_now


class Subscription(Base, table=True):
    """Billing subscription owned by either a user or an organization.

    Table: subscriptions
    """

    __tablename__ = "subscriptions"
    __table_args__ = ({"extend_existing": True},)

    id: str = Field(default_factory=new_id, primary_key=True)
    stripe_subscription_id: str = Field(unique=True, index=True)
    stripe_customer_id: Optional[str] = None
    status: str = Field(default="incomplete")
    start_date: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    plan_name: Optional[str] = None
    stripe_product_id: Optional[str] = None
    seats: int = Field(default=1)
    user_id: Optional[str] = Field(default=None, index=True)
    organization_id: Optional[str] = Field(default=None, index=True)
    stripe_invoice_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now, sa_column_kwargs={"onupdate": utc_now})

    def __repr__(self) -> str:
        return f"Subscription(id={self.stripe_subscription_id}, status={self.status})"
