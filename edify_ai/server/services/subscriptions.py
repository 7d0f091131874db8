"""
Subscription Reconciliation.

Applies verified Stripe webhook events to the ``subscriptions`` table.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from edify_ai.core.database.entities import Subscription
from edify_ai.core.database.repositories import SubscriptionRepository
from edify_ai.core.logging_config import get_logger
from edify_ai.server.services.billing import BillingService

logger = get_logger(__name__)


def from_timestamp(value: Optional[int]) -> Optional[datetime]:
    """Convert a Stripe epoch timestamp to an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _first_item(subscription: Dict[str, Any]) -> Dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


async def handle_subscription_updated(
    session: AsyncSession, billing: BillingService, subscription: Dict[str, Any]
) -> Subscription:
    """
    Upsert a subscription from a ``customer.subscription.updated`` event.

    Organization subscriptions never carry a user id.

    Args:
        session: Database session
        billing: Used to resolve the plan's product name
        subscription: The event's subscription object

    Returns:
        The stored subscription
    """
    item = _first_item(subscription)
    price = item.get("price") or {}
    product = price.get("product")
    product_id = product if isinstance(product, str) else None

    plan_name = await billing.get_product_name(product_id) if product_id else "Unknown Plan"

    metadata = subscription.get("metadata") or {}
    user_id = metadata.get("user_id") or None
    org_id = metadata.get("org_id") or None
    if org_id:
        user_id = None

    stored = await SubscriptionRepository(session).upsert(
        {"stripe_subscription_id": subscription["id"]},
        {
            "stripe_customer_id": subscription.get("customer"),
            "status": subscription.get("status"),
            "start_date": from_timestamp(subscription.get("start_date")),
            "current_period_end": from_timestamp(subscription.get("current_period_end")),
            "plan_name": plan_name,
            "stripe_product_id": product_id,
            "seats": item.get("quantity") or 1,
            "user_id": user_id,
            "organization_id": org_id,
        },
    )
    logger.info(f"Subscription {subscription['id']} updated in database.")
    return stored


async def handle_subscription_deleted(session: AsyncSession, subscription: Dict[str, Any]) -> None:
    repo = SubscriptionRepository(session)
    stored = await repo.get_by_stripe_id(subscription["id"])
    if stored is None:
        logger.warning(f"Deleted subscription {subscription['id']} is not stored")
        return
    await repo.update(stored, {"status": "canceled"})
    logger.info(f"Subscription {subscription['id']} marked as canceled.")


async def handle_invoice_paid(session: AsyncSession, invoice: Dict[str, Any]) -> None:
    """Mark the invoice's subscription active through the invoice period."""
    subscription_ref = invoice.get("subscription")
    subscription_id = subscription_ref.get("id") if isinstance(subscription_ref, dict) else subscription_ref
    if not subscription_id:
        return

    repo = SubscriptionRepository(session)
    stored = await repo.get_by_stripe_id(subscription_id)
    if stored is None:
        logger.warning(f"Invoice {invoice.get('id')} references unknown subscription {subscription_id}")
        return
    await repo.update(
        stored,
        {
            "status": "active",
            "current_period_end": from_timestamp(invoice.get("period_end")),
            "stripe_invoice_id": invoice.get("id"),
        },
    )
    logger.info(f"Invoice {invoice.get('id')} paid; subscription {subscription_id} updated.")


async def handle_stripe_event(session: AsyncSession, billing: BillingService, event: Dict[str, Any]) -> None:
    """Dispatch a verified event to its handler; unknown types are only logged."""
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type == "customer.subscription.updated":
        await handle_subscription_updated(session, billing, obj)
    elif event_type == "customer.subscription.deleted":
        await handle_subscription_deleted(session, obj)
    elif event_type == "invoice.payment_succeeded":
        await handle_invoice_paid(session, obj)
    else:
        logger.info(f"Unhandled event type: {event_type}")
