"""
Billing Service.

Thin async wrapper over the Stripe SDK. The SDK is synchronous, so every call
runs in the thread pool. Webhook payloads are verified here too; the
reconciliation of verified events lives in ``subscriptions``.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import stripe
from starlette.concurrency import run_in_threadpool

from edify_ai.core.logging_config import get_logger
from edify_ai.server.core.config import settings

logger = get_logger(__name__)

_service: Optional["BillingService"] = None


class BillingService:
    """Stripe operations used by the billing routes and webhook."""

    def __init__(self, api_key: Optional[str], webhook_secret: Optional[str]) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def verify_event(self, payload: str, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify a webhook payload against the ``stripe-signature`` header.

        Args:
            payload: Raw request body
            signature: Value of the ``stripe-signature`` header

        Returns:
            The decoded event

        Raises:
            stripe.SignatureVerificationError: If the signature does not match.
        """
        stripe.WebhookSignature.verify_header(
            payload,
            signature or "",
            self.webhook_secret or "",
            stripe.Webhook.DEFAULT_TOLERANCE,
        )
        return json.loads(payload)

    async def create_checkout_session(
        self,
        *,
        price_id: str,
        quantity: int,
        origin: str,
        email: Optional[str],
        metadata: Dict[str, str],
    ) -> str:
        """Start a subscription checkout and return its session id."""
        session = await run_in_threadpool(
            stripe.checkout.Session.create,
            api_key=self.api_key,
            mode="subscription",
            payment_method_types=["card", "link"],
            line_items=[{"price": price_id, "quantity": quantity}],
            success_url=f"{origin}/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{origin}/pricing",
            customer_email=email,
            subscription_data={"metadata": metadata},
        )
        logger.info(f"Created checkout session {session.id} for price {price_id} x{quantity}")
        return session.id

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        """Open a customer portal session and return its URL."""
        session = await run_in_threadpool(
            stripe.billing_portal.Session.create,
            api_key=self.api_key,
            customer=customer_id,
            return_url=return_url,
        )
        return session.url

    async def list_plans(self) -> List[Dict[str, Any]]:
        """Active recurring prices with their product details."""
        prices = await run_in_threadpool(
            stripe.Price.list,
            api_key=self.api_key,
            expand=["data.product"],
            active=True,
            type="recurring",
        )
        plans = []
        for price in prices.data:
            product = price.product
            recurring = price.recurring
            plans.append(
                {
                    "id": price.id,
                    "name": getattr(product, "name", None),
                    "description": getattr(product, "description", None),
                    "price": price.unit_amount,
                    "interval": recurring.interval if recurring else None,
                    "price_id": price.id,
                }
            )
        return plans

    async def get_product_name(self, product_id: str) -> str:
        """Name of a product, or ``"Unknown Plan"`` when it cannot be fetched."""
        try:
            product = await run_in_threadpool(stripe.Product.retrieve, product_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(f"Error retrieving product details for {product_id}: {e}")
            return "Unknown Plan"
        return product.name


def get_billing_service() -> BillingService:
    """Dependency returning the process-wide billing service."""
    global _service
    if _service is None:
        _service = BillingService(settings.stripe.secret_key, settings.stripe.webhook_secret)
    return _service
