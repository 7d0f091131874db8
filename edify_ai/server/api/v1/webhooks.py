"""
Webhook Endpoints.

Inbound events from the payment platform (Stripe) and the identity provider
(Clerk, delivered through Svix). Payloads are verified against their
signature headers before anything is written.
"""

from typing import Dict, Optional

import stripe
from fastapi import APIRouter, HTTPException, Request, status
from svix.webhooks import Webhook, WebhookVerificationError

from edify_ai.core.logging_config import get_logger
from edify_ai.core.monitoring import log_webhook_event
from edify_ai.server.core.config import settings
from edify_ai.server.services.deps import BillingDep, SessionDep
from edify_ai.server.services.identity_sync import handle_identity_event, handle_waitlist_event
from edify_ai.server.services.subscriptions import handle_stripe_event

logger = get_logger(__name__)
router = APIRouter()

SVIX_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")


def _svix_headers(request: Request) -> Dict[str, str]:
    return {name: request.headers.get(name, "") for name in SVIX_HEADERS}


def _require_secret(secret: Optional[str], name: str) -> str:
    if not secret:
        logger.error(f"Missing {name}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Webhook secret not configured")
    return secret


@router.post(
    "/webhooks/stripe",
    summary="Stripe Webhook",
    description="Reconcile subscription state from Stripe events.",
    response_description="Receipt acknowledgement.",
    responses={400: {"description": "Signature verification failed"}},
)
async def stripe_webhook(request: Request, session: SessionDep, billing: BillingDep):
    """
    Handle a Stripe event.

    Subscription updates and deletions are mirrored into ``subscriptions``;
    paid invoices reactivate the subscription and extend its period. Other
    event types are acknowledged and logged.
    """
    payload = (await request.body()).decode("utf-8")
    signature = request.headers.get("stripe-signature")
    try:
        event = billing.verify_event(payload, signature)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Webhook Error: {e}")

    log_webhook_event("stripe", event.get("type", "unknown"))
    await handle_stripe_event(session, billing, event)
    return {"received": True}


@router.post(
    "/webhooks/clerk",
    summary="Identity Provider Webhook",
    description="Mirror Clerk users, organizations and memberships into the local tables.",
    response_description="Processing acknowledgement.",
    responses={
        400: {"description": "Missing or invalid Svix signature"},
        500: {"description": "The event could not be applied"},
    },
)
async def clerk_webhook(request: Request, session: SessionDep):
    headers = _svix_headers(request)
    if not all(headers.values()):
        logger.error("Missing svix headers")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing svix headers")

    secret = _require_secret(settings.clerk.webhook_secret, "CLERK_WEBHOOK_SECRET")
    payload = await request.body()
    try:
        event = Webhook(secret).verify(payload, headers)
    except WebhookVerificationError as e:
        logger.error(f"Verification failed: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")

    event_type = event.get("type", "unknown")
    log_webhook_event("clerk", event_type)
    logger.info(f"Processing webhook: {event_type}")
    try:
        await handle_identity_event(session, event)
    except Exception as e:
        logger.error(f"Webhook error: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return {"success": True}


@router.get(
    "/webhooks/clerk",
    summary="Identity Provider Webhook Status",
    description="Readiness probe used when registering the webhook endpoint.",
)
async def clerk_webhook_status():
    return {"status": "ready"}


@router.post(
    "/webhooks/waitlist",
    summary="Waitlist Webhook",
    description="Store waitlist entries created on the identity provider.",
    response_description="Processing acknowledgement.",
    responses={400: {"description": "Signature verification failed"}},
)
async def waitlist_webhook(request: Request, session: SessionDep):
    secret = _require_secret(settings.clerk.waitlist_webhook_secret, "CLERK_WAITLIST_WEBHOOK_SECRET")
    payload = await request.body()
    try:
        event = Webhook(secret).verify(payload, _svix_headers(request))
    except WebhookVerificationError as e:
        logger.error(f"Waitlist webhook verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Webhook verification failed", "details": str(e)},
        )

    log_webhook_event("clerk-waitlist", event.get("type", "unknown"))
    await handle_waitlist_event(session, event)
    return {"success": True}
