"""
Billing Endpoints.

Checkout, customer portal and plan listing on top of Stripe, plus the
caller's pricing context and premium status. Subscription state itself is
reconciled by the Stripe webhook.
"""

from typing import Optional

import stripe
from fastapi import APIRouter, Header, HTTPException, status

from edify_ai.core.database.repositories import UserRepository
from edify_ai.core.logging_config import get_logger
from edify_ai.server.schemas import CheckoutSessionCreate, SubscriptionPlan
from edify_ai.server.services.deps import BillingDep, CurrentUser, IdentityDep, SessionDep
from edify_ai.server.services.identity import IdentityProviderError
from edify_ai.server.services.premium import check_premium

logger = get_logger(__name__)
router = APIRouter()


def _require_origin(origin: Optional[str]) -> str:
    if not origin:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing origin header")
    return origin


@router.post(
    "/create-checkout-session",
    summary="Create Checkout Session",
    description="Start a Stripe subscription checkout for an individual or an organization.",
    response_description="The checkout session id.",
    responses={
        400: {"description": "Missing priceId or origin header"},
        500: {"description": "Stripe rejected the checkout"},
    },
)
async def create_checkout_session(
    body: CheckoutSessionCreate,
    billing: BillingDep,
    origin: Optional[str] = Header(default=None),
):
    """
    Create a checkout session.

    Organization admins subscribe on behalf of their organization, so the
    subscription metadata carries the org id instead of the user id.

    - **priceId**: The Stripe price to subscribe to.
    - **memberCount**: Number of seats.
    - **isAdmin**: Whether the subscription is for the caller's organization.
    """
    if not body.price_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing priceId")
    origin = _require_origin(origin)

    metadata = {
        "user_id": "" if body.is_admin else (body.user_id or ""),
        "org_id": (body.org_id or "") if body.is_admin else "",
    }
    try:
        session_id = await billing.create_checkout_session(
            price_id=body.price_id,
            quantity=body.member_count,
            origin=origin,
            email=body.email,
            metadata=metadata,
        )
    except stripe.StripeError as e:
        logger.error(f"Error creating checkout session: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error creating checkout session")
    return {"sessionId": session_id}


@router.post(
    "/create-portal-session",
    summary="Create Customer Portal Session",
    description="Open the Stripe customer portal for the signed-in user.",
    response_description="The portal URL.",
    responses={
        400: {"description": "Missing origin header"},
        401: {"description": "Not signed in"},
        404: {"description": "No Stripe customer for this user"},
    },
)
async def create_portal_session(
    user: CurrentUser,
    session: SessionDep,
    billing: BillingDep,
    origin: Optional[str] = Header(default=None),
):
    stored = await UserRepository(session).get_by_id(user.user_id)
    if stored is None or not stored.stripe_customer_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Stripe customer not found")
    origin = _require_origin(origin)

    try:
        url = await billing.create_portal_session(stored.stripe_customer_id, f"{origin}/account")
    except stripe.StripeError as e:
        logger.error(f"Error creating portal session: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error creating portal session")
    return {"url": url}


@router.get(
    "/subscription-plans",
    response_model=list[SubscriptionPlan],
    summary="List Subscription Plans",
    description="List active recurring prices with their product details.",
    response_description="The available plans.",
)
async def list_subscription_plans(billing: BillingDep) -> list[SubscriptionPlan]:
    try:
        plans = await billing.list_plans()
    except stripe.StripeError as e:
        logger.error(f"Error fetching subscription plans: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error fetching subscription plans"
        )
    return [SubscriptionPlan(**plan) for plan in plans]


@router.get(
    "/pricing",
    summary="Get Pricing Context",
    description="Identity details the pricing page needs to start a checkout.",
    response_description="Admin flag, email address and ids of the caller.",
)
async def get_pricing_context(user: CurrentUser, session: SessionDep, identity: IdentityDep):
    stored = await UserRepository(session).get_by_id(user.user_id)
    email = stored.email if stored else None
    if not email:
        try:
            email = await identity.get_primary_email(user.user_id)
        except IdentityProviderError as e:
            logger.warning(f"Could not load email address of {user.user_id}: {e}")

    return {
        "isAdmin": user.is_org_admin,
        "emailAddress": email,
        "orgId": user.org_id,
        "userId": user.user_id,
    }


@router.get(
    "/check-premium",
    summary="Check Premium Status",
    description="Whether the caller (or their organization) is premium, and whether free usage is exhausted.",
    response_description="Premium and usage flags.",
    responses={401: {"description": "Not signed in"}},
)
async def get_premium_status(user: CurrentUser, session: SessionDep):
    """
    Check premium status.

    Organization members are checked against the organization's flag,
    subscription and prompt limit; everyone else against their own.
    """
    return await check_premium(session, user.user_id, user.org_id)
