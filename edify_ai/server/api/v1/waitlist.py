"""
Waitlist Endpoints.

Public sign-up for the waitlist and the admin workflow that invites
individuals and approves organization requests on the identity provider.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, status

from edify_ai.core.database.base import utc_now
from edify_ai.core.database.entities import WaitlistEntry
from edify_ai.core.database.repositories import UserRepository, WaitlistRepository
from edify_ai.core.logging_config import get_logger
from edify_ai.server.core.config import settings
from edify_ai.server.schemas import (
    WaitlistJoin,
    WaitlistOrgStatusUpdate,
    WaitlistStatusUpdate,
    WaitlistTypeUpdate,
)
from edify_ai.server.services.deps import CurrentUser, IdentityDep, SessionDep
from edify_ai.server.services.identity import IdentityProviderError

logger = get_logger(__name__)
router = APIRouter()


def invite_redirect_base(origin: Optional[str]) -> str:
    """Keep invitations inside the environment the admin is working in."""
    preview = settings.app.preview_url
    host = preview.split("://", 1)[-1]
    if origin and host in origin:
        return preview
    return settings.app.app_url


async def _get_entry(repo: WaitlistRepository, entry_id: str) -> WaitlistEntry:
    entry = await repo.get_by_id(entry_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Waitlist entry not found")
    return entry


@router.post(
    "/waitlist",
    summary="Join Waitlist",
    description="Register an email address on the waitlist.",
    response_description="Confirmation with the identity provider's waitlist entry.",
    responses={
        400: {"description": "Missing email, existing account or existing waitlist entry"},
    },
)
async def join_waitlist(body: WaitlistJoin, session: SessionDep, identity: IdentityDep):
    """
    Join the waitlist.

    Emails that already belong to an account or are already waiting are
    rejected. Otherwise a waitlist entry is created on the identity provider,
    which reports it back through the waitlist webhook.

    - **email**: The address to register.
    """
    if not body.email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email is required")

    if await UserRepository(session).get_by_email(body.email) is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="An account already exists with this email"
        )
    if await WaitlistRepository(session).get_by_email(body.email) is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered for waitlist")

    try:
        data = await identity.create_waitlist_entry(body.email)
    except IdentityProviderError as e:
        detail = str(e) if isinstance(e.details, dict) and e.details.get("errors") else "Failed to join waitlist"
        raise HTTPException(status_code=e.status_code, detail=detail)

    logger.info(f"Created identity provider waitlist entry for {body.email}")
    return {"success": True, "message": "Successfully joined waitlist", "data": data}


@router.post(
    "/waitlist/update-type",
    summary="Set Waitlist Account Type",
    description="Record whether a waitlisted email signs up as an individual or an organization.",
)
async def update_waitlist_type(body: WaitlistTypeUpdate, session: SessionDep):
    """
    Set the account type of a waitlist entry.

    Organization sign-ups get ``org_status`` ``pending`` so that an admin can
    approve the organization.
    """
    repo = WaitlistRepository(session)
    entry = await repo.get_by_email(body.email)
    if entry is not None:
        await repo.update(
            entry,
            {
                "account_type": body.account_type,
                "organization_name": body.organization_name,
                "org_status": "pending" if body.account_type == "organization" else None,
            },
        )
    return {"success": True}


@router.patch(
    "/admin/waitlist/{entry_id}",
    summary="Update Waitlist Status",
    description="Change the status of a waitlist entry; 'invited' sends a sign-up invitation.",
    responses={
        404: {"description": "Waitlist entry not found"},
        500: {"description": "The invitation could not be sent"},
    },
)
async def update_waitlist_status(
    entry_id: str,
    body: WaitlistStatusUpdate,
    user: CurrentUser,
    session: SessionDep,
    identity: IdentityDep,
    origin: Optional[str] = Header(default=None),
):
    repo = WaitlistRepository(session)
    entry = await _get_entry(repo, entry_id)

    invited = body.status == "invited"
    if invited:
        redirect_url = f"{invite_redirect_base(origin)}/sign-up"
        try:
            await identity.create_invitation(
                entry.email,
                redirect_url,
                {
                    "source": "waitlist",
                    "invitedAt": datetime.now(timezone.utc).isoformat(),
                    "ticketId": entry.id,
                },
            )
        except IdentityProviderError as e:
            logger.error(f"Failed to send invitation to {entry.email}: {e}", exc_info=True)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to send invitation")
        logger.info(f"{user.user_id} invited {entry.email} with redirect {redirect_url}")

    await repo.update(entry, {"status": body.status, "approved_at": utc_now() if invited else None})
    return {
        "success": True,
        "message": "Status updated and invitation sent" if invited else "Status updated",
    }


@router.patch(
    "/admin/waitlist/{entry_id}/org-status",
    summary="Update Organization Request Status",
    description="Approve or reject an organization request; approval creates the organization.",
    responses={
        404: {"description": "Waitlist entry not found"},
        500: {"description": "The identity provider setup failed"},
    },
)
async def update_waitlist_org_status(
    entry_id: str,
    body: WaitlistOrgStatusUpdate,
    user: CurrentUser,
    session: SessionDep,
    identity: IdentityDep,
):
    """
    Update an organization request.

    On ``approved`` the requesting email gets an identity provider account
    (created when missing) and becomes the creator of a new organization.
    """
    repo = WaitlistRepository(session)
    entry = await _get_entry(repo, entry_id)

    approved = body.org_status == "approved"
    if approved:
        try:
            owner = await identity.get_or_create_user(entry.email)
            await identity.create_organization(
                entry.organization_name or entry.email,
                owner["id"],
                {"created_from_waitlist": True},
            )
        except IdentityProviderError as e:
            logger.error(f"Failed to set up organization for {entry.email}: {e}", exc_info=True)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to set up in Clerk")
        logger.info(f"{user.user_id} approved organization {entry.organization_name} for {entry.email}")

    await repo.update(entry, {"org_status": body.org_status, "approved_at": utc_now() if approved else None})
    return {"success": True}
