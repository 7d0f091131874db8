"""
Identity Webhook Sync.

Mirrors identity provider users, organizations and memberships into the local
tables. Events arrive already verified; each handler is idempotent so that
redelivered events are harmless.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from edify_ai.core.database.entities import Organization, WaitlistEntry
from edify_ai.core.database.repositories import (
    OrganizationRepository,
    OrgMemberRepository,
    UserRepository,
    WaitlistRepository,
)
from edify_ai.core.logging_config import get_logger

logger = get_logger(__name__)


def suffixed(value: Optional[str], entity_id: str) -> Optional[str]:
    """Append the last six characters of ``entity_id`` to make names unique."""
    if not value:
        return None
    return f"{value}_{entity_id[-6:]}"


def _org_values(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": suffixed(data.get("name"), data["id"]),
        "slug": suffixed(data.get("slug"), data["id"]),
        "image_url": data.get("image_url"),
        "org_metadata": data.get("public_metadata") or {},
    }


async def handle_user(session: AsyncSession, data: Dict[str, Any]) -> None:
    logger.info(f"Processing user data: {data['id']}")
    addresses = data.get("email_addresses") or []
    await UserRepository(session).upsert(
        {"id": data["id"]},
        {
            "email": addresses[0].get("email_address") if addresses else None,
            "username": suffixed(data.get("username"), data["id"]),
            "first_name": data.get("first_name"),
            "last_name": data.get("last_name"),
            "image_url": data.get("image_url"),
            "user_metadata": {
                "public": data.get("public_metadata"),
                "private": data.get("private_metadata"),
                "unsafe": data.get("unsafe_metadata"),
            },
        },
    )


async def handle_user_deleted(session: AsyncSession, data: Dict[str, Any]) -> None:
    logger.info(f"Deleting user: {data.get('id')}")
    await UserRepository(session).delete(data.get("id"))


async def handle_org_upserted(session: AsyncSession, data: Dict[str, Any]) -> None:
    """
    Upsert an organization and register its creator as admin.

    A uniqueness conflict (for example a name already taken) is logged and
    ignored.
    """
    logger.info(f"Processing organization: {data['id']}")
    try:
        await OrganizationRepository(session).upsert({"id": data["id"]}, _org_values(data))

        creator = data.get("created_by")
        if creator:
            await OrgMemberRepository(session).upsert_membership(data["id"], creator, "admin")
            users = UserRepository(session)
            user = await users.get_by_id(creator)
            if user is not None:
                await users.update(user, {"default_org_id": data["id"]})
    except IntegrityError as e:
        await session.rollback()
        logger.warning(f"Organization {data['id']} conflicts with an existing row, continuing: {e.orig}")


async def handle_org_deleted(session: AsyncSession, data: Dict[str, Any]) -> None:
    logger.info(f"Deleting organization: {data.get('id')}")
    await OrganizationRepository(session).delete(data.get("id"))


async def handle_membership(session: AsyncSession, data: Dict[str, Any]) -> None:
    """Upsert a membership, creating its organization first when unknown."""
    logger.info(f"Processing membership: {data.get('id')}")
    org = data["organization"]
    orgs = OrganizationRepository(session)
    if await orgs.get_by_id(org["id"]) is None:
        await orgs.create(Organization(id=org["id"], **_org_values(org)))

    role = (data.get("role") or "member").replace("org:", "")
    user_id = data["public_user_data"]["user_id"]
    await OrgMemberRepository(session).upsert_membership(org["id"], user_id, role)


HANDLERS = {
    "user.created": handle_user,
    "user.updated": handle_user,
    "user.deleted": handle_user_deleted,
    "organization.created": handle_org_upserted,
    "organization.updated": handle_org_upserted,
    "organization.deleted": handle_org_deleted,
    "organizationMembership.created": handle_membership,
    "organizationMembership.updated": handle_membership,
}


async def handle_identity_event(session: AsyncSession, event: Dict[str, Any]) -> None:
    event_type = event.get("type")
    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Unhandled event type: {event_type}")
        return
    await handler(session, event.get("data") or {})


async def handle_waitlist_event(session: AsyncSession, event: Dict[str, Any]) -> None:
    """Store new provider waitlist entries as pending."""
    if event.get("type") != "waitlistEntry.created":
        return
    email = (event.get("data") or {}).get("email_address")
    if not email:
        return
    waitlist = WaitlistRepository(session)
    if await waitlist.get_by_email(email) is None:
        await waitlist.create(WaitlistEntry(email=email, status="pending"))
        logger.info(f"Added {email} to waitlist")
