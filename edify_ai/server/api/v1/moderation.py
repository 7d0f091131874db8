"""
Moderation Endpoints.

Flagged prompts wait in a moderation queue. Educators ask for a review of
their own flagged content, which emails the organization's moderator.
Moderators and org admins approve or decline content, either through the API
or from the links in the review email, and the author is emailed the
outcome. Approved content can then be replayed without screening.
"""

from html import escape
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import HTMLResponse

from edify_ai.core.database.base import utc_now
from edify_ai.core.database.entities import AIToolsMetric
from edify_ai.core.database.repositories import AIToolsMetricRepository, UserRepository
from edify_ai.core.logging_config import get_logger
from edify_ai.server.schemas import ModerationUpdate
from edify_ai.server.services.auth import AuthContext
from edify_ai.server.services.deps import AuthDep, EmailDep, IdentityDep, SessionDep
from edify_ai.server.services.email import EmailDeliveryError, EmailService
from edify_ai.server.services.identity import IdentityProviderError
from edify_ai.server.services.violations import (
    NOT_REQUESTED,
    ModerationRole,
    fetch_prompt_input,
    get_chat_title,
    list_moderation_queue,
    moderation_role,
    summarize_violations,
)

logger = get_logger(__name__)
router = APIRouter()

DECISIONS = {"approve": "approved", "decline": "declined"}
REVIEW_STATUSES = {"approved", "declined", "pending"}


def _require_role(auth: AuthContext) -> ModerationRole:
    if not auth.user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized access")
    role = moderation_role(auth.org_role)
    if role is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized role")
    return role


async def _get_metric(repo: AIToolsMetricRepository, metric_id: str) -> AIToolsMetric:
    metric = await repo.get_by_id(metric_id)
    if metric is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Content not found")
    return metric


def _with_status(metric: AIToolsMetric) -> Dict[str, Any]:
    return {**metric.model_dump(mode="json"), "status": metric.moderator_approval or NOT_REQUESTED}


async def _notify_author(
    session: SessionDep,
    email: EmailService,
    metric: AIToolsMetric,
    decision: str,
    notes: Optional[str],
) -> None:
    """Email the content author the review outcome; delivery failures are logged."""
    author = await UserRepository(session).get_by_id(metric.user_id)
    if author is None or not author.email:
        logger.warning(f"No email address for author {metric.user_id} of {metric.id}")
        return

    chat_title = await get_chat_title(session, metric.prompt_id)
    try:
        await email.send_status_update(
            author.email,
            username=author.username or "User",
            content_id=metric.id,
            status=decision,
            tool_type=metric.prompt_type or "unknown",
            chat_title=chat_title,
            violations=summarize_violations(metric.content_flags),
            notes=notes,
        )
    except (EmailDeliveryError, httpx.HTTPError) as e:
        logger.error(f"Failed to send status update email for {metric.id}: {e}", exc_info=True)


async def _apply_decision(
    session: SessionDep,
    metric: AIToolsMetric,
    decision: str,
    notes: Optional[str],
    moderator_id: str,
) -> AIToolsMetric:
    return await AIToolsMetricRepository(session).update(
        metric,
        {
            "moderator_approval": decision,
            "moderator_notes": notes,
            "moderation_updated_at": utc_now(),
            "moderator_id": moderator_id,
        },
    )


@router.get(
    "/moderator/violations",
    summary="List Moderation Queue",
    description="Page through flagged prompts visible to the caller's moderation role.",
    response_description="One page of queue items with the total count.",
    responses={401: {"description": "Not signed in or no moderation role"}},
)
async def list_queue(
    auth: AuthDep,
    session: SessionDep,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100, alias="pageSize"),
):
    """
    List the moderation queue.

    Educators see their own flagged prompts. Moderators and org admins see
    every flagged prompt of their organization's members.

    - **page**: 1-based page number.
    - **pageSize**: Items per page.
    """
    role = _require_role(auth)
    return await list_moderation_queue(session, auth, role, page, page_size)


@router.patch(
    "/moderator/violations/{metric_id}",
    summary="Request or Record Moderation",
    description="Educators request a review; moderators and admins record a decision.",
    response_description="The updated metrics row with its moderation status.",
    responses={
        401: {"description": "Not signed in or no moderation role"},
        404: {"description": "Content or moderator not found"},
    },
)
async def update_moderation(
    metric_id: str,
    body: ModerationUpdate,
    auth: AuthDep,
    session: SessionDep,
    identity: IdentityDep,
    email: EmailDep,
):
    """
    Update the moderation state of flagged content.

    For educators this asks the organization's first moderator to review the
    content by email and marks it ``pending``. For moderators and admins it
    stores **moderator_approval** and **moderator_notes** and emails the
    author the outcome.
    """
    role = _require_role(auth)
    repo = AIToolsMetricRepository(session)
    metric = await _get_metric(repo, metric_id)

    if role is ModerationRole.EDUCATOR:
        chat_title = await get_chat_title(session, metric.prompt_id)
        author = await UserRepository(session).get_by_id(auth.user_id)
        username = (author.username if author else None) or "User"

        if not auth.org_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No moderator available")
        try:
            moderator_email = await identity.find_moderator_email(auth.org_id)
        except IdentityProviderError as e:
            raise HTTPException(status_code=e.status_code, detail=str(e))

        try:
            await email.send_moderation_request(
                moderator_email,
                username=username,
                content_id=metric.id,
                tool_type=metric.prompt_type or "unknown",
                chat_title=chat_title,
                violations=summarize_violations(metric.content_flags),
            )
        except (EmailDeliveryError, httpx.HTTPError) as e:
            logger.error(f"Failed to send moderation request for {metric.id}: {e}", exc_info=True)

        metric = await repo.update(
            metric,
            {
                "moderator_approval": "pending",
                "moderation_requested_at": utc_now(),
                "user_requested_moderation": True,
            },
        )
        logger.info(f"{auth.user_id} requested moderation of {metric.id}")
        return {"success": True, "data": _with_status(metric)}

    if body.moderator_approval not in REVIEW_STATUSES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid moderation status")

    await _notify_author(session, email, metric, body.moderator_approval, body.moderator_notes)
    metric = await _apply_decision(session, metric, body.moderator_approval, body.moderator_notes, auth.user_id)
    logger.info(f"{auth.user_id} set moderation of {metric.id} to {metric.moderator_approval}")
    return {"success": True, "data": _with_status(metric)}


def decision_page(decision: str) -> str:
    """Confirmation page shown after acting from a review email."""
    approved = decision == "approved"
    title = "Content Approved" if approved else "Content Declined"
    color = "#34A853" if approved else "#EA4335"
    return (
        "<!DOCTYPE html><html><head><meta charset='utf-8'>"
        f"<title>{escape(title)}</title></head>"
        "<body style=\"font-family:Arial, sans-serif;display:flex;justify-content:center;align-items:center;"
        'min-height:100vh;margin:0;background-color:#f5f5f5">'
        '<div style="background:#fff;padding:40px;border-radius:8px;text-align:center;'
        'box-shadow:0 2px 4px rgba(0,0,0,0.1)">'
        f'<h1 style="color:{color}">{escape(title)}</h1>'
        "<p>The user has been notified of your decision.</p>"
        f'<a href="/moderator/dashboard" style="color:{color}">Return to Dashboard</a>'
        "</div></body></html>"
    )


@router.get(
    "/moderator/violations/{metric_id}",
    summary="Get Approved Content or Act on Content",
    description=(
        "Without action, return the approved prompt text. "
        "With action=approve|decline, record the decision and return a confirmation page."
    ),
    responses={
        400: {"description": "Invalid action"},
        401: {"description": "Not signed in or not a moderator"},
        403: {"description": "Content not approved"},
        404: {"description": "Content not found"},
    },
)
async def get_moderated_content(
    metric_id: str,
    auth: AuthDep,
    session: SessionDep,
    email: EmailDep,
    action: Optional[str] = None,
):
    """
    Read or act on moderated content.

    - **action**: ``approve`` or ``decline``; used by the links in review emails.
    """
    if not auth.user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized access")
    repo = AIToolsMetricRepository(session)

    if action is not None:
        if moderation_role(auth.org_role) not in (ModerationRole.MODERATOR, ModerationRole.ADMIN):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized role")
        decision = DECISIONS.get(action)
        if decision is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")

        metric = await _get_metric(repo, metric_id)
        metric = await _apply_decision(session, metric, decision, metric.moderator_notes, auth.user_id)
        await _notify_author(session, email, metric, decision, metric.moderator_notes)
        logger.info(f"{auth.user_id} {decision} {metric.id} from review email")
        return HTMLResponse(decision_page(decision))

    metric = await _get_metric(repo, metric_id)
    prompt_text = await fetch_prompt_input(session, "chat", metric.prompt_id) if metric.prompt_id else None
    if not prompt_text or prompt_text == "N/A":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat content not found")
    if metric.moderator_approval != "approved":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Content not approved")

    return {
        "id": metric.id,
        "data": {
            "promptText": prompt_text,
            "contentFlags": {**(metric.content_flags or {}), "moderator_approval": metric.moderator_approval},
        },
    }
