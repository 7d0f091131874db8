"""
Violation Report Endpoint.

Lists flagged prompts together with their input text so that users can see
what was flagged and request a review.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from edify_ai.core.logging_config import get_logger
from edify_ai.server.services.deps import CurrentUser, SessionDep
from edify_ai.server.services.violations import list_user_violations

logger = get_logger(__name__)
router = APIRouter()


@router.get(
    "/violations",
    summary="List Violations",
    description="Flagged prompts of the caller, or of every organization member for org admins.",
    response_description="The flagged prompts, or a message when there are none.",
    responses={
        400: {"description": "Invalid date range"},
        401: {"description": "Not signed in"},
    },
)
async def list_violations(
    user: CurrentUser,
    session: SessionDep,
    date_from: Optional[str] = Query(default=None, alias="from"),
    date_to: Optional[str] = Query(default=None, alias="to"),
):
    """
    List flagged prompts.

    - **from**: Inclusive start day, ``YYYY-MM-DD``.
    - **to**: Inclusive end day, ``YYYY-MM-DD``.
    """
    try:
        violations = await list_user_violations(session, user, date_from, date_to)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid date range: {e}")

    if not violations:
        return {"message": "No violations found."}
    logger.debug(f"Found {len(violations)} violations for {user.user_id}")
    return violations
