"""
AI Tool Usage Endpoint.
"""

from fastapi import APIRouter, HTTPException, status

from edify_ai.core.logging_config import get_logger
from edify_ai.server.schemas import ToolUsageCreate
from edify_ai.server.services.ai_tools import record_tool_usage
from edify_ai.server.services.deps import AuthDep, SessionDep

logger = get_logger(__name__)
router = APIRouter()


@router.post(
    "/ai-tools/usage",
    summary="Record Tool Usage",
    description="Record that the caller opened an AI tool inside their organization.",
    response_description="The stored usage row.",
    responses={401: {"description": "Not signed in or no active organization"}},
)
async def create_tool_usage(body: ToolUsageCreate, auth: AuthDep, session: SessionDep):
    """
    Record AI tool usage.

    - **toolType**: The tool that was used.
    - **promptId**: The stored prompt, when there is one.
    - **metadata**: Free-form details stored with the row.
    """
    if not auth.user_id or not auth.org_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    usage = await record_tool_usage(
        session,
        user_id=auth.user_id,
        org_id=auth.org_id,
        tool_type=body.tool_type,
        prompt_id=body.prompt_id,
        metadata=body.metadata,
    )
    logger.info(f"Recorded {body.tool_type} usage for {auth.user_id} in {auth.org_id}")
    data = usage.model_dump(mode="json", exclude={"usage_metadata"})
    return {**data, "metadata": usage.usage_metadata}
