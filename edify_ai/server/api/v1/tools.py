"""
AI Tool Endpoints.

The multiple-choice question generator and its history. Topics are screened
before generation unless they refer to moderator-approved content.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from edify_ai.core.logging_config import get_logger
from edify_ai.server.schemas import MCQGenerateRequest
from edify_ai.server.services.deps import CurrentUser, ExchangeDep, OpenAIDep, SessionDep
from edify_ai.server.services.mcq_generator import (
    MCQContentViolation,
    MCQNotApproved,
    MCQNotFound,
    generate_mcqs,
    get_approved_result,
    list_history,
)

logger = get_logger(__name__)
router = APIRouter()


@router.post(
    "/tools/mcq-generator",
    summary="Generate Multiple-Choice Questions",
    description="Generate a deduplicated question set for a topic across Bloom's taxonomy levels.",
    response_description="The stored question set.",
    responses={
        400: {"description": "Missing fields or the topic violates content policy"},
        401: {"description": "Not signed in"},
    },
)
async def create_mcqs(
    body: MCQGenerateRequest,
    user: CurrentUser,
    session: SessionDep,
    client: OpenAIDep,
    exchange: ExchangeDep,
    approved: Optional[str] = None,
):
    """
    Generate questions.

    - **topic**: Topic or source text.
    - **taxonomyLevels**: Bloom's taxonomy levels to cover.
    - **difficulty**: Difficulty level (default: medium).
    - **questionCount**: Number of questions (default: 5).
    - **answersPerQuestion**: Options per question (default: 4).
    - **approved**: Metrics id of moderator-approved content; skips screening.
    """
    if not body.topic or not body.taxonomy_levels:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields: topic and taxonomyLevels"
        )

    try:
        result = await generate_mcqs(
            session,
            client,
            exchange,
            user_id=user.user_id,
            topic=body.topic,
            taxonomy_levels=body.taxonomy_levels,
            difficulty=body.difficulty or "medium",
            question_count=body.question_count,
            answers_per_question=body.answers_per_question,
            approved_id=approved,
        )
    except MCQContentViolation as e:
        logger.warning(f"MCQ topic from {user.user_id} rejected: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {"data": result.model_dump(mode="json")}


@router.get(
    "/tools/mcq-generator",
    summary="Get Approved Question Set",
    description="Load the question set behind moderator-approved content.",
    responses={
        400: {"description": "Missing approved id"},
        403: {"description": "Content not approved"},
        404: {"description": "Metrics or question set not found"},
    },
)
async def get_approved_mcqs(user: CurrentUser, session: SessionDep, approved: Optional[str] = None):
    if not approved:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid approved ID")

    try:
        return await get_approved_result(session, approved)
    except MCQNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except MCQNotApproved as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": str(e), "status": e.status, "contentFlags": e.content_flags},
        )


@router.get(
    "/history/mcq-generator",
    summary="Question Set History",
    description="Page through stored question sets; org admins see their whole organization.",
    response_description="One page of question sets with paging totals.",
)
async def get_mcq_history(
    user: CurrentUser,
    session: SessionDep,
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    search: str = "",
):
    """
    Question set history.

    - **limit**: Page size.
    - **offset**: Rows to skip.
    - **search**: Keep only owners whose username contains this text.
    """
    return await list_history(session, user, limit=limit, offset=offset, search=search)
