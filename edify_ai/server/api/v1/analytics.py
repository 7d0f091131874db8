"""
Analytics Endpoints.

Platform-wide usage analytics, the organization usage dashboard and the
per-tool cost export.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from edify_ai.core.database.repositories import AIToolsMetricRepository
from edify_ai.core.logging_config import get_logger
from edify_ai.server.core.config import settings
from edify_ai.server.services.analytics import dashboard, platform_analytics, prompt_type_metrics, write_metrics_csv
from edify_ai.server.services.deps import CurrentUser, SessionDep
from edify_ai.server.services.violations import parse_day

logger = get_logger(__name__)
router = APIRouter()

METRICS_PREVIEW_ROWS = 5


@router.get(
    "/analytics",
    summary="Platform Analytics",
    description="Usage, cost and violation analytics over the last 30 days.",
    response_description="Totals, per-day series and per-model, per-tool and per-violation breakdowns.",
)
async def get_platform_analytics(user: CurrentUser, session: SessionDep):
    """
    Platform analytics.

    Days in ``timeSeriesData`` are formatted ``dd/mm/yyyy``; violation names
    are title-cased flag names.
    """
    return await platform_analytics(session)


@router.get(
    "/dashboard",
    summary="Usage Dashboard",
    description="Per-user usage of the caller's organization, or of the caller alone.",
    response_description="Users, their aggregated metrics, tool usage and the organization name.",
    responses={400: {"description": "Invalid date range"}},
)
async def get_dashboard(
    user: CurrentUser,
    session: SessionDep,
    date_from: Optional[str] = Query(default=None, alias="from"),
    date_to: Optional[str] = Query(default=None, alias="to"),
):
    """
    Usage dashboard.

    - **from**: Inclusive start day, ``YYYY-MM-DD``.
    - **to**: Inclusive end day, ``YYYY-MM-DD``.
    """
    try:
        start = parse_day(date_from, end=False)
        end = parse_day(date_to, end=True)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid date range: {e}")
    return await dashboard(session, user.user_id, user.org_id, start=start, end=end)


@router.get(
    "/metrics",
    summary="Export Tool Cost Metrics",
    description="Per-tool token and price metrics of priced, unflagged prompts, exported as CSV.",
    response_description="The written file names and a preview of their content.",
)
async def export_metrics(user: CurrentUser, session: SessionDep):
    rows = await AIToolsMetricRepository(session).list_priced_unflagged()
    report = prompt_type_metrics(rows)
    files = write_metrics_csv(settings.app.metrics_export_dir, report["metrics"], report["summary"])
    logger.info(f"{user.user_id} exported metrics for {report['summary']['prompt_types_count']} prompt types")
    return {
        "success": True,
        **files,
        "metrics_preview": report["metrics"][:METRICS_PREVIEW_ROWS],
        "summary_preview": report["summary"],
    }
