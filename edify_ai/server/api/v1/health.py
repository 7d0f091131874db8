"""
Health Check Endpoints.

Basic status endpoints (health, version) used for monitoring and deployment
verification.
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from edify_ai.core.logging_config import get_logger
from edify_ai.server.services.deps import SessionDep

logger = get_logger(__name__)
router = APIRouter()

API_VERSION = "1.0.0"


@router.get(
    "/health",
    summary="Health Check",
    description="Check the operational status of the API server and its database.",
    response_description="Status object.",
    responses={503: {"description": "The database is unreachable"}},
)
async def health_check(session: SessionDep):
    """
    Health check endpoint.

    Runs a trivial query so that a lost database connection reports the
    server as degraded.
    """
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "degraded", "database": "unavailable"},
        )
    return {"status": "ok", "database": "ok"}


@router.get(
    "/version",
    summary="Get Version",
    description="Retrieve version information for the API server.",
    response_description="Version object.",
)
async def version():
    return {"version": API_VERSION, "api_prefix": "/api"}
