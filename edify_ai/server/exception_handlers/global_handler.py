"""
Exception Handlers for FastAPI Application.

Every error leaves the server as a JSON body with an ``error`` key:

- ``HTTPException`` (raised by routes or by the framework for unknown
  routes and methods) renders its detail
- request validation failures render as 400 with the validation details
- any other exception is logged with an error ID and rendered as 500
"""

import traceback

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from edify_ai.core.logging_config import get_logger
from edify_ai.core.monitoring import log_error

logger = get_logger(__name__)

# Lower-cased message fragment -> status, first match wins
ERROR_STATUS_RULES = (
    ("personal information", 400),
    ("safety policy", 403),
    ("prompt injection", 400),
)


def status_for_error_message(message: str) -> int:
    """
    Infer the HTTP status of a failure from its message.

    Args:
        message: The error message

    Returns:
        The matching status code, 500 when nothing matches
    """
    lowered = (message or "").lower()
    for fragment, status_code in ERROR_STATUS_RULES:
        if fragment in lowered:
            return status_code
    return 500


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render an HTTP exception as ``{"error": detail}``."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed with {exc.status_code}: {exc.detail}")
    content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info(f"Invalid request body for {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler to log detailed error information.

    This handler is called for any unhandled exception in the application.
    It logs the full error context and returns a JSON response with an error ID
    that clients can use to reference the error when reporting issues.

    Args:
        request: The HTTP request that caused the exception
        exc: The exception that was raised

    Returns:
        JSONResponse with error details and error ID
    """
    error_id = id(exc)

    logger.error(
        f"Unhandled exception [{error_id}] in {request.method} {request.url.path}: {str(exc)}",
        exc_info=True,
        extra={
            "error_id": error_id,
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
            "client": request.client.host if request.client else "unknown",
            "error_type": type(exc).__name__,
            "traceback": traceback.format_exc(),
        },
    )
    log_error(type(exc).__name__, str(exc), {"error_id": error_id, "path": request.url.path})

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "error_id": error_id,
            "error_type": type(exc).__name__,
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    logger.debug("Exception handlers registered successfully")
