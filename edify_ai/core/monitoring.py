"""
Monitoring and Tracing Configuration Module.

This module provides integration with Pydantic Logfire for monitoring the
server's request handling, LLM calls, database access and outbound HTTP
traffic to identity, billing and email providers.

The ``log_*`` helpers are safe to call whether or not Logfire has been
configured; when it has not, they degrade to debug logging.
"""

import logging
from typing import Optional

import logfire
from fastapi import FastAPI

from edify_ai.server.core.config import settings

logger = logging.getLogger(__name__)


def initialize_logfire(app: FastAPI | None = None) -> bool:
    """
    Initialize Logfire for monitoring and tracing.

    Sets up Logfire with automatic instrumentation for:
    - SQLAlchemy database operations
    - HTTPX HTTP requests (Clerk, Resend, exchange rates)
    - FastAPI endpoints

    Args:
        app: FastAPI application instance for endpoint instrumentation (optional).

    Returns:
        True when Logfire was configured, False when monitoring stays disabled.
    """
    config = settings.logfire
    if not config.enabled:
        logger.info("Logfire monitoring is disabled. Set LOGFIRE_ENABLED=true to enable.")
        return False

    if not config.token:
        logger.warning(
            "Logfire is enabled but LOGFIRE_TOKEN is not set. "
            "Monitoring will not work. Set LOGFIRE_TOKEN to enable Logfire."
        )
        return False

    try:
        logfire.configure(
            token=config.token,
            service_name=config.service_name,
            service_version=config.service_version,
            environment=config.environment,
        )
    except Exception as e:
        logger.error(f"Failed to initialize Logfire: {e}", exc_info=True)
        return False

    for name, instrument in (
        ("SQLAlchemy", logfire.instrument_sqlalchemy),
        ("HTTPX", logfire.instrument_httpx),
    ):
        try:
            instrument()
            logger.info(f"Logfire: {name} instrumentation enabled")
        except Exception as e:
            logger.warning(f"Failed to instrument {name}: {e}")

    if app is not None:
        try:
            logfire.instrument_fastapi(app=app)
            logger.info("Logfire: FastAPI instrumentation enabled")
        except Exception as e:
            logger.warning(f"Failed to instrument FastAPI: {e}")

    logger.info(
        f"Logfire monitoring initialized: environment={config.environment}, service={config.service_name}"
    )
    return True


def log_api_request(method: str, path: str, status_code: int, duration_ms: float) -> None:
    """
    Log an API request with performance metrics.

    Args:
        method: HTTP method
        path: Request path
        status_code: HTTP status code
        duration_ms: Request duration in milliseconds
    """
    try:
        logfire.info(
            "API request completed",
            method=method,
            path=path,
            status_code=status_code,
            duration_ms=duration_ms,
        )
    except Exception:
        logger.debug(f"Could not log API request to Logfire: {method} {path}")


def log_llm_call(model: str, tokens_used: int, cost_gbp: Optional[float] = None) -> None:
    """
    Log an LLM model call with usage metrics.

    Args:
        model: The model name
        tokens_used: Total tokens used in the call
        cost_gbp: The cost in GBP (optional)
    """
    try:
        logfire.info("LLM call completed", model=model, tokens_used=tokens_used, cost_gbp=cost_gbp)
    except Exception:
        logger.debug(f"Could not log LLM call to Logfire: model={model}")


def log_content_violation(user_id: str, source: str, flags: list[str]) -> None:
    """
    Log a blocked prompt.

    Args:
        user_id: The user whose input was screened
        source: Where the input came from (``chat`` or a tool's prompt type)
        flags: Names of the content flags that fired
    """
    try:
        logfire.warn("Content violation blocked", user_id=user_id, source=source, flags=flags)
    except Exception:
        logger.debug(f"Could not log content violation to Logfire: source={source}")


def log_webhook_event(provider: str, event_type: str) -> None:
    """
    Log a verified webhook delivery.

    Args:
        provider: ``stripe``, ``clerk`` or ``clerk-waitlist``
        event_type: The provider's event type string
    """
    try:
        logfire.info("Webhook received", provider=provider, event_type=event_type)
    except Exception:
        logger.debug(f"Could not log webhook to Logfire: {provider} {event_type}")


def log_error(error_type: str, error_message: str, context: Optional[dict] = None) -> None:
    """
    Log an error with context for debugging.

    Args:
        error_type: The type of error
        error_message: The error message
        context: Additional context information (optional)
    """
    try:
        logfire.error("Error occurred", error_type=error_type, error_message=error_message, **(context or {}))
    except Exception:
        logger.debug(f"Could not log error to Logfire: {error_type}")
