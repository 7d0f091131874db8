"""
Main Application Entry Point.

This module initializes the FastAPI application, configures middleware
(CORS, request logging), registers the JSON error handlers and includes all
API routers. It serves as the root of the web server.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from edify_ai.core.database import init_db
from edify_ai.core.logging_config import get_logger, setup_logging
from edify_ai.core.monitoring import initialize_logfire

from .api.v1 import (
    ai_tools,
    analytics,
    billing,
    chat,
    chat_sessions,
    health,
    moderation,
    tools,
    violations,
    waitlist,
    webhooks,
)
from .api.v1.health import API_VERSION
from .core import constant
from .core.config import settings
from .exception_handlers import setup_exception_handlers
from .middleware import LogfireMiddleware

setup_logging(settings.log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan events.

    Creates missing tables on startup. A database that is unreachable at
    startup is logged; requests touching it fail until it comes back.
    """
    try:
        logger.info("Starting up Edify AI Server...")
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    yield

    logger.info("Shutting down Edify AI Server...")


app = FastAPI(
    title=constant.PROJECT_NAME,
    description="""
    Edify AI Server API

    Backend of the Edify education AI-tools platform. It streams moderated chat
    completions, runs the AI tools, reconciles subscriptions and identity
    events from webhooks, and serves the moderation and analytics dashboards.
    """,
    version=API_VERSION,
    openapi_url=f"{constant.API_PREFIX}/openapi.json",
    docs_url=f"{constant.API_PREFIX}/docs",
    redoc_url=f"{constant.API_PREFIX}/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=settings.cors.allow_methods,
    allow_headers=settings.cors.allow_headers,
)
app.add_middleware(LogfireMiddleware)

setup_exception_handlers(app)
initialize_logfire(app)

app.include_router(health.router, tags=["health"])
# chat before chat_sessions: /chat/approved must win over /chat/{session_id}
app.include_router(chat.router, prefix=constant.API_PREFIX, tags=["chat"])
app.include_router(chat_sessions.router, prefix=constant.API_PREFIX, tags=["chat-sessions"])
app.include_router(billing.router, prefix=constant.API_PREFIX, tags=["billing"])
app.include_router(webhooks.router, prefix=constant.API_PREFIX, tags=["webhooks"])
app.include_router(waitlist.router, prefix=constant.API_PREFIX, tags=["waitlist"])
app.include_router(moderation.router, prefix=constant.API_PREFIX, tags=["moderation"])
app.include_router(violations.router, prefix=constant.API_PREFIX, tags=["moderation"])
app.include_router(analytics.router, prefix=constant.API_PREFIX, tags=["analytics"])
app.include_router(ai_tools.router, prefix=constant.API_PREFIX, tags=["ai-tools"])
app.include_router(tools.router, prefix=constant.API_PREFIX, tags=["ai-tools"])
