"""
Engine, session factory and schema helpers.

``DATABASE_URL`` is usually a hosted Postgres connection string copied from
the provider dashboard (``postgres://...?sslmode=require``). ``create_engine``
turns it into something asyncpg accepts. SQLite URLs are used by the tests.
"""

from __future__ import annotations

import re
from typing import Any, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .base import Base

_POSTGRES_SCHEME = re.compile(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://")


def create_engine(db_url: str) -> AsyncEngine:
    """Create the async engine for ``db_url``.

    Postgres URLs are rewritten to the ``postgresql+asyncpg`` driver and their
    libpq ``sslmode`` parameter is passed to asyncpg as ``ssl``.

    Args:
        db_url: Database connection URL

    Returns:
        Configured AsyncEngine instance
    """
    url = make_url(_POSTGRES_SCHEME.sub("postgresql+asyncpg://", db_url, count=1))
    connect_args: Dict[str, Any] = {}

    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
    elif "sslmode" in url.query:
        connect_args["ssl"] = url.query["sslmode"]
        url = url.difference_update_query(["sslmode"])

    return create_async_engine(url, pool_pre_ping=True, connect_args=connect_args)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory; objects stay usable after commit because streaming responses read them later."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create every missing table from the entity metadata."""
    from . import entities  # noqa: F401  registers every table on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
