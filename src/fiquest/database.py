"""Database engine lifecycle and session helpers.

Request handlers get a session per request via :func:`get_session`.
Work that outlives a request (badge evaluation, audit rows, notifications,
worker jobs, scripts) opens its own transaction with
:func:`independent_session`, so a failure there never touches the
request's transaction.
"""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_options(url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"pool_pre_ping": True}
    if url.startswith("postgresql"):
        # Detached evaluations run alongside request traffic
        options.update(pool_size=20, max_overflow=10, connect_args={"statement_cache_size": 0})
    return options


async def init_db(url: str) -> None:
    global _engine, _session_factory  # noqa: PLW0603
    _engine = create_async_engine(url, **_engine_options(url))
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)


async def close_db() -> None:
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency. Uncommitted work is rolled back when the request ends."""
    async with get_session_factory()() as session:
        yield session


@asynccontextmanager
async def independent_session() -> AsyncIterator[AsyncSession]:
    """A session outside any request. The caller commits."""
    async with get_session_factory()() as session:
        yield session
