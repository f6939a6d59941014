"""Async SQLAlchemy engine/session factory builders, declarative Base, and FastAPI dependency.

Nothing here is created at import time: ``create_app`` builds the engine and
session factory once and parks them on ``app.state`` so tests can hand in an
in-memory store instead.
"""


from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from donor_dashboard.core.config import Settings

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
def build_engine(settings: Settings) -> AsyncEngine:
    engine_kwargs: dict = {
        "pool_pre_ping": True,
        "echo": False,
    }

    # SQLite (local dev) doesn't support connection pooling parameters
    if settings.database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}

    return create_async_engine(settings.database_url, **engine_kwargs)

# ---------------------------------------------------------------------------
# Session factory
# ---------------------------------------------------------------------------
def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )

# ---------------------------------------------------------------------------
# Declarative Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """All ORM models inherit from this base."""

# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------
def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.session_factory

async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session; roll back on error."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
