"""
Process-wide async engine and the unit-of-work helper.

The signature core never opens sessions itself: callers own the
transaction and hand an ``AsyncSession`` to the services. ``session_scope``
is the default way to get one.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from clinsign.config.settings import Settings, get_settings
from clinsign.db.base import Base

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _build_engine_kwargs(settings: Settings) -> dict[str, Any]:
    """Pool sizing applies to server databases only; SQLite gets thread-sharing instead."""
    kwargs: dict[str, Any] = {"echo": settings.db_echo}
    if make_url(settings.database_url).get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        return kwargs
    kwargs.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )
    return kwargs


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    global _engine
    if _engine is None:
        cfg = settings or get_settings()
        _engine = create_async_engine(cfg.database_url, **_build_engine_kwargs(cfg))
    return _engine


def get_session_factory(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(settings),
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


@asynccontextmanager
async def session_scope(settings: Settings | None = None) -> AsyncIterator[AsyncSession]:
    """
    One transaction: commit when the block exits cleanly, roll back on any error.

    A signature row and its audit entry are written in the same scope, so
    a ``SignatureAuditError`` raised inside the block undoes the signature
    as well.
    """
    async with get_session_factory(settings)() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        await session.commit()


async def init_models(settings: Settings | None = None) -> None:
    """Create missing tables. Schema migrations belong to the host platform."""
    import clinsign.db.models  # noqa: F401  (registers mappers)

    async with get_engine(settings).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
