"""Async database engine and session management.

The API runs on one lazily created engine per process (``get_engine``).
``build_engine``, ``session_factory_for`` and ``create_tables`` are also used
directly by the simulation and the SQL tests, which need a private in-memory
SQLite database instead of the configured one.

Escrow calls commit their own session inside the mutation guard's critical
section (see ``EscrowService(on_commit=...)``), so the request-scoped session
only has to roll back whatever a failed request left pending.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from nft_escrow.config import Settings, get_settings
from nft_escrow.infrastructure.database.orm_models import Base
from nft_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _pool_options(url: str, settings: Settings) -> dict[str, Any]:
    if url.startswith("sqlite"):
        # All sessions must share the one connection that holds an in-memory db.
        return {"poolclass": StaticPool} if ":memory:" in url else {}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_pre_ping": True,
    }


def build_engine(url: str | None = None, settings: Settings | None = None) -> AsyncEngine:
    """Create an engine for ``url`` (default: the configured database)."""
    settings = settings or get_settings()
    url = url or settings.database_url
    engine = create_async_engine(url, echo=settings.db_echo_sql, **_pool_options(url, settings))
    logger.info("database.engine_created", url=url.split("@")[-1])
    return engine


def session_factory_for(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database.tables_created")


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = session_factory_for(get_engine())
    return _session_factory


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield one session per request; uncommitted work is rolled back on error."""
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def ping() -> None:
    """Run a trivial query; raises if the database is unreachable."""
    async with get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))


async def init_db() -> None:
    """Create the engine and, in development or on SQLite, the tables.

    Production schemas are managed outside the application.
    """
    settings = get_settings()
    engine = get_engine()
    if settings.is_development or settings.is_sqlite:
        await create_tables(engine)
    else:
        logger.info("database.skipping_create_all", env=settings.app_env)


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("database.engine_disposed")
    _engine = None
    _session_factory = None
