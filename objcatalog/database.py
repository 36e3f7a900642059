"""Database engine, session management, and the catalog index handle."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from objcatalog.models.base import Base

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from objcatalog.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class CatalogIndex:
    """Open handle to the local catalog database."""

    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]


def _sqlite_file(database_url: str) -> Path | None:
    if not database_url.startswith("sqlite") or "///" not in database_url:
        return None
    db_path = database_url.split("///", 1)[-1]
    if not db_path or db_path == ":memory:":
        return None
    return Path(db_path)


def create_engine(
    settings: Settings,
) -> tuple[
    AsyncEngine,
    async_sessionmaker[AsyncSession],
]:
    """Create async engine and session factory.

    Returns (engine, session_factory) tuple.
    """
    engine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
    )
    if engine.dialect.name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, _record) -> None:  # type: ignore[no-untyped-def]
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory


async def open_index(settings: Settings) -> CatalogIndex:
    """Open the catalog database, creating its directory and schema if needed."""
    db_path = _sqlite_file(settings.database_url)
    if db_path is not None:
        db_path.parent.mkdir(parents=True, exist_ok=True)

    engine, session_factory = create_engine(settings)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception:
        await engine.dispose()
        raise
    logger.info("Catalog index opened at %s", db_path or settings.database_url)
    return CatalogIndex(engine=engine, session_factory=session_factory)


async def close_index(index: CatalogIndex) -> None:
    """Dispose of the engine behind a catalog index handle."""
    await index.engine.dispose()
    logger.info("Catalog index closed")


async def get_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Yield an async database session."""
    async with session_factory() as session:
        yield session
