"""Tests for the catalog index handle and session management."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import inspect, text

from objcatalog.config import Settings
from objcatalog.database import close_index, get_session, open_index

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

    from objcatalog.database import CatalogIndex


class TestDatabase:
    @pytest.mark.asyncio
    async def test_engine_connects(self, db_engine: AsyncEngine) -> None:
        async with db_engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            assert result.scalar() == 1

    @pytest.mark.asyncio
    async def test_session_works(self, db_session: AsyncSession) -> None:
        result = await db_session.execute(text("SELECT 42"))
        assert result.scalar() == 42

    @pytest.mark.asyncio
    async def test_sqlite_wal_mode(self, db_engine: AsyncEngine) -> None:
        async with db_engine.connect() as conn:
            result = await conn.execute(text("PRAGMA journal_mode"))
            assert result.scalar() == "wal"


class TestCatalogIndex:
    @pytest.mark.asyncio
    async def test_open_creates_directory_and_schema(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "dir" / "catalog.db"
        settings = Settings(_env_file=None, database_url=f"sqlite+aiosqlite:///{db_path}")
        index = await open_index(settings)
        try:
            assert db_path.parent.is_dir()
            async with index.engine.connect() as conn:
                tables = await conn.run_sync(lambda sync: inspect(sync).get_table_names())
                indexes = await conn.run_sync(
                    lambda sync: {ix["name"] for ix in inspect(sync).get_indexes("catalog_entries")}
                )
            assert {"catalog_entries", "connections"} <= set(tables)
            assert {"uq_catalog_connection_path", "idx_catalog_listing"} <= indexes
        finally:
            await close_index(index)

    @pytest.mark.asyncio
    async def test_reopen_keeps_data(self, test_settings: Settings) -> None:
        index = await open_index(test_settings)
        async with index.session_factory() as session:
            await session.execute(
                text(
                    "INSERT INTO connections (region, bucket, access_key_id, "
                    "secret_access_key, created_at, updated_at) "
                    "VALUES ('r', 'b', 'k', 's', '2024-01-01', '2024-01-01')"
                )
            )
            await session.commit()
        await close_index(index)

        reopened = await open_index(test_settings)
        try:
            async with reopened.session_factory() as session:
                count = (await session.execute(text("SELECT COUNT(*) FROM connections"))).scalar()
            assert count == 1
        finally:
            await close_index(reopened)

    @pytest.mark.asyncio
    async def test_get_session_yields_session(self, catalog_index: CatalogIndex) -> None:
        sessions = get_session(catalog_index.session_factory)
        session = await anext(sessions)
        assert (await session.execute(text("SELECT 1"))).scalar() == 1
        await sessions.aclose()
