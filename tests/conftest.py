"""Shared test fixtures for objcatalog."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient

from objcatalog.config import Settings
from objcatalog.database import close_index, open_index
from objcatalog.main import create_app
from objcatalog.services.connection_service import create_connection
from tests.remote_fakes import FakeRemoteStore, connection_body

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

    from objcatalog.database import CatalogIndex
    from objcatalog.remote.base import RemoteStoreFactory


@asynccontextmanager
async def create_test_client(
    settings: Settings, remote_factory: RemoteStoreFactory
) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with a fully initialized app.

    Manually performs the work of the application lifespan because
    ASGITransport does not trigger it.
    """
    app = create_app(settings, remote_factory=remote_factory)
    settings.validate_runtime()

    index = await open_index(settings)
    app.state.index = index
    app.state.engine = index.engine
    app.state.session_factory = index.session_factory

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    await close_index(index)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with temporary paths."""
    db_path = tmp_path / "db" / "test.db"
    return Settings(
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        upload_spool_dir=tmp_path / "spool",
    )


@pytest.fixture
async def catalog_index(test_settings: Settings) -> AsyncGenerator[CatalogIndex]:
    """Open a fresh catalog database."""
    index = await open_index(test_settings)
    yield index
    await close_index(index)


@pytest.fixture
def db_engine(catalog_index: CatalogIndex) -> AsyncEngine:
    return catalog_index.engine


@pytest.fixture
def session_factory(catalog_index: CatalogIndex) -> async_sessionmaker[AsyncSession]:
    return catalog_index.session_factory


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_store() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def remote_factory(fake_store: FakeRemoteStore) -> RemoteStoreFactory:
    return fake_store.factory()


@pytest.fixture
async def connection_id(db_session: AsyncSession) -> int:
    """A registered connection for the fake store."""
    created = await create_connection(db_session, connection_body())
    return created.id
