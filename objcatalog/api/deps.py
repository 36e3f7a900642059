"""Shared API dependencies: settings, DB session, remote store factory."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from objcatalog.config import Settings
from objcatalog.remote.base import RemoteStoreFactory


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Get the catalog session factory, for work that outlives the request."""
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    return session_factory


def get_remote_factory(request: Request) -> RemoteStoreFactory:
    """Get the remote store factory installed at startup."""
    factory: RemoteStoreFactory = request.app.state.remote_factory
    return factory


async def get_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """Get a database session."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session
