"""Connection registry and remote store resolution."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select

from objcatalog.exceptions import ConnectionNotFoundError
from objcatalog.models.connection import Connection
from objcatalog.remote.base import ConnectionCredentials
from objcatalog.schemas.connection import ConnectionCreate, ConnectionResponse
from objcatalog.services.catalog_service import purge_connection
from objcatalog.services.datetime_service import format_iso, now_utc

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from objcatalog.remote.base import RemoteStore, RemoteStoreFactory

logger = logging.getLogger(__name__)


def _to_response(connection: Connection) -> ConnectionResponse:
    return ConnectionResponse(
        id=connection.id,
        bucket=connection.bucket,
        region=connection.region,
        endpoint_url=connection.endpoint_url,
        access_key_id=connection.access_key_id,
        created_at=format_iso(connection.created_at),
        updated_at=format_iso(connection.updated_at),
    )


async def create_connection(session: AsyncSession, body: ConnectionCreate) -> ConnectionResponse:
    """Register a bucket connection."""
    now = now_utc()
    connection = Connection(
        bucket=body.bucket,
        region=body.region,
        endpoint_url=body.endpoint_url,
        access_key_id=body.access_key_id,
        secret_access_key=body.secret_access_key.get_secret_value(),
        created_at=now,
        updated_at=now,
    )
    session.add(connection)
    await session.commit()
    logger.info("Created connection %d for bucket %s", connection.id, connection.bucket)
    return _to_response(connection)


async def list_connections(session: AsyncSession) -> list[ConnectionResponse]:
    """List connections, newest first."""
    stmt = select(Connection).order_by(Connection.created_at.desc(), Connection.id.desc())
    result = await session.execute(stmt)
    return [_to_response(connection) for connection in result.scalars().all()]


async def get_connection(session: AsyncSession, connection_id: int) -> ConnectionResponse:
    """Get a connection's public representation."""
    connection = await session.get(Connection, connection_id)
    if connection is None:
        raise ConnectionNotFoundError(connection_id)
    return _to_response(connection)


async def delete_connection(session: AsyncSession, connection_id: int) -> int:
    """Delete a connection together with its catalog rows.

    Returns the number of catalog rows removed.
    """
    connection = await session.get(Connection, connection_id)
    if connection is None:
        raise ConnectionNotFoundError(connection_id)
    purged = await purge_connection(session, connection_id)
    await session.delete(connection)
    await session.commit()
    logger.info("Deleted connection %d and %d catalog rows", connection_id, purged)
    return purged


async def resolve_connection(
    session: AsyncSession, connection_id: int
) -> ConnectionCredentials | None:
    """Resolve a connection id to credentials, or None if unknown."""
    connection = await session.get(Connection, connection_id)
    if connection is None or not connection.bucket:
        return None
    return ConnectionCredentials(
        connection_id=connection.id,
        bucket=connection.bucket,
        region=connection.region,
        access_key_id=connection.access_key_id,
        secret_access_key=connection.secret_access_key,
        endpoint_url=connection.endpoint_url,
    )


async def open_remote_store(
    session: AsyncSession, connection_id: int, factory: RemoteStoreFactory
) -> RemoteStore:
    """Resolve a connection and open its remote store.

    Raises ConnectionNotFoundError before any remote or local side effect.
    """
    credentials = await resolve_connection(session, connection_id)
    if credentials is None:
        raise ConnectionNotFoundError(connection_id)
    return factory(credentials)
