"""Connection API endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from objcatalog.api.deps import get_remote_factory, get_session, get_settings
from objcatalog.config import Settings
from objcatalog.remote.base import RemoteStoreFactory
from objcatalog.schemas.catalog import SyncResponse
from objcatalog.schemas.connection import ConnectionCreate, ConnectionResponse
from objcatalog.services.connection_service import (
    create_connection,
    delete_connection,
    get_connection,
    list_connections,
)
from objcatalog.services.sync_service import sync_connection

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/connections", tags=["connections"])


@router.post("", response_model=ConnectionResponse, status_code=201)
async def create_connection_endpoint(
    body: ConnectionCreate,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ConnectionResponse:
    """Register a bucket connection."""
    return await create_connection(session, body)


@router.get("", response_model=list[ConnectionResponse])
async def list_connections_endpoint(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> list[ConnectionResponse]:
    """List connections, newest first."""
    return await list_connections(session)


@router.get("/{connection_id}", response_model=ConnectionResponse)
async def get_connection_endpoint(
    connection_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ConnectionResponse:
    """Get a single connection."""
    return await get_connection(session, connection_id)


@router.delete("/{connection_id}", status_code=204)
async def delete_connection_endpoint(
    connection_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Response:
    """Delete a connection and forget its catalog."""
    await delete_connection(session, connection_id)
    return Response(status_code=204)


@router.post("/{connection_id}/sync", response_model=SyncResponse)
async def sync_connection_endpoint(
    connection_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    factory: Annotated[RemoteStoreFactory, Depends(get_remote_factory)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SyncResponse:
    """Refresh the catalog from a full listing of the bucket."""
    result = await sync_connection(
        session, factory, connection_id, batch_size=settings.sync_batch_size
    )
    return SyncResponse(
        connection_id=connection_id,
        listed=result.listed,
        upserted=result.upserted,
        evicted=result.evicted,
    )
