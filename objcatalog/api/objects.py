"""Object (catalog entry) API endpoints."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path as FilePath
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from objcatalog.api.deps import get_remote_factory, get_session, get_session_factory, get_settings
from objcatalog.config import Settings
from objcatalog.remote.base import RemoteStoreFactory, TransferProgress
from objcatalog.schemas.catalog import (
    CatalogEntryResponse,
    CopyRequest,
    DeleteRequest,
    FolderCreate,
    ObjectDetail,
    ObjectPage,
)
from objcatalog.services.catalog_service import to_response
from objcatalog.services.mutation_service import (
    UploadResult,
    copy_objects,
    create_file,
    create_folder,
    delete_objects,
    get_object,
)
from objcatalog.services.query_service import get_objects

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/connections/{connection_id}", tags=["objects"])

_SPOOL_CHUNK_SIZE = 1024 * 1024


@router.get("/objects", response_model=ObjectPage)
async def list_objects_endpoint(
    connection_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    dirname: str = Query("", max_length=1024),
    keyword: str | None = Query(None, max_length=512),
    after: str | None = Query(None, max_length=36),
    limit: int | None = Query(None, ge=1),
) -> ObjectPage:
    """List one page of a folder, or search its subtree when a keyword is given."""
    page_limit = min(limit or settings.default_page_limit, settings.max_page_limit)
    return await get_objects(
        session, connection_id, dirname=dirname, keyword=keyword, after=after, limit=page_limit
    )


@router.get("/objects/{object_id}", response_model=ObjectDetail)
async def get_object_endpoint(
    connection_id: int,
    object_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    factory: Annotated[RemoteStoreFactory, Depends(get_remote_factory)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ObjectDetail:
    """Get an object with live remote metadata."""
    return await get_object(
        session,
        factory,
        connection_id,
        object_id,
        expires_in=settings.presign_expires_seconds,
    )


@router.post("/folders", response_model=CatalogEntryResponse, status_code=201)
async def create_folder_endpoint(
    connection_id: int,
    body: FolderCreate,
    session: Annotated[AsyncSession, Depends(get_session)],
    factory: Annotated[RemoteStoreFactory, Depends(get_remote_factory)],
) -> CatalogEntryResponse:
    """Create a folder."""
    entry = await create_folder(session, factory, connection_id, body.dirname, body.basename)
    return to_response(entry)


async def _spool_upload(upload: UploadFile, spool_dir: FilePath | None) -> FilePath:
    """Copy an uploaded body to a temporary file that outlives the request."""
    if spool_dir is not None:
        spool_dir.mkdir(parents=True, exist_ok=True)
    suffix = FilePath(upload.filename or "").suffix
    fd, name = tempfile.mkstemp(prefix="objcatalog-", suffix=suffix, dir=spool_dir)
    spooled = FilePath(name)
    try:
        with os.fdopen(fd, "wb") as fh:
            while chunk := await upload.read(_SPOOL_CHUNK_SIZE):
                fh.write(chunk)
    except OSError:
        spooled.unlink(missing_ok=True)
        raise
    return spooled


@router.post("/files", response_model=CatalogEntryResponse, status_code=202)
async def upload_file_endpoint(
    connection_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    factory: Annotated[RemoteStoreFactory, Depends(get_remote_factory)],
    settings: Annotated[Settings, Depends(get_settings)],
    file: Annotated[UploadFile, File()],
    dirname: Annotated[str, Form(max_length=1024)] = "",
    basename: Annotated[str | None, Form(max_length=255)] = None,
) -> CatalogEntryResponse:
    """Accept a file and upload it to the bucket in the background.

    The catalog entry is returned immediately; its size and modification time
    are refreshed once the transfer completes.
    """
    spooled = await _spool_upload(file, settings.upload_spool_dir)
    name = basename or FilePath(file.filename or "").name

    def _on_progress(progress: TransferProgress) -> None:
        logger.debug("Upload %s: %d/%s bytes", progress.key, progress.loaded, progress.total)

    def _on_complete(result: UploadResult) -> None:
        spooled.unlink(missing_ok=True)
        if result.error is not None:
            logger.warning("Background upload of %s failed: %s", result.entry.path, result.error)

    try:
        entry, _task = await create_file(
            session,
            session_factory,
            factory,
            connection_id,
            dirname,
            spooled,
            basename=name,
            on_progress=_on_progress,
            on_complete=_on_complete,
        )
    except Exception:
        spooled.unlink(missing_ok=True)
        raise
    return to_response(entry)


@router.post("/objects/delete", response_model=list[CatalogEntryResponse])
async def delete_objects_endpoint(
    connection_id: int,
    body: DeleteRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    factory: Annotated[RemoteStoreFactory, Depends(get_remote_factory)],
) -> list[CatalogEntryResponse]:
    """Delete objects; folders take their whole subtree with them."""
    deleted = await delete_objects(session, factory, connection_id, body.ids)
    return [to_response(entry) for entry in deleted]


@router.post("/objects/copy", response_model=list[CatalogEntryResponse])
async def copy_objects_endpoint(
    connection_id: int,
    body: CopyRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    factory: Annotated[RemoteStoreFactory, Depends(get_remote_factory)],
) -> list[CatalogEntryResponse]:
    """Copy or move objects into a target folder."""
    created = await copy_objects(
        session,
        factory,
        connection_id,
        body.source_ids,
        body.target_dirname,
        move=body.move,
    )
    return [to_response(entry) for entry in created]
