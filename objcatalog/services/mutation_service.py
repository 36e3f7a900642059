"""Mutations applied to both the remote store and the catalog.

Each mutation validates first (no side effects on failure), then applies the
remote change, then the local one. There is no transaction spanning both
systems: create paths roll back their local row when the remote write fails,
and batch paths report what was already committed.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from dataclasses import dataclass
from datetime import UTC
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from objcatalog.exceptions import (
    InconsistentStateError,
    ObjectExistsError,
    ParentNotFoundError,
    PartialBatchError,
    RemoteTransferError,
)
from objcatalog.models.catalog import CatalogEntry, ObjectType
from objcatalog.schemas.catalog import ObjectDetail
from objcatalog.services.catalog_service import (
    delete_entries,
    expand_entries,
    get_entries,
    get_entry,
    get_entry_by_path,
    get_folder,
    new_entry,
    to_response,
    upsert_entry,
    walk_descendants,
)
from objcatalog.services.connection_service import open_remote_store
from objcatalog.services.datetime_service import format_iso, now_utc, parse_datetime
from objcatalog.services.paths import (
    folder_prefix,
    is_within,
    join_path,
    normalize_dirname,
    path_depth,
    validate_basename,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from objcatalog.remote.base import (
        ProgressCallback,
        RemoteStore,
        RemoteStoreFactory,
        TransferProgress,
    )

logger = logging.getLogger(__name__)

PREVIEW_CONTENT_TYPES = ("image/", "video/")

# Upload tasks are referenced here until they finish so they are not collected.
_background_tasks: set[asyncio.Task[UploadResult]] = set()


@dataclass
class UploadResult:
    """Completion notice for a background upload."""

    entry: CatalogEntry
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class DownloadProgress:
    """Aggregate download progress across a whole selection, in percent."""

    basename: str
    loaded: int
    total: int = 100


async def _require_parent(session: AsyncSession, connection_id: int, dirname: str) -> None:
    if dirname and await get_folder(session, connection_id, dirname) is None:
        raise ParentNotFoundError(dirname)


async def _discard_created(session: AsyncSession, entry: CatalogEntry, error: Exception) -> None:
    """Remove a row whose remote write failed."""
    path = entry.path
    try:
        await session.execute(delete(CatalogEntry).where(CatalogEntry.id == entry.id))
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Could not roll back catalog row for %s", path)
        raise InconsistentStateError(path, exc) from error
    logger.warning("Rolled back catalog row for %s after remote failure", path)


async def create_folder(
    session: AsyncSession,
    factory: RemoteStoreFactory,
    connection_id: int,
    dirname: str | None,
    basename: str,
) -> CatalogEntry:
    """Create a folder marker under ``dirname``."""
    store = await open_remote_store(session, connection_id, factory)
    name = validate_basename(basename)
    directory = normalize_dirname(dirname)
    await _require_parent(session, connection_id, directory)

    path = join_path(directory, name, folder=True)
    if await get_entry_by_path(session, connection_id, path) is not None:
        raise ObjectExistsError(path)

    entry = new_entry(connection_id, path)
    session.add(entry)
    await session.commit()

    try:
        await store.put(path, b"")
    except RemoteTransferError as exc:
        logger.error("Creating folder %s failed remotely: %s", path, exc)
        await _discard_created(session, entry, exc)
        raise
    logger.info("Created folder %s in connection %d", path, connection_id)
    return entry


async def _upload_in_background(
    session_factory: async_sessionmaker[AsyncSession],
    store: RemoteStore,
    entry: CatalogEntry,
    source: Path,
    *,
    created: bool,
    on_progress: ProgressCallback | None,
    on_complete: Callable[[UploadResult], None] | None,
) -> UploadResult:
    content_type, _ = mimetypes.guess_type(source.name)
    result = UploadResult(entry=entry)
    try:
        with source.open("rb") as stream:
            await store.put(
                entry.path, stream, content_type=content_type, on_progress=on_progress
            )
        head = await store.head(entry.path)
        async with session_factory() as session:
            stored = await session.get(CatalogEntry, entry.id)
            if stored is not None and head is not None:
                stored.size = head.content_length
                stored.storage_class = head.storage_class or stored.storage_class
                stored.last_modified = parse_datetime(head.last_modified).astimezone(UTC)
                stored.updated_at = now_utc()
                await session.commit()
                result.entry = stored
        logger.info("Uploaded %s (%d bytes)", entry.path, result.entry.size)
    except (RemoteTransferError, OSError, SQLAlchemyError) as exc:
        logger.error("Upload of %s failed: %s", entry.path, exc)
        result.error = exc
        if created:
            async with session_factory() as session:
                try:
                    await _discard_created(session, entry, exc)
                except InconsistentStateError as inconsistent:
                    result.error = inconsistent
    except Exception as exc:
        logger.exception("Upload of %s failed unexpectedly", entry.path)
        result.error = exc
        raise
    finally:
        if on_complete is not None:
            on_complete(result)
    return result


async def create_file(
    session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    factory: RemoteStoreFactory,
    connection_id: int,
    dirname: str | None,
    local_path: str | Path,
    basename: str | None = None,
    on_progress: ProgressCallback | None = None,
    on_complete: Callable[[UploadResult], None] | None = None,
) -> tuple[CatalogEntry, asyncio.Task[UploadResult]]:
    """Record a file in the catalog and upload it in the background.

    Returns the committed entry and the upload task. The task refreshes the
    entry's size and modification time from the remote store once the upload
    finishes and always calls ``on_complete``. A file already catalogued at
    the same path is overwritten, keeping its id.
    """
    store = await open_remote_store(session, connection_id, factory)
    source = Path(local_path)
    if not source.is_file():
        raise ValueError(f"Local file not found: {source}")
    name = validate_basename(basename or source.name)
    directory = normalize_dirname(dirname)
    await _require_parent(session, connection_id, directory)

    path = join_path(directory, name)
    existing = await get_entry_by_path(session, connection_id, path)
    created = existing is None
    if existing is None:
        entry = new_entry(connection_id, path)
        session.add(entry)
    else:
        # metadata stays as is until the upload succeeds
        entry = existing
        entry.updated_at = now_utc()
    await session.commit()

    task = asyncio.create_task(
        _upload_in_background(
            session_factory,
            store,
            entry,
            source,
            created=created,
            on_progress=on_progress,
            on_complete=on_complete,
        )
    )
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    logger.info("Queued upload of %s to %s", source, path)
    return entry, task


async def _delete_group(
    session: AsyncSession, store: RemoteStore, group: Sequence[CatalogEntry]
) -> None:
    if not group:
        return
    outcomes = await store.delete_many([entry.path for entry in group])
    failed = [outcome for outcome in outcomes if not outcome.deleted]
    if failed:
        first = failed[0]
        raise RemoteTransferError("delete", first.key, first.error or "not deleted")
    await delete_entries(session, [entry.id for entry in group])
    await session.commit()


async def delete_objects(
    session: AsyncSession,
    factory: RemoteStoreFactory,
    connection_id: int,
    ids: Sequence[str],
) -> list[CatalogEntry]:
    """Delete objects, expanding folders to their whole subtree.

    Files go first, remote then local; folders follow deepest first so a
    marker never disappears while keys beneath it remain. Returns the
    deleted entries in that order.
    """
    store = await open_remote_store(session, connection_id, factory)
    entries = await get_entries(session, connection_id, ids)
    expanded = await expand_entries(session, entries)

    files = [entry for entry in expanded if entry.type == ObjectType.FILE]
    folders = sorted(
        (entry for entry in expanded if entry.type == ObjectType.FOLDER),
        key=lambda entry: (-path_depth(entry.path), entry.path),
    )
    await _delete_group(session, store, files)
    await _delete_group(session, store, folders)
    logger.info(
        "Deleted %d files and %d folders from connection %d",
        len(files),
        len(folders),
        connection_id,
    )
    return files + folders


async def _plan_copy(
    session: AsyncSession, sources: Sequence[CatalogEntry], target_prefix: str
) -> list[tuple[CatalogEntry, str]]:
    """Map every source (folders expanded) to its destination key."""
    plan: list[tuple[CatalogEntry, str]] = []
    for source in sources:
        if source.type == ObjectType.FOLDER:
            if is_within(target_prefix, source.path):
                raise ValueError(f'Cannot copy folder "{source.path}" into itself')
            strip = len(source.path)
            for item in await walk_descendants(session, source):
                # the folder itself maps onto the existing target folder
                if item.path == source.path:
                    continue
                plan.append((item, target_prefix + item.path[strip:]))
        else:
            plan.append((source, target_prefix + source.basename))

    for item, dest in plan:
        if item.path == dest:
            raise ValueError(f'"{item.path}" is already in the target folder')
    return plan


async def _copy_one(
    store: RemoteStore, connection_id: int, item: CatalogEntry, dest: str
) -> CatalogEntry:
    if item.type == ObjectType.FOLDER:
        await store.put(dest, b"")
        return new_entry(connection_id, dest, storage_class=item.storage_class)

    await store.copy(item.path, dest)
    head = await store.head(dest)
    if head is None:
        return new_entry(
            connection_id,
            dest,
            last_modified=item.last_modified,
            size=item.size,
            storage_class=item.storage_class,
        )
    return new_entry(
        connection_id,
        dest,
        last_modified=head.last_modified,
        size=head.content_length,
        storage_class=head.storage_class or item.storage_class,
    )


async def copy_objects(
    session: AsyncSession,
    factory: RemoteStoreFactory,
    connection_id: int,
    source_ids: Sequence[str],
    target_dirname: str | None,
    move: bool = False,
) -> list[CatalogEntry]:
    """Copy (or move) objects into ``target_dirname``, one item at a time.

    A folder contributes its whole subtree with the folder's own prefix
    stripped: ``a/b/c.txt`` copied from folder ``a/b/`` into ``x`` lands at
    ``x/c.txt``. Every destination row is committed before the
    next item starts. The first failure stops the sequence; if anything was
    already committed it is reported through ``PartialBatchError``. Sources
    of a move are deleted only after every copy succeeded.
    """
    store = await open_remote_store(session, connection_id, factory)
    sources = await get_entries(session, connection_id, source_ids)
    target = normalize_dirname(target_dirname)
    await _require_parent(session, connection_id, target)
    plan = await _plan_copy(session, sources, folder_prefix(target))

    completed: list[CatalogEntry] = []
    for item, dest in plan:
        source_path = item.path
        try:
            stored = await upsert_entry(session, await _copy_one(store, connection_id, item, dest))
            await session.commit()
        except (RemoteTransferError, SQLAlchemyError) as exc:
            await session.rollback()
            logger.error("Copy of %s to %s failed: %s", source_path, dest, exc)
            if completed:
                raise PartialBatchError(completed, dest, exc) from exc
            raise
        session.expunge(stored)
        completed.append(stored)
        logger.debug("Copied %s to %s", source_path, dest)

    logger.info(
        "%s %d objects into %r in connection %d",
        "Moved" if move else "Copied",
        len(completed),
        target,
        connection_id,
    )
    if move:
        await delete_objects(session, factory, connection_id, [source.id for source in sources])
    return completed


async def get_object(
    session: AsyncSession,
    factory: RemoteStoreFactory,
    connection_id: int,
    object_id: str,
    expires_in: int = 3600,
) -> ObjectDetail:
    """Entry details with live remote metadata and a preview URL for media."""
    store = await open_remote_store(session, connection_id, factory)
    entry = await get_entry(session, connection_id, object_id)
    detail = ObjectDetail(**to_response(entry).model_dump())
    if entry.type == ObjectType.FOLDER:
        return detail

    head = await store.head(entry.path)
    if head is None:
        logger.warning("Object %s is catalogued but missing remotely", entry.path)
        return detail

    detail.content_type = head.content_type
    detail.etag = head.etag
    detail.remote_size = head.content_length
    if head.last_modified is not None:
        detail.remote_last_modified = format_iso(parse_datetime(head.last_modified))
    if head.content_type and head.content_type.startswith(PREVIEW_CONTENT_TYPES):
        detail.url = await store.presign_get(entry.path, expires_in)
    return detail


def _scaled_progress(
    on_progress: Callable[[DownloadProgress], None] | None,
    name: str,
    offset: int,
    percent: Callable[[int], int],
) -> ProgressCallback | None:
    """Translate per-file byte progress into selection-wide percentages."""
    if on_progress is None:
        return None

    def _report(progress: TransferProgress) -> None:
        on_progress(DownloadProgress(name, percent(offset + progress.loaded)))

    return _report


def _download_target(root: Path, entry: CatalogEntry, prefix: str) -> Path:
    relative = entry.path
    if prefix and relative.startswith(prefix):
        relative = relative[len(prefix) :]
    target = (root / relative).resolve()
    if target == root or not target.is_relative_to(root):
        raise ValueError(f'Refusing to write "{entry.path}" outside {root}')
    return target


async def download_objects(
    session: AsyncSession,
    factory: RemoteStoreFactory,
    connection_id: int,
    ids: Sequence[str],
    local_dir: str | Path,
    dirname: str | None = "",
    on_progress: Callable[[DownloadProgress], None] | None = None,
) -> list[Path]:
    """Download files (folders expanded) into ``local_dir``, one at a time.

    Local paths mirror remote keys relative to ``dirname``. Progress is
    reported as a single percentage over the whole selection.
    """
    store = await open_remote_store(session, connection_id, factory)
    entries = await get_entries(session, connection_id, ids)
    files = [
        entry for entry in await expand_entries(session, entries) if entry.type == ObjectType.FILE
    ]
    root = Path(local_dir).resolve()
    prefix = folder_prefix(dirname)
    plan = [(entry, _download_target(root, entry, prefix)) for entry in files]

    total_bytes = sum(entry.size for entry, _ in plan)

    def _percent(loaded: int) -> int:
        if total_bytes <= 0:
            return 100
        return min(100, loaded * 100 // total_bytes)

    done_bytes = 0
    written: list[Path] = []
    for entry, target in plan:
        target.parent.mkdir(parents=True, exist_ok=True)
        file_progress = _scaled_progress(on_progress, entry.basename, done_bytes, _percent)
        with target.open("wb") as sink:
            await store.get(entry.path, sink, on_progress=file_progress)
        done_bytes += entry.size
        written.append(target)
        if on_progress is not None:
            on_progress(DownloadProgress(entry.basename, _percent(done_bytes)))
        logger.debug("Downloaded %s to %s", entry.path, target)

    logger.info("Downloaded %d files from connection %d", len(written), connection_id)
    return written
