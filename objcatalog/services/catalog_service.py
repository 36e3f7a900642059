"""Catalog index: entry construction, upserts, lookups and subtree walks."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from datetime import UTC
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from objcatalog.exceptions import ObjectNotFoundError
from objcatalog.models.catalog import DEFAULT_STORAGE_CLASS, CatalogEntry, ObjectType
from objcatalog.schemas.catalog import CatalogEntryResponse
from objcatalog.services.datetime_service import format_iso, now_utc, parse_datetime
from objcatalog.services.paths import folder_prefix, is_folder_key, split_path

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Columns refreshed when an existing (connection_id, path) row is upserted.
_UPSERT_REFRESH = ("type", "last_modified", "size", "storage_class", "updated_at")
_ID_CHUNK = 500


def new_entry(
    connection_id: int,
    path: str,
    *,
    last_modified: datetime | None = None,
    size: int | None = None,
    storage_class: str | None = None,
    updated_at: datetime | None = None,
) -> CatalogEntry:
    """Build a fully-derived catalog entry for ``path``.

    Type, dirname and basename are derived from the key; absent metadata gets
    the catalog defaults (epoch, zero bytes, STANDARD). Folders are always
    zero bytes.
    """
    folder = is_folder_key(path)
    dirname, basename = split_path(path)
    return CatalogEntry(
        id=str(uuid.uuid4()),
        connection_id=connection_id,
        type=ObjectType.FOLDER if folder else ObjectType.FILE,
        path=path,
        dirname=dirname,
        basename=basename,
        last_modified=parse_datetime(last_modified).astimezone(UTC),
        size=0 if folder else (size or 0),
        storage_class=storage_class or DEFAULT_STORAGE_CLASS,
        updated_at=updated_at or now_utc(),
    )


def to_response(entry: CatalogEntry) -> CatalogEntryResponse:
    """Public (non-secret) representation of an entry."""
    return CatalogEntryResponse(
        id=entry.id,
        connection_id=entry.connection_id,
        type="folder" if entry.type == ObjectType.FOLDER else "file",
        path=entry.path,
        dirname=entry.dirname,
        basename=entry.basename,
        last_modified=format_iso(entry.last_modified),
        size=entry.size,
        storage_class=entry.storage_class,
        updated_at=format_iso(entry.updated_at),
    )


def _row(entry: CatalogEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "connection_id": entry.connection_id,
        "type": int(entry.type),
        "path": entry.path,
        "dirname": entry.dirname,
        "basename": entry.basename,
        "last_modified": entry.last_modified,
        "size": entry.size,
        "storage_class": entry.storage_class,
        "updated_at": entry.updated_at,
    }


async def upsert_entries(
    session: AsyncSession,
    entries: Sequence[CatalogEntry],
    *,
    batch_size: int = 500,
) -> int:
    """Insert or refresh entries keyed by ``(connection_id, path)``.

    Existing rows keep their id. The caller owns the transaction; nothing is
    committed here. Entries in one call must have distinct keys.
    """
    for start in range(0, len(entries), batch_size):
        batch = entries[start : start + batch_size]
        stmt = sqlite_insert(CatalogEntry).values([_row(entry) for entry in batch])
        stmt = stmt.on_conflict_do_update(
            index_elements=["connection_id", "path"],
            set_={column: stmt.excluded[column] for column in _UPSERT_REFRESH},
        )
        await session.execute(stmt)
    return len(entries)


async def upsert_entry(session: AsyncSession, entry: CatalogEntry) -> CatalogEntry:
    """Upsert one entry and return the stored row."""
    await upsert_entries(session, [entry])
    stored = await get_entry_by_path(session, entry.connection_id, entry.path)
    if stored is None:
        raise ObjectNotFoundError([entry.path])
    await session.refresh(stored)
    return stored


async def evict_stale(session: AsyncSession, connection_id: int, before: datetime) -> int:
    """Delete a connection's rows whose ``updated_at`` is older than ``before``."""
    stmt = (
        delete(CatalogEntry)
        .where(
            CatalogEntry.connection_id == connection_id,
            CatalogEntry.updated_at < before,
        )
        .execution_options(synchronize_session="fetch")
    )
    result = await session.execute(stmt)
    return result.rowcount or 0


async def get_entry(session: AsyncSession, connection_id: int, entry_id: str) -> CatalogEntry:
    """Get one entry of a connection by id."""
    stmt = select(CatalogEntry).where(
        CatalogEntry.connection_id == connection_id, CatalogEntry.id == entry_id
    )
    entry = (await session.execute(stmt)).scalar_one_or_none()
    if entry is None:
        raise ObjectNotFoundError([entry_id])
    return entry


async def get_entries(
    session: AsyncSession, connection_id: int, ids: Iterable[str]
) -> list[CatalogEntry]:
    """Resolve ids to entries in request order (duplicates collapsed).

    Raises ObjectNotFoundError naming every id that is missing.
    """
    wanted = list(dict.fromkeys(ids))
    found: dict[str, CatalogEntry] = {}
    for start in range(0, len(wanted), _ID_CHUNK):
        chunk = wanted[start : start + _ID_CHUNK]
        stmt = select(CatalogEntry).where(
            CatalogEntry.connection_id == connection_id, CatalogEntry.id.in_(chunk)
        )
        for entry in (await session.execute(stmt)).scalars():
            found[entry.id] = entry

    missing = [entry_id for entry_id in wanted if entry_id not in found]
    if missing:
        raise ObjectNotFoundError(missing)
    return [found[entry_id] for entry_id in wanted]


async def get_entry_by_path(
    session: AsyncSession, connection_id: int, path: str
) -> CatalogEntry | None:
    stmt = select(CatalogEntry).where(
        CatalogEntry.connection_id == connection_id, CatalogEntry.path == path
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def get_folder(
    session: AsyncSession, connection_id: int, dirname: str
) -> CatalogEntry | None:
    """Return the FOLDER entry for ``dirname`` (None for the root or if absent)."""
    path = folder_prefix(dirname)
    if not path:
        return None
    entry = await get_entry_by_path(session, connection_id, path)
    if entry is None or entry.type != ObjectType.FOLDER:
        return None
    return entry


async def walk_descendants(session: AsyncSession, folder: CatalogEntry) -> list[CatalogEntry]:
    """Return ``folder`` and every entry beneath it, in ascending path order.

    Walks the tree level by level through exact ``dirname`` matches, so the
    result never depends on the storage engine's pattern-matching rules.
    """
    found: list[CatalogEntry] = [folder]
    level = [folder.path[:-1]]
    while level:
        next_level: list[str] = []
        for start in range(0, len(level), _ID_CHUNK):
            chunk = level[start : start + _ID_CHUNK]
            stmt = select(CatalogEntry).where(
                CatalogEntry.connection_id == folder.connection_id,
                CatalogEntry.dirname.in_(chunk),
            )
            for child in (await session.execute(stmt)).scalars():
                found.append(child)
                if child.type == ObjectType.FOLDER:
                    next_level.append(child.path[:-1])
        level = next_level
    found.sort(key=lambda entry: entry.path)
    return found


async def expand_entries(
    session: AsyncSession, entries: Iterable[CatalogEntry]
) -> list[CatalogEntry]:
    """Expand folders into their subtrees; each entry appears once."""
    expanded: dict[str, CatalogEntry] = {}
    for entry in entries:
        if entry.type == ObjectType.FOLDER:
            for descendant in await walk_descendants(session, entry):
                expanded.setdefault(descendant.id, descendant)
        else:
            expanded.setdefault(entry.id, entry)
    return list(expanded.values())


async def delete_entries(session: AsyncSession, ids: Sequence[str]) -> int:
    """Delete rows by id. The caller owns the transaction."""
    deleted = 0
    for start in range(0, len(ids), _ID_CHUNK):
        chunk = list(ids[start : start + _ID_CHUNK])
        result = await session.execute(delete(CatalogEntry).where(CatalogEntry.id.in_(chunk)))
        deleted += result.rowcount or 0
    return deleted


async def purge_connection(session: AsyncSession, connection_id: int) -> int:
    """Delete every row of a connection. The caller owns the transaction."""
    result = await session.execute(
        delete(CatalogEntry).where(CatalogEntry.connection_id == connection_id)
    )
    return result.rowcount or 0
