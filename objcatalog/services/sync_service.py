"""Catalog synchronization: full remote listing -> local catalog refresh."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from objcatalog.services.catalog_service import evict_stale, new_entry, upsert_entries
from objcatalog.services.connection_service import open_remote_store
from objcatalog.services.datetime_service import now_utc
from objcatalog.services.paths import ancestor_folders, is_folder_key

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from objcatalog.models.catalog import CatalogEntry
    from objcatalog.remote.base import RemoteObject, RemoteStore, RemoteStoreFactory

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Counts reported by one sync pass."""

    listed: int
    upserted: int
    evicted: int


def expand_listing(
    connection_id: int,
    objects: Iterable[RemoteObject],
    *,
    updated_at: datetime | None = None,
) -> list[CatalogEntry]:
    """Turn listed keys into catalog entries, adding every implied folder.

    Files are always kept. A folder path is emitted once: the first
    occurrence wins, so an explicit marker listed before its children keeps
    its own metadata and synthesized duplicates are dropped.
    """
    stamp = updated_at or now_utc()
    seen_folders: set[str] = set()
    entries: list[CatalogEntry] = []

    def _add_folder(path: str, obj: RemoteObject | None) -> None:
        if path in seen_folders:
            return
        seen_folders.add(path)
        if obj is None:
            entries.append(new_entry(connection_id, path, updated_at=stamp))
        else:
            entries.append(
                new_entry(
                    connection_id,
                    path,
                    last_modified=obj.last_modified,
                    storage_class=obj.storage_class,
                    updated_at=stamp,
                )
            )

    for obj in objects:
        for folder in ancestor_folders(obj.key):
            _add_folder(folder, None)
        if is_folder_key(obj.key):
            _add_folder(obj.key, obj)
        else:
            entries.append(
                new_entry(
                    connection_id,
                    obj.key,
                    last_modified=obj.last_modified,
                    size=obj.size,
                    storage_class=obj.storage_class,
                    updated_at=stamp,
                )
            )
    return entries


async def list_all(store: RemoteStore) -> list[RemoteObject]:
    """Follow continuation tokens until the listing is exhausted."""
    objects: list[RemoteObject] = []
    token: str | None = None
    while True:
        page = await store.list_page(token)
        objects.extend(page.objects)
        token = page.next_token
        if not token:
            return objects


async def sync_connection(
    session: AsyncSession,
    factory: RemoteStoreFactory,
    connection_id: int,
    *,
    batch_size: int = 500,
) -> SyncResult:
    """Mirror the connection's full key space into the catalog.

    Listing failures propagate before anything is written. Upserts and
    eviction share one transaction; on failure it is rolled back and the
    catalog keeps its previous state.
    """
    store = await open_remote_store(session, connection_id, factory)
    sync_start = now_utc()

    objects = await list_all(store)
    entries = expand_listing(connection_id, objects)

    try:
        upserted = await upsert_entries(session, entries, batch_size=batch_size)
        evicted = await evict_stale(session, connection_id, sync_start)
        await session.commit()
    except Exception:
        await session.rollback()
        logger.exception("Sync of connection %d failed; catalog left unchanged", connection_id)
        raise

    logger.info(
        "Synced connection %d: listed=%d upserted=%d evicted=%d",
        connection_id,
        len(objects),
        upserted,
        evicted,
    )
    return SyncResult(listed=len(objects), upserted=upserted, evicted=evicted)
