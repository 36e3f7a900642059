"""Remote object store capability: protocol and data classes."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import IO, Protocol, runtime_checkable


@dataclass(frozen=True)
class ConnectionCredentials:
    """Resolved bucket scope and credentials for one connection."""

    connection_id: int
    bucket: str
    region: str
    access_key_id: str
    secret_access_key: str = field(repr=False)
    endpoint_url: str | None = None


@dataclass
class RemoteObject:
    """One key as reported by a listing page."""

    key: str
    size: int | None = None
    last_modified: datetime | None = None
    storage_class: str | None = None


@dataclass
class ListPage:
    """One page of the flat key space."""

    objects: list[RemoteObject]
    next_token: str | None = None


@dataclass
class ObjectHead:
    """Metadata for a single remote object."""

    key: str
    content_length: int = 0
    last_modified: datetime | None = None
    content_type: str | None = None
    storage_class: str | None = None
    etag: str | None = None


@dataclass
class DeleteOutcome:
    """Per-key result of a batch delete."""

    key: str
    deleted: bool
    error: str | None = None


@dataclass
class TransferProgress:
    """Bytes moved so far for one upload or download."""

    key: str
    loaded: int
    total: int | None = None


ProgressCallback = Callable[[TransferProgress], None]


@runtime_checkable
class RemoteStore(Protocol):
    """Capability interface over a flat key-value object store.

    Every method raises ``RemoteTransferError`` when the remote call fails.
    """

    async def list_page(self, continuation_token: str | None = None) -> ListPage:
        """Return one page of keys; follow ``next_token`` until it is None."""
        ...

    async def head(self, key: str) -> ObjectHead | None:
        """Return object metadata, or None if the key does not exist."""
        ...

    async def get(
        self,
        key: str,
        sink: IO[bytes],
        on_progress: ProgressCallback | None = None,
    ) -> ObjectHead:
        """Stream the object's bytes into ``sink``."""
        ...

    async def put(
        self,
        key: str,
        content: bytes | IO[bytes],
        *,
        content_type: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Write an object from bytes or a readable binary stream."""
        ...

    async def copy(self, source_key: str, dest_key: str) -> None:
        """Server-side copy within the same bucket."""
        ...

    async def delete_many(self, keys: list[str]) -> list[DeleteOutcome]:
        """Delete keys in order; missing keys count as deleted."""
        ...

    async def presign_get(self, key: str, expires_in: int) -> str:
        """Return a time-limited download URL."""
        ...


RemoteStoreFactory = Callable[[ConnectionCredentials], RemoteStore]
