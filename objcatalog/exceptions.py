"""Application-level exception types.

Convention:
- ``CatalogError`` subclasses describe expected failures of catalog, sync and
  mutation operations. ``main.py`` maps each of them to an HTTP status and a
  client-safe detail.
- ``InternalServerError``: for errors whose details must never reach clients.
  The global handler logs the full message at ERROR and returns a generic
  "Internal server error" (500) to the client.
- ``ValueError``: for *business logic* validation errors that are safe to
  forward to clients (bad names, copying a folder into itself, etc.).  The
  global ``ValueError`` handler returns ``str(exc)`` as the 422 detail.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from objcatalog.models.catalog import CatalogEntry


class InternalServerError(Exception):
    """Raised for internal errors whose details must not be exposed to clients.

    The global exception handler in ``objcatalog/main.py`` catches this, logs
    the full message server-side, and returns HTTP 500 with a generic
    ``"Internal server error"`` detail.
    """


class CatalogError(Exception):
    """Base class for expected catalog, sync and mutation failures."""


class ConnectionNotFoundError(CatalogError):
    """The connection id does not resolve to stored credentials."""

    def __init__(self, connection_id: int) -> None:
        self.connection_id = connection_id
        super().__init__(f"Connection {connection_id} not found")


class ParentNotFoundError(CatalogError):
    """A referenced parent folder is missing from the catalog."""

    def __init__(self, dirname: str) -> None:
        self.dirname = dirname
        super().__init__(f'Parent folder "{dirname}" not found')


class ObjectNotFoundError(CatalogError):
    """One or more object ids are missing from the catalog."""

    def __init__(self, ids: Sequence[str]) -> None:
        self.ids = list(ids)
        super().__init__(f"Objects not found: {', '.join(self.ids)}")


class CursorNotFoundError(CatalogError):
    """The pagination cursor references an unknown object."""

    def __init__(self, cursor_id: str) -> None:
        self.cursor_id = cursor_id
        super().__init__(f'Cursor object "{cursor_id}" not found')


class ObjectExistsError(CatalogError):
    """An entry already exists at the target path."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f'Object "{path}" already exists')


class RemoteTransferError(CatalogError):
    """A remote list/get/put/copy/delete call failed."""

    def __init__(self, operation: str, key: str | None, detail: str) -> None:
        self.operation = operation
        self.key = key
        self.detail = detail
        target = f" {key!r}" if key is not None else ""
        super().__init__(f"Remote {operation}{target} failed: {detail}")


class PartialBatchError(CatalogError):
    """A serial copy/move sequence stopped after some items were committed.

    ``completed`` holds the destination entries created before the failure;
    items after ``failed_key`` were not attempted.
    """

    def __init__(
        self,
        completed: list[CatalogEntry],
        failed_key: str,
        error: Exception,
    ) -> None:
        self.completed = completed
        self.failed_key = failed_key
        self.error = error
        super().__init__(
            f"Stopped at {failed_key!r} after {len(completed)} completed item(s): {error}"
        )


class InconsistentStateError(CatalogError):
    """A remote write failed and the compensating local rollback failed too."""

    def __init__(self, path: str, error: Exception) -> None:
        self.path = path
        self.error = error
        super().__init__(f"Catalog and remote store disagree on {path!r}: {error}")
