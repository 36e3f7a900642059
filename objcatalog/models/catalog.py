"""Catalog entry model: one row per remote key plus synthesized folders."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import IntEnum

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from objcatalog.models.base import Base

DEFAULT_STORAGE_CLASS = "STANDARD"
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class ObjectType(IntEnum):
    """Entry kind. Folders sort before files."""

    FOLDER = 1
    FILE = 2


class CatalogEntry(Base):
    """Cached view of one remote object (or implied folder) for a connection.

    ``dirname`` and ``basename`` are always derived from ``path`` by
    ``objcatalog.services.paths.split_path`` before the row is written.
    """

    __tablename__ = "catalog_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    connection_id: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[int] = mapped_column(Integer, nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False)
    dirname: Mapped[str] = mapped_column(Text, nullable=False)
    basename: Mapped[str] = mapped_column(Text, nullable=False)
    last_modified: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    storage_class: Mapped[str] = mapped_column(
        String(32), nullable=False, default=DEFAULT_STORAGE_CLASS
    )
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("uq_catalog_connection_path", "connection_id", "path", unique=True),
        Index(
            "idx_catalog_listing",
            "connection_id",
            "dirname",
            "type",
            "basename",
            "id",
        ),
        Index("idx_catalog_updated_at", "connection_id", "updated_at"),
    )

    @property
    def is_folder(self) -> bool:
        return self.type == ObjectType.FOLDER

    def __repr__(self) -> str:
        return (
            f"CatalogEntry(id={self.id!r}, connection_id={self.connection_id}, "
            f"path={self.path!r})"
        )
