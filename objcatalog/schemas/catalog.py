"""Catalog entry and object operation schemas."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator


class CatalogEntryResponse(BaseModel):
    """Public representation of a catalog entry."""

    id: str
    connection_id: int
    type: Literal["folder", "file"]
    path: str
    dirname: str
    basename: str
    last_modified: str
    size: int = Field(ge=0)
    storage_class: str
    updated_at: str


class ObjectPage(BaseModel):
    """One cursor-paginated page of catalog entries."""

    has_next_page: bool
    items: list[CatalogEntryResponse]


class ObjectDetail(CatalogEntryResponse):
    """Catalog entry enriched with live remote metadata."""

    url: str | None = None
    content_type: str | None = None
    etag: str | None = None
    remote_size: int | None = None
    remote_last_modified: str | None = None


class FolderCreate(BaseModel):
    """Request to create a folder under ``dirname``."""

    dirname: str = Field(default="", max_length=1024)
    basename: str = Field(min_length=1, max_length=255)

    @field_validator("basename", mode="before")
    @classmethod
    def strip_basename(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v


class DeleteRequest(BaseModel):
    """Request to delete objects (folders expand to their subtree)."""

    ids: list[str] = Field(min_length=1, max_length=1000)


class CopyRequest(BaseModel):
    """Request to copy or move objects into a target folder."""

    source_ids: list[str] = Field(min_length=1, max_length=1000)
    target_dirname: str = Field(default="", max_length=1024)
    move: bool = False


class SyncResponse(BaseModel):
    """Outcome of a catalog synchronization run."""

    connection_id: int
    listed: int = Field(ge=0)
    upserted: int = Field(ge=0)
    evicted: int = Field(ge=0)
