"""SQLAlchemy ORM models for objcatalog."""

from objcatalog.models.base import Base
from objcatalog.models.catalog import DEFAULT_STORAGE_CLASS, EPOCH, CatalogEntry, ObjectType
from objcatalog.models.connection import Connection

__all__ = [
    "DEFAULT_STORAGE_CLASS",
    "EPOCH",
    "Base",
    "CatalogEntry",
    "Connection",
    "ObjectType",
]
