"""Remote store connection model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from objcatalog.models.base import Base


class Connection(Base):
    """Bucket plus credentials used to reach one remote store.

    ``secret_access_key`` is never serialized into API responses.
    """

    __tablename__ = "connections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    region: Mapped[str] = mapped_column(String, nullable=False, default="")
    bucket: Mapped[str] = mapped_column(String, nullable=False)
    endpoint_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    access_key_id: Mapped[str] = mapped_column(String, nullable=False, default="")
    secret_access_key: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"Connection(id={self.id}, bucket={self.bucket!r}, region={self.region!r})"
