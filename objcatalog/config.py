"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """objcatalog application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    debug: bool = False
    expose_docs: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///data/db/objcatalog.db"

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    # CORS
    cors_origins: list[str] = Field(default_factory=list)

    # Catalog queries
    default_page_limit: int = Field(default=50, ge=1)
    max_page_limit: int = Field(default=1000, ge=1)

    # Sync and mutations
    sync_batch_size: int = Field(default=500, ge=1)
    delete_batch_size: int = Field(default=1000, ge=1, le=1000)

    # Remote store
    s3_endpoint_url: str | None = None
    s3_request_timeout_s: float = Field(default=30.0, gt=0)
    s3_max_attempts: int = Field(default=5, ge=1)
    presign_expires_seconds: int = Field(default=3600, ge=1, le=7 * 24 * 60 * 60)

    # Uploads received over HTTP are spooled here before the background transfer
    upload_spool_dir: Path | None = None

    def validate_runtime(self) -> None:
        """Validate settings that depend on each other."""
        violations: list[str] = []
        if self.default_page_limit > self.max_page_limit:
            violations.append("DEFAULT_PAGE_LIMIT must not exceed MAX_PAGE_LIMIT")
        if self.upload_spool_dir is not None and self.upload_spool_dir.exists():
            if not self.upload_spool_dir.is_dir():
                violations.append("UPLOAD_SPOOL_DIR must be a directory")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Invalid configuration: {joined}")
