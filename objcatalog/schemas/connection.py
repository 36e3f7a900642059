"""Connection schemas. Secret material never appears in responses."""

from __future__ import annotations

from pydantic import BaseModel, Field, SecretStr, field_validator


class ConnectionCreate(BaseModel):
    """Request to register a bucket connection."""

    bucket: str = Field(min_length=3, max_length=255)
    region: str = Field(default="", max_length=64)
    endpoint_url: str | None = Field(default=None, max_length=2048)
    access_key_id: str = Field(min_length=1, max_length=256)
    secret_access_key: SecretStr

    @field_validator("secret_access_key")
    @classmethod
    def require_secret(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value():
            raise ValueError("secret_access_key must not be empty")
        return v


class ConnectionResponse(BaseModel):
    """Public connection representation."""

    id: int
    bucket: str
    region: str
    endpoint_url: str | None = None
    access_key_id: str
    created_at: str
    updated_at: str
