"""Liveness probe reporting whether the catalog index answers queries."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from objcatalog import __version__
from objcatalog.api.deps import get_session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Service status plus the state of the catalog index."""

    status: str
    version: str
    catalog_index: str


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> HealthResponse:
    """Report `degraded` when the catalog index cannot be queried."""
    index_status = "ok"
    try:
        await session.execute(text("SELECT 1 FROM catalog_entries LIMIT 1"))
    except SQLAlchemyError:
        logger.warning("Catalog index probe failed", exc_info=True)
        index_status = "error"

    return HealthResponse(
        status="ok" if index_status == "ok" else "degraded",
        version=__version__,
        catalog_index=index_status,
    )
