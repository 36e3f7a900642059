"""FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from objcatalog import __version__
from objcatalog.api.connections import router as connections_router
from objcatalog.api.health import router as health_router
from objcatalog.api.objects import router as objects_router
from objcatalog.config import Settings
from objcatalog.database import close_index, open_index
from objcatalog.exceptions import (
    ConnectionNotFoundError,
    CursorNotFoundError,
    InconsistentStateError,
    InternalServerError,
    ObjectExistsError,
    ObjectNotFoundError,
    ParentNotFoundError,
    PartialBatchError,
    RemoteTransferError,
)
from objcatalog.remote.s3 import S3RemoteStore

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from objcatalog.remote.base import RemoteStoreFactory

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)
    for name in ("botocore", "boto3", "s3transfer", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    settings.validate_runtime()
    _configure_logging(settings.debug)
    logger.info("Starting objcatalog (debug=%s)", settings.debug)

    try:
        index = await open_index(settings)
    except Exception as exc:
        logger.critical(
            "Failed to initialize catalog database: %s. Check database path and permissions.", exc
        )
        raise
    app.state.index = index
    app.state.engine = index.engine
    app.state.session_factory = index.session_factory

    if app.state.remote_factory is None:
        app.state.remote_factory = S3RemoteStore.factory(settings)

    yield

    try:
        await close_index(index)
    except Exception as exc:
        logger.error("Error during engine disposal: %s", exc, exc_info=True)

    logger.info("objcatalog stopped")


def create_app(
    settings: Settings | None = None,
    remote_factory: RemoteStoreFactory | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``remote_factory`` replaces the default S3 store factory, which is
    installed at startup otherwise.
    """
    if settings is None:
        settings = Settings()

    docs_enabled = settings.debug or settings.expose_docs

    app = FastAPI(
        title="objcatalog",
        description="Local catalog and folder-aware mutations for S3-compatible buckets",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.state.settings = settings
    app.state.remote_factory = remote_factory

    app.add_middleware(GZipMiddleware, minimum_size=500)

    cors_origins = (
        settings.cors_origins
        if settings.cors_origins
        else (["http://localhost:5173", "http://localhost:8000"] if settings.debug else [])
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(connections_router)
    app.include_router(objects_router)

    # Global exception handlers

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for err in exc.errors():
            loc = err.get("loc", ())
            field = str(loc[-1]) if loc else "unknown"
            errors.append({"field": field, "message": err.get("msg", "Invalid value")})
        logger.warning(
            "RequestValidationError in %s %s: %s",
            request.method,
            request.url.path,
            errors,
        )
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.exception_handler(ConnectionNotFoundError)
    @app.exception_handler(ObjectNotFoundError)
    @app.exception_handler(ParentNotFoundError)
    @app.exception_handler(CursorNotFoundError)
    async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.info("%s in %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ObjectExistsError)
    async def object_exists_handler(request: Request, exc: ObjectExistsError) -> JSONResponse:
        logger.info("ObjectExistsError in %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(PartialBatchError)
    async def partial_batch_handler(request: Request, exc: PartialBatchError) -> JSONResponse:
        logger.error(
            "PartialBatchError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=502,
            content={
                "detail": "Operation stopped after a remote failure",
                "completed": [entry.id for entry in exc.completed],
                "failed_key": exc.failed_key,
            },
        )

    @app.exception_handler(RemoteTransferError)
    async def remote_transfer_handler(request: Request, exc: RemoteTransferError) -> JSONResponse:
        logger.error(
            "RemoteTransferError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=502,
            content={"detail": f"Remote {exc.operation} failed", "key": exc.key},
        )

    @app.exception_handler(InconsistentStateError)
    @app.exception_handler(InternalServerError)
    async def internal_server_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "%s in %s %s: %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.error("ValueError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        message = str(exc) or "Invalid value"
        return JSONResponse(
            status_code=422,
            content={"detail": message},
        )

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
        logger.error(
            "OperationalError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=503,
            content={"detail": "Database temporarily unavailable"},
        )

    return app


app = create_app()


def cli_entry() -> None:
    """CLI entry point for running the server."""
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(
        "objcatalog.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
