"""
FastAPI application factory for the Inspection API.

`create_app()` wires routers, CORS and the error envelope. The connection
pool is opened in the lifespan hook (or injected by the caller, e.g. tests)
and exposed on `app.state.pool`; handlers reach it only through the
dependencies in `inspection_api.api.deps`.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import psycopg
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from psycopg_pool import ConnectionPool
from starlette.exceptions import HTTPException as StarletteHTTPException

from inspection_api import __version__
from inspection_api.api.routers import catalog, health, images, reports, training
from inspection_api.config import Settings, get_settings
from inspection_api.errors import AppError, translate_db_error
from inspection_api.infrastructure import PoolManager, ensure_schema
from inspection_api.media import configure as configure_media
from inspection_api.repositories import has_natural_key_index
from inspection_api.utils.logging import configure_logging, get_logger

log = get_logger(__name__)


def _prepare_database(app: FastAPI, pool: ConnectionPool, settings: Settings) -> None:
    with pool.connection() as conn:
        if settings.db_auto_migrate:
            ensure_schema(conn)
        app.state.atomic_upsert = has_natural_key_index(conn)
    if not app.state.atomic_upsert:
        log.warning("Natural-key index missing; upserts use the two-step path")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    configure_media(settings)

    manager: Optional[PoolManager] = None
    if app.state.pool is None:
        manager = PoolManager(settings)
        app.state.pool = manager.get_pool()
        _prepare_database(app, app.state.pool, settings)
    log.info("Inspection API started", extra={"env": settings.app_env, "version": __version__})
    try:
        yield
    finally:
        if manager is not None:
            manager.close()
            app.state.pool = None
        log.info("Inspection API stopped")


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error(
            "Request failed",
            extra={"path": request.url.path, "error": exc.error, "status": exc.status_code},
        )
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_payload()))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder(
            {"ok": False, "error": "VALIDATION_ERROR", "details": exc.errors()}
        ),
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    error = "not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": error})


async def database_error_handler(request: Request, exc: psycopg.Error) -> JSONResponse:
    log.exception("Database error", extra={"path": request.url.path})
    err = translate_db_error(exc)
    return JSONResponse(status_code=err.status_code, content=err.to_payload())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled error", extra={"path": request.url.path})
    return JSONResponse(status_code=500, content={"ok": False, "error": "INTERNAL_ERROR"})


def create_app(
    pool: Optional[ConnectionPool] = None,
    settings: Optional[Settings] = None,
    atomic_upsert: bool = True,
) -> FastAPI:
    """
    Build the ASGI application.

    Parameters
    ----------
    pool : ConnectionPool | None
        Pre-opened pool. When omitted the lifespan hook opens one from
        settings, bootstraps the schema and closes it on shutdown.
    settings : Settings | None
        Defaults to the cached environment settings.
    atomic_upsert : bool
        Upsert strategy for an injected pool; detected from the schema
        otherwise.
    """
    settings = settings or get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    app = FastAPI(
        title="Inspection API",
        version=__version__,
        description="JSON report store with natural-key upserts and training quizzes",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.pool = pool
    app.state.atomic_upsert = atomic_upsert

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list(),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(psycopg.Error, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(health.router)
    app.include_router(reports.router)
    app.include_router(catalog.router)
    app.include_router(training.router)
    app.include_router(images.router)
    return app


__all__ = ["create_app", "lifespan"]
