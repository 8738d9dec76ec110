from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from psycopg_pool import ConnectionPool

from inspection_api.api.deps import get_pool
from inspection_api.errors import MediaError
from inspection_api.infrastructure import check_connection
from inspection_api.media import cloudinary_store

router = APIRouter(tags=["health"])


@router.get("/", response_class=PlainTextResponse)
def root() -> str:
    return "Inspection API is running"


@router.get("/health/db")
def health_db(pool: ConnectionPool = Depends(get_pool)) -> Dict[str, Any]:
    """`SELECT 1` through the pool; driver errors surface as a 500 envelope."""
    check_connection(pool)
    return {"ok": True, "db": "connected"}


@router.get("/health/cloud")
def health_cloud() -> Dict[str, Any]:
    missing = cloudinary_store.missing_config()
    if missing:
        raise MediaError("CLOUDINARY_CONFIG_MISSING", missing=missing)
    return {"ok": True, "cloud_name": cloudinary_store.cloud_name()}
