"""
Infrastructure package for the Inspection API.

Centralizes database connectivity concerns (DSN, pooling, schema bootstrap).
Keep this layer focused on I/O and resource management, decoupled from
repository and HTTP logic.
"""

from inspection_api.infrastructure.db_factory import (
    PoolManager,
    build_dsn,
    check_connection,
    get_sync_connection,
)
from inspection_api.infrastructure.schema import ensure_schema

__all__ = [
    "PoolManager",
    "build_dsn",
    "check_connection",
    "ensure_schema",
    "get_sync_connection",
]
