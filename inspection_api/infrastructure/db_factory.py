"""
Database connection factory utilities for the Inspection API.

Provides centralized creation of PostgreSQL connections and the connection
pool that backs the HTTP application. The pool is owned by a `PoolManager`
and handed to request code explicitly (FastAPI `app.state.pool`, repository
constructors) rather than looked up from a global.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import threading
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import psycopg
from psycopg import Connection
from psycopg_pool import ConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from inspection_api.config import Settings, get_settings
from inspection_api.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn(settings: Optional[Settings] = None) -> str:
    """
    Compose a DSN string from settings.

    DATABASE_URL wins over the discrete DB_* fields. When DB_SSLMODE is set
    it is appended as `sslmode=` unless the URL already carries one.
    """
    settings = settings or get_settings()
    if settings.database_url:
        dsn = settings.database_url
    else:
        dsn = (
            f"postgresql://{settings.db_user}:{settings.db_password}"
            f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
        )
    if settings.db_sslmode:
        parts = urlsplit(dsn)
        query = dict(parse_qsl(parts.query))
        query.setdefault("sslmode", settings.db_sslmode)
        dsn = urlunsplit(parts._replace(query=urlencode(query)))
    return dsn


def _connection_kwargs(settings: Settings) -> dict:
    """Per-connection options: a server-side statement timeout."""
    return {"options": f"-c statement_timeout={int(settings.db_statement_timeout_ms)}"}


class PoolManager:
    """
    Thread-safe owner of the application connection pool.

    One manager is created per process entry point (HTTP server, CLI
    command); it lazily builds the pool and closes it on `close()`.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._pool: Optional[ConnectionPool] = None
        self._lock = threading.Lock()

    def get_pool(self, wait: bool = True, timeout: float = 10.0) -> ConnectionPool:
        """
        Get or create the synchronous connection pool.

        Parameters
        ----------
        wait : bool
            Block until `min_size` connections are established, so a wrong
            DATABASE_URL fails at startup instead of on the first request.
        timeout : float
            Seconds to wait for the initial connections.

        Returns
        -------
        ConnectionPool
            The managed pool instance.
        """
        with self._lock:
            if self._pool is None:
                pool = ConnectionPool(
                    conninfo=build_dsn(self._settings),
                    min_size=self._settings.db_pool_min_size,
                    max_size=self._settings.db_pool_max_size,
                    kwargs=_connection_kwargs(self._settings),
                    open=False,
                )
                pool.open(wait=wait, timeout=timeout)
                log.info(
                    "Connection pool opened",
                    extra={
                        "min_size": self._settings.db_pool_min_size,
                        "max_size": self._settings.db_pool_max_size,
                    },
                )
                self._pool = pool
            return self._pool

    def close(self) -> None:
        """Close the managed pool and release resources."""
        with self._lock:
            if self._pool is not None:
                try:
                    self._pool.close()
                    log.info("Connection pool closed")
                finally:
                    self._pool = None


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(settings: Optional[Settings] = None) -> Connection:
    """
    Acquire a dedicated synchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.
    Use this for one-off operations (CLI commands, schema bootstrap). Request
    handling goes through the pool.

    Returns
    -------
    Connection
        A new psycopg connection instance.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    settings = settings or get_settings()
    return psycopg.connect(build_dsn(settings), **_connection_kwargs(settings))


def check_connection(pool: ConnectionPool) -> bool:
    """Run `SELECT 1` through the pool; propagate the driver error on failure."""
    with pool.connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
            return cur.fetchone() is not None


__all__ = [
    "PoolManager",
    "build_dsn",
    "check_connection",
    "get_sync_connection",
]
