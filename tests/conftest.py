"""
Pytest configuration for the Inspection API.

Provides fixtures for:
- Settings override for tests
- Database connection management and schema bootstrap
- A connection pool and per-test table cleanup for integration tests
"""

from __future__ import annotations

import os
from typing import Generator

import psycopg
import pytest
from psycopg_pool import ConnectionPool

from inspection_api.config import Settings
from inspection_api.infrastructure import ensure_schema

_TABLES = "public.training_links, public.reports, public.product_catalog, public.images"


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "inspection_test"),
        database_url=None,
        log_level="DEBUG",
        cloudinary_url=None,
        cloudinary_cloud_name=None,
        cloudinary_api_key=None,
        cloudinary_api_secret=None,
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped autocommit connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn, autocommit=True)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection) -> bool:
    """
    Ensure the tables and indexes exist (idempotent bootstrap).
    """
    ensure_schema(db_connection)
    return True


@pytest.fixture(scope="session")
def pool(
    test_dsn: str, db_schema_initialized: bool
) -> Generator[ConnectionPool, None, None]:
    """
    Session-scoped pool sized for the concurrency tests.
    """
    pool = ConnectionPool(conninfo=test_dsn, min_size=1, max_size=10, open=False)
    pool.open(wait=True, timeout=10.0)
    try:
        yield pool
    finally:
        pool.close()


@pytest.fixture(scope="function")
def clean_tables(db_connection: psycopg.Connection, db_schema_initialized: bool):
    """
    Empty every application table before and after each test function.

    This ensures test isolation by starting with empty tables.
    """
    with db_connection.cursor() as cur:
        cur.execute(f"TRUNCATE TABLE {_TABLES} RESTART IDENTITY CASCADE;")
    yield
    with db_connection.cursor() as cur:
        cur.execute(f"TRUNCATE TABLE {_TABLES} RESTART IDENTITY CASCADE;")
