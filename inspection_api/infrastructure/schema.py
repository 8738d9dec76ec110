"""
Idempotent schema bootstrap for the Inspection API.

Every statement can run on every start: tables use IF NOT EXISTS and the
unique indexes are guarded by a `pg_indexes` lookup so a pre-existing index
of the same name is left alone.
"""

from __future__ import annotations

from typing import List

from psycopg import Connection

from inspection_api.utils.logging import get_logger

log = get_logger(__name__)

NATURAL_KEY_INDEX = "ux_reports_type_reportdate"

SCHEMA_STATEMENTS: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS reports (
      id BIGSERIAL PRIMARY KEY,
      reporter TEXT,
      type TEXT NOT NULL,
      payload JSONB NOT NULL,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    "CREATE EXTENSION IF NOT EXISTS pgcrypto",
    """
    CREATE TABLE IF NOT EXISTS images (
      id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
      filename TEXT NOT NULL,
      mimetype TEXT NOT NULL,
      size INT NOT NULL,
      width INT, height INT,
      data BYTEA NOT NULL,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_reports_type ON reports(type)",
    "CREATE INDEX IF NOT EXISTS idx_reports_created_at ON reports(created_at)",
    f"""
    DO $$
    BEGIN
      IF NOT EXISTS (SELECT 1 FROM pg_indexes WHERE schemaname='public' AND indexname='{NATURAL_KEY_INDEX}') THEN
        EXECUTE 'CREATE UNIQUE INDEX {NATURAL_KEY_INDEX} ON reports (type, ((payload->>''reportDate'')))';
      END IF;
    END $$
    """,
    """
    CREATE TABLE IF NOT EXISTS product_catalog (
      id BIGSERIAL PRIMARY KEY,
      scope TEXT NOT NULL DEFAULT 'default',
      code  TEXT NOT NULL,
      name  TEXT NOT NULL,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    DO $$
    BEGIN
      IF NOT EXISTS (SELECT 1 FROM pg_indexes WHERE schemaname='public' AND indexname='ux_product_catalog_scope_code') THEN
        EXECUTE 'CREATE UNIQUE INDEX ux_product_catalog_scope_code ON product_catalog (scope, code)';
      END IF;
    END $$
    """,
    "CREATE INDEX IF NOT EXISTS idx_product_catalog_scope ON product_catalog (scope)",
    """
    CREATE TABLE IF NOT EXISTS training_links (
      token UUID PRIMARY KEY DEFAULT gen_random_uuid(),
      report_id BIGINT NOT NULL REFERENCES reports(id) ON DELETE CASCADE,
      participant_slno TEXT,
      participant_name TEXT,
      module TEXT,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      expires_at TIMESTAMPTZ,
      used_at TIMESTAMPTZ,
      meta JSONB NOT NULL DEFAULT '{}'::jsonb
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_training_links_report_id ON training_links(report_id)",
    "CREATE INDEX IF NOT EXISTS idx_training_links_used_at ON training_links(used_at)",
    "CREATE INDEX IF NOT EXISTS idx_training_links_expires_at ON training_links(expires_at)",
    """
    CREATE INDEX IF NOT EXISTS idx_reports_training_quiztoken
    ON reports ((payload->>'quizToken'))
    WHERE type='training_session'
    """,
]


def ensure_schema(conn: Connection) -> None:
    """
    Create tables and indexes if they are missing, in one transaction.

    Parameters
    ----------
    conn : Connection
        An open psycopg connection; committed on success.
    """
    with conn.transaction():
        with conn.cursor() as cur:
            for statement in SCHEMA_STATEMENTS:
                cur.execute(statement)
    log.info("DB schema ready", extra={"statements": len(SCHEMA_STATEMENTS)})


__all__ = ["NATURAL_KEY_INDEX", "SCHEMA_STATEMENTS", "ensure_schema"]
