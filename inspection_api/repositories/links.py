"""
Training link repository: single-use UUID tokens pointing at a report.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from psycopg import Connection
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from inspection_api.domain.models import TrainingLink

_COLUMNS = (
    "token, report_id, participant_slno, participant_name, module, "
    "created_at, expires_at, used_at, meta"
)


def parse_token(token: Any) -> Optional[UUID]:
    """UUID for a link token, or None when the text is not a UUID."""
    try:
        return UUID(str(token).strip())
    except ValueError:
        return None


class TrainingLinkRepository:
    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get(self, token: UUID) -> Optional[TrainingLink]:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM training_links WHERE token = %s", (token,))
                row = cur.fetchone()
        return TrainingLink.model_validate(row) if row else None

    def insert(
        self,
        conn: Connection,
        report_id: int,
        slno: Optional[str],
        name: str,
        module: Optional[str],
        expires_at: datetime,
        meta: Dict[str, Any],
    ) -> TrainingLink:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                INSERT INTO training_links
                    (report_id, participant_slno, participant_name, module, expires_at, meta)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING {_COLUMNS}
                """,
                (report_id, slno, name, module, expires_at, Jsonb(meta)),
            )
            return TrainingLink.model_validate(cur.fetchone())

    def lock(self, conn: Connection, token: UUID) -> Optional[TrainingLink]:
        """`SELECT ... FOR UPDATE` one link inside the caller's transaction."""
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM training_links WHERE token = %s FOR UPDATE", (token,)
            )
            row = cur.fetchone()
        return TrainingLink.model_validate(row) if row else None

    def mark_used(self, conn: Connection, token: UUID) -> None:
        with conn.cursor() as cur:
            cur.execute("UPDATE training_links SET used_at = now() WHERE token = %s", (token,))


__all__ = ["TrainingLinkRepository", "parse_token"]
