"""
Report repository: CRUD and upsert-by-natural-key over the `reports` table.

A report is identified internally by `id` and, per `type`, by the natural key
`payload->>'reportDate'`. The unique expression index
`ux_reports_type_reportdate` backs that key, which lets `upsert` run as one
`INSERT ... ON CONFLICT` statement. When the index is missing (legacy
databases with duplicate rows cannot build it) the repository falls back to
UPDATE-then-INSERT and recovers once from a lost insert race.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from psycopg import Connection, Cursor
from psycopg import errors as pg_errors
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from inspection_api.config import Settings, get_settings
from inspection_api.domain.models import NATURAL_KEY_FIELD, Report, ReportSummary, UpsertResult
from inspection_api.errors import ConflictError, ValidationError
from inspection_api.infrastructure.schema import NATURAL_KEY_INDEX
from inspection_api.utils.logging import get_logger
from inspection_api.utils.normalize import clamp_int, norm_text

log = get_logger(__name__)

_COLUMNS = "id, reporter, type, payload, created_at, updated_at"

_LITE_COLUMNS = """
    id,
    reporter,
    type,
    created_at,
    updated_at,
    payload->>'reportDate' AS "reportDate",
    payload->>'invoiceNo'  AS "invoiceNo"
"""

_UPSERT_ATOMIC_SQL = f"""
    INSERT INTO reports (reporter, type, payload)
    VALUES (%s, %s, %s)
    ON CONFLICT (type, (payload->>'reportDate'))
    DO UPDATE SET payload = EXCLUDED.payload,
                  reporter = COALESCE(reports.reporter, EXCLUDED.reporter),
                  updated_at = now()
    RETURNING {_COLUMNS}, (xmax = 0) AS inserted
"""

_UPDATE_BY_KEY_SQL = f"""
    UPDATE reports
       SET payload = %s,
           reporter = COALESCE(reporter, %s),
           updated_at = now()
     WHERE type = %s AND payload->>'reportDate' = %s
    RETURNING {_COLUMNS}
"""

_INSERT_SQL = f"""
    INSERT INTO reports (reporter, type, payload)
    VALUES (%s, %s, %s)
    RETURNING {_COLUMNS}
"""

ReportRow = Union[Report, ReportSummary]


def has_natural_key_index(conn: Connection) -> bool:
    """Whether the unique `(type, reportDate)` index exists in this database."""
    with conn.cursor() as cur:
        cur.execute(
            "SELECT 1 FROM pg_indexes WHERE schemaname = 'public' AND indexname = %s",
            (NATURAL_KEY_INDEX,),
        )
        return cur.fetchone() is not None


def _to_report(row: Dict[str, Any]) -> Report:
    row = dict(row)
    row.pop("inserted", None)
    if row.get("payload") is None:
        row["payload"] = {}
    return Report.model_validate(row)


class ReportRepository:
    """
    Store-level interface over `reports`.

    Parameters
    ----------
    pool : ConnectionPool
        The injected connection pool; every method borrows one connection.
    settings : Settings | None
        Source of the list limits. Defaults to the cached settings.
    atomic_upsert : bool
        Use the single-statement ON CONFLICT upsert. Set to False when the
        natural-key index is absent.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        settings: Optional[Settings] = None,
        atomic_upsert: bool = True,
    ) -> None:
        self._pool = pool
        self._settings = settings or get_settings()
        self._atomic_upsert = atomic_upsert

    # ------------------------------------------------------------------ reads

    def list_reports(
        self,
        kind: Optional[str] = None,
        limit: Any = None,
        lite: bool = False,
    ) -> List[ReportRow]:
        """
        Newest-first scan, optionally filtered by type.

        The limit is clamped to `[reports_limit_min, reports_limit_max]` so a
        caller can never pull an unbounded result set; `lite` strips the
        payload down to `reportDate` and `invoiceNo`.
        """
        s = self._settings
        effective_limit = clamp_int(
            limit, s.reports_limit_default, s.reports_limit_min, s.reports_limit_max
        )
        columns = _LITE_COLUMNS if lite else _COLUMNS
        kind = norm_text(kind)
        if kind:
            query = f"SELECT {columns} FROM reports WHERE type = %s ORDER BY created_at DESC LIMIT %s"
            params: tuple = (kind, effective_limit)
        else:
            query = f"SELECT {columns} FROM reports ORDER BY created_at DESC LIMIT %s"
            params = (effective_limit,)

        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()

        if lite:
            return [ReportSummary.model_validate(r) for r in rows]
        return [_to_report(r) for r in rows]

    def get(self, report_id: int) -> Optional[Report]:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM reports WHERE id = %s", (report_id,))
                row = cur.fetchone()
        return _to_report(row) if row else None

    def find_by_natural_key(self, kind: str, natural_key: str) -> Optional[Report]:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS} FROM reports
                     WHERE type = %s AND payload->>'reportDate' = %s
                     ORDER BY created_at DESC
                     LIMIT 1
                    """,
                    (kind, natural_key),
                )
                row = cur.fetchone()
        return _to_report(row) if row else None

    def find_by_quiz_token(self, token: str) -> Optional[Report]:
        """Newest `training_session` report whose payload carries `quizToken`."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                return self._select_by_quiz_token(cur, token, for_update=False)

    # -------------------------------------------- transaction-scoped helpers

    def lock_by_quiz_token(self, conn: Connection, token: str) -> Optional[Report]:
        """
        `SELECT ... FOR UPDATE` the session report for `token`.

        Must be called inside a transaction on `conn`; the row stays locked
        until that transaction ends.
        """
        with conn.cursor(row_factory=dict_row) as cur:
            return self._select_by_quiz_token(cur, token, for_update=True)

    def lock_by_id(self, conn: Connection, report_id: int) -> Optional[Report]:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM reports WHERE id = %s FOR UPDATE", (report_id,))
            row = cur.fetchone()
        return _to_report(row) if row else None

    def replace_payload(self, conn: Connection, report_id: int, payload: Dict[str, Any]) -> None:
        """Overwrite the payload of a (locked) report and bump `updated_at`."""
        with conn.cursor() as cur:
            cur.execute(
                "UPDATE reports SET payload = %s, updated_at = now() WHERE id = %s",
                (Jsonb(payload), report_id),
            )

    @staticmethod
    def _select_by_quiz_token(cur: Cursor, token: str, for_update: bool) -> Optional[Report]:
        lock_clause = "FOR UPDATE" if for_update else ""
        cur.execute(
            f"""
            SELECT {_COLUMNS}
              FROM reports
             WHERE type = 'training_session'
               AND (payload->>'quizToken') = %s
             ORDER BY created_at DESC
             LIMIT 1
            {lock_clause}
            """,
            (token,),
        )
        row = cur.fetchone()
        return _to_report(row) if row else None

    # ----------------------------------------------------------------- writes

    def create(self, kind: str, body: Any, owner: Optional[str] = None) -> Report:
        """
        Plain insert. A second report with the same `(type, reportDate)`
        violates the natural-key index and raises `ConflictError`.
        """
        kind = norm_text(kind)
        if not kind or not isinstance(body, dict):
            raise ValidationError("invalid payload")
        owner = norm_text(owner) or "anonymous"
        try:
            with self._pool.connection() as conn:
                with conn.transaction():
                    with conn.cursor(row_factory=dict_row) as cur:
                        cur.execute(_INSERT_SQL, (owner, kind, Jsonb(body)))
                        row = cur.fetchone()
        except pg_errors.UniqueViolation as exc:
            log.info("Duplicate report rejected", extra={"type": kind})
            raise ConflictError("DUPLICATE_REPORT", type=kind) from exc
        return _to_report(row)

    def upsert(
        self,
        kind: str,
        natural_key: str,
        body: Any,
        owner: Optional[str] = None,
    ) -> UpsertResult:
        """
        Create or replace the single report for `(kind, natural_key)`.

        The natural key is written into the body under `reportDate` so the
        index expression always matches the key the caller addressed.
        Concurrent callers on the same key resolve to exactly one row holding
        the last applied body.

        Raises
        ------
        ValidationError
            Empty kind or key, or a body that is not a JSON object.
        ConflictError
            Fallback path only: the insert lost a race and the retried update
            still found no row.
        """
        kind = norm_text(kind)
        natural_key = norm_text(natural_key)
        if not kind:
            raise ValidationError("type required")
        if not natural_key:
            raise ValidationError(f"{NATURAL_KEY_FIELD} required")
        if not isinstance(body, dict):
            raise ValidationError("payload must be an object")

        payload = {**body, NATURAL_KEY_FIELD: natural_key}
        owner = norm_text(owner) or "anonymous"

        if self._atomic_upsert:
            try:
                return self._upsert_atomic(kind, payload, owner)
            except pg_errors.InvalidColumnReference:
                # Postgres found no unique index matching the ON CONFLICT target.
                log.warning(
                    "Natural-key index missing; using two-step upsert",
                    extra={"index": NATURAL_KEY_INDEX},
                )
        return self._upsert_two_step(kind, natural_key, payload, owner)

    def _upsert_atomic(self, kind: str, payload: Dict[str, Any], owner: str) -> UpsertResult:
        with self._pool.connection() as conn:
            with conn.transaction():
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(_UPSERT_ATOMIC_SQL, (owner, kind, Jsonb(payload)))
                    row = cur.fetchone()
        method = "insert" if row["inserted"] else "update"
        log.debug("Report upserted", extra={"type": kind, "method": method, "id": row["id"]})
        return UpsertResult(report=_to_report(row), method=method)

    def _upsert_two_step(
        self, kind: str, natural_key: str, payload: Dict[str, Any], owner: str
    ) -> UpsertResult:
        params = (Jsonb(payload), owner, kind, natural_key)
        with self._pool.connection() as conn:
            with conn.transaction():
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(_UPDATE_BY_KEY_SQL, params)
                    row = cur.fetchone()
                    if row is not None:
                        return UpsertResult(report=_to_report(row), method="update")

                    try:
                        with conn.transaction():
                            cur.execute(_INSERT_SQL, (owner, kind, Jsonb(payload)))
                            row = cur.fetchone()
                        return UpsertResult(report=_to_report(row), method="insert")
                    except pg_errors.UniqueViolation:
                        log.info(
                            "Upsert insert lost a race; retrying as update",
                            extra={"type": kind, "reportDate": natural_key},
                        )

                    cur.execute(_UPDATE_BY_KEY_SQL, params)
                    row = cur.fetchone()
                    if row is None:
                        raise ConflictError("UPSERT_CONFLICT", type=kind, reportDate=natural_key)
                    return UpsertResult(report=_to_report(row), method="update")

    def delete_by_natural_key(self, kind: str, natural_key: str) -> int:
        """Delete every report for `(kind, natural_key)`; returns the count (0 is fine)."""
        kind = norm_text(kind)
        natural_key = norm_text(natural_key)
        if not kind or not natural_key:
            raise ValidationError(f"type & {NATURAL_KEY_FIELD} required")
        with self._pool.connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(
                        "DELETE FROM reports WHERE type = %s AND payload->>'reportDate' = %s",
                        (kind, natural_key),
                    )
                    return cur.rowcount

    def delete_by_id(self, report_id: int) -> int:
        with self._pool.connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute("DELETE FROM reports WHERE id = %s", (report_id,))
                    return cur.rowcount


__all__ = ["ReportRepository", "has_natural_key_index"]
