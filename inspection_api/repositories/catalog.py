"""
Product catalog repository: a per-scope `code -> name` lookup table.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from psycopg import errors as pg_errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from inspection_api.config import Settings, get_settings
from inspection_api.domain.models import CatalogItem
from inspection_api.errors import ConflictError, ValidationError
from inspection_api.utils.logging import get_logger
from inspection_api.utils.normalize import clamp_int, norm_text

log = get_logger(__name__)

DEFAULT_SCOPE = "default"


class CatalogRepository:
    def __init__(self, pool: ConnectionPool, settings: Optional[Settings] = None) -> None:
        self._pool = pool
        self._settings = settings or get_settings()

    def list_items(
        self, scope: Optional[str] = None, limit: Any = None
    ) -> Tuple[str, List[CatalogItem], Dict[str, str]]:
        """
        Items of one scope ordered by code, plus the `code -> name` map.

        Returns
        -------
        tuple
            `(scope, items, mapping)` where scope is the normalized scope.
        """
        scope = norm_text(scope) or DEFAULT_SCOPE
        limit = clamp_int(
            limit, self._settings.catalog_limit_default, 1, self._settings.catalog_limit_max
        )
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT scope, code, name, created_at, updated_at
                      FROM product_catalog
                     WHERE scope = %s
                     ORDER BY code ASC
                     LIMIT %s
                    """,
                    (scope, limit),
                )
                rows = cur.fetchall()

        items = [CatalogItem.model_validate(r) for r in rows]
        return scope, items, {item.code: item.name for item in items}

    def add_item(self, scope: Optional[str], code: Any, name: Any) -> CatalogItem:
        """Insert one code; a code already present in the scope is a conflict."""
        scope = norm_text(scope) or DEFAULT_SCOPE
        code = norm_text(code)
        name = norm_text(name)
        if not code or not name:
            raise ValidationError("code & name required")

        try:
            with self._pool.connection() as conn:
                with conn.transaction():
                    with conn.cursor(row_factory=dict_row) as cur:
                        cur.execute(
                            """
                            INSERT INTO product_catalog (scope, code, name)
                            VALUES (%s, %s, %s)
                            RETURNING scope, code, name, created_at, updated_at
                            """,
                            (scope, code, name),
                        )
                        row = cur.fetchone()
        except pg_errors.UniqueViolation as exc:
            log.info("Duplicate catalog code", extra={"scope": scope, "code": code})
            raise ConflictError(
                "DUPLICATE_CODE", message="This code already exists in this scope."
            ) from exc
        return CatalogItem.model_validate(row)


__all__ = ["CatalogRepository", "DEFAULT_SCOPE"]
