"""
Read access to the legacy `images` table (bytes stored in Postgres before
uploads moved to Cloudinary).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool


@dataclass(frozen=True)
class StoredImage:
    filename: str
    mimetype: str
    data: bytes


class ImageRepository:
    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get(self, image_id: str) -> Optional[StoredImage]:
        """Fetch one image; ids that are not UUIDs simply do not exist."""
        try:
            key = UUID(str(image_id))
        except ValueError:
            return None
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT filename, mimetype, data FROM images WHERE id = %s", (key,))
                row = cur.fetchone()
        if row is None:
            return None
        return StoredImage(
            filename=row["filename"] or "image.jpg",
            mimetype=row["mimetype"] or "image/jpeg",
            data=bytes(row["data"]),
        )


__all__ = ["ImageRepository", "StoredImage"]
