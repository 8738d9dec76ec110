"""
Repositories package for the Inspection API.

Each repository wraps one table behind a narrow query interface and takes the
connection pool explicitly. Methods that accept a `conn` argument run inside
the caller's transaction (used for row locking).
"""

from inspection_api.repositories.catalog import CatalogRepository
from inspection_api.repositories.images import ImageRepository, StoredImage
from inspection_api.repositories.links import TrainingLinkRepository, parse_token
from inspection_api.repositories.reports import ReportRepository, has_natural_key_index

__all__ = [
    "CatalogRepository",
    "ImageRepository",
    "ReportRepository",
    "StoredImage",
    "TrainingLinkRepository",
    "has_natural_key_index",
    "parse_token",
]
