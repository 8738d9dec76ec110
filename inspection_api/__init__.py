"""
Inspection API - JSON report store for quality inspection teams.

This package provides an HTTP service over PostgreSQL with:

- A report table keyed by type and an embedded reportDate (natural-key upsert)
- A scoped product catalog
- Token-addressed training quizzes with an at-most-once submission ledger
- Single-use training links
- Image upload and deletion through Cloudinary
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from inspection_api.config import Settings, get_settings
from inspection_api.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Logging
    "configure_logging",
    "get_logger",
]
