"""
Utilities package for the Inspection API.

Exports shared helpers for logging and input normalization. Keep this package
lightweight and free of database access.
"""

from inspection_api.utils.logging import configure_logging, get_logger
from inspection_api.utils.normalize import clamp_int, norm_key, norm_text, today_iso

__all__ = [
    "configure_logging",
    "get_logger",
    "clamp_int",
    "norm_key",
    "norm_text",
    "today_iso",
]
