"""
Media package for the Inspection API: image uploads and deletes against
Cloudinary.
"""

from inspection_api.media.cloudinary_store import (
    configure,
    destroy_many,
    missing_config,
    parse_cloudinary_url,
    upload_bytes,
    upload_data_url,
)

__all__ = [
    "configure",
    "destroy_many",
    "missing_config",
    "parse_cloudinary_url",
    "upload_bytes",
    "upload_data_url",
]
