"""
HTTP layer for the Inspection API (FastAPI).

Routers translate requests into repository and quiz-service calls; every
failure leaves through the `AppError` envelope handlers in `app`.
"""

from inspection_api.api.app import create_app

__all__ = ["create_app"]
