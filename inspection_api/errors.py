"""
Error taxonomy for the Inspection API.

Every failure that reaches the HTTP boundary is an `AppError` subclass. Each
class carries the HTTP status it maps to, a short machine-readable `error`
code and optional extra fields merged into the error envelope
`{"ok": false, "error": <code>, ...}`.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import psycopg
from psycopg import errors as pg_errors


class AppError(Exception):
    """Base class for failures rendered into the error envelope."""

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(self, error: Optional[str] = None, **extra: Any) -> None:
        self.error = error or self.default_code
        self.extra: Dict[str, Any] = extra
        super().__init__(self.error)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"ok": False, "error": self.error}
        payload.update(self.extra)
        return payload


class ValidationError(AppError):
    """Missing or malformed input."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class NoQuizError(ValidationError):
    """The session report carries no quiz questions."""

    default_code = "NO_QUIZ_IN_REPORT"


class NotFoundError(AppError):
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(AppError):
    """Duplicate natural key, reused token or lost upsert race (caller-retryable)."""

    status_code = 409
    default_code = "CONFLICT"


class AlreadySubmittedError(ConflictError):
    """A submission entry already exists for the participant."""

    default_code = "ALREADY_SUBMITTED"

    def __init__(
        self,
        score: Optional[int] = None,
        result: Optional[str] = None,
        submitted_at: Optional[str] = None,
    ) -> None:
        super().__init__(score=score, result=result, submittedAt=submitted_at)
        self.score = score
        self.result = result
        self.submitted_at = submitted_at


class ExpiredError(AppError):
    status_code = 410
    default_code = "TOKEN_EXPIRED"


class StoreError(AppError):
    """The database is unavailable or failed in an unclassified way."""

    status_code = 500
    default_code = "STORE_ERROR"


class MediaError(AppError):
    """The media store rejected a request or is not configured."""

    status_code = 500
    default_code = "MEDIA_ERROR"


def translate_db_error(exc: psycopg.Error, conflict_code: str = "CONFLICT") -> AppError:
    """
    Map a psycopg exception onto the taxonomy.

    Unique violations become `ConflictError(conflict_code)`; malformed input
    rejected by Postgres (bad UUID text, numeric overflow) becomes a
    `ValidationError`; everything else is a `StoreError`.
    """
    if isinstance(exc, pg_errors.UniqueViolation):
        return ConflictError(conflict_code)
    if isinstance(exc, (pg_errors.InvalidTextRepresentation, pg_errors.NumericValueOutOfRange)):
        return ValidationError("invalid identifier")
    if isinstance(exc, pg_errors.QueryCanceled):
        return StoreError("STATEMENT_TIMEOUT")
    return StoreError()


__all__ = [
    "AppError",
    "ValidationError",
    "NoQuizError",
    "NotFoundError",
    "ConflictError",
    "AlreadySubmittedError",
    "ExpiredError",
    "StoreError",
    "MediaError",
    "translate_db_error",
]
