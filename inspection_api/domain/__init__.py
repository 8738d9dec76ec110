"""
Domain package for the Inspection API.

Exports the row models and value objects shared by the repositories, the
quiz ledger and the HTTP layer. Keep this package focused on data
definitions and validation concerns.
"""

from inspection_api.domain.models import (
    NATURAL_KEY_FIELD,
    CatalogItem,
    Grade,
    Participant,
    Quiz,
    Report,
    ReportSummary,
    SubmissionOutcome,
    TrainingLink,
    UpsertResult,
)

__all__ = [
    "NATURAL_KEY_FIELD",
    "CatalogItem",
    "Grade",
    "Participant",
    "Quiz",
    "Report",
    "ReportSummary",
    "SubmissionOutcome",
    "TrainingLink",
    "UpsertResult",
]
