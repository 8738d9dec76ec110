"""
Domain models for the Inspection API.

Defines the row shapes returned by the repositories (reports, catalog items,
training links) and the value objects produced by the upsert coordinator and
the quiz submission ledger. Models are frozen; the JSON payload of a report
is kept as a plain dict because it is schemaless.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

NATURAL_KEY_FIELD = "reportDate"

_FROZEN = {
    "frozen": True,
    "populate_by_name": True,
    "arbitrary_types_allowed": False,
}


class Report(BaseModel):
    """
    Representation of a single row in the `reports` table.
    """

    id: int = Field(..., description="Primary key (BIGSERIAL).")
    reporter: Optional[str] = Field(None, description="Free-text owner of the report.")
    type: str = Field(..., description="Kind tag; part of the natural key.")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Arbitrary JSON body.")
    created_at: datetime = Field(..., description="Row creation timestamp.")
    updated_at: datetime = Field(..., description="Last write timestamp.")

    model_config = _FROZEN

    @property
    def natural_key(self) -> Optional[str]:
        value = self.payload.get(NATURAL_KEY_FIELD)
        return value if isinstance(value, str) else None


class ReportSummary(BaseModel):
    """Lite projection of a report: scalar columns plus two payload fields."""

    id: int
    reporter: Optional[str] = None
    type: str
    created_at: datetime
    updated_at: datetime
    reportDate: Optional[str] = None
    invoiceNo: Optional[str] = None

    model_config = _FROZEN


class UpsertResult(BaseModel):
    report: Report
    method: Literal["insert", "update"]

    model_config = _FROZEN


class CatalogItem(BaseModel):
    scope: str
    code: str
    name: str
    created_at: datetime
    updated_at: datetime

    model_config = _FROZEN


class TrainingLink(BaseModel):
    """Representation of a row in `training_links` (single-use UUID token)."""

    token: UUID
    report_id: int
    participant_slno: Optional[str] = None
    participant_name: Optional[str] = None
    module: Optional[str] = None
    created_at: datetime
    expires_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    meta: Dict[str, Any] = Field(default_factory=dict)

    model_config = _FROZEN


class Quiz(BaseModel):
    module: str = ""
    pass_mark: Union[int, float] = 80
    questions: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = _FROZEN


class Participant(BaseModel):
    """Identity a quiz-taker submits with; every field optional."""

    slNo: str = ""
    name: str = ""
    designation: str = ""
    employeeId: str = ""

    model_config = {"frozen": True, "extra": "ignore"}


class Grade(BaseModel):
    correct: int
    total: int
    score: int
    pass_mark: Union[int, float]
    result: Literal["PASS", "FAIL"]

    model_config = _FROZEN


class SubmissionOutcome(BaseModel):
    """What `SubmissionLedger.submit` reports back after committing."""

    report_id: int
    participant_key: str
    score: int
    result: Literal["PASS", "FAIL"]
    pass_mark: Union[int, float]
    submitted_at: str
    roster_updated: bool = False
    roster_ambiguous: bool = False

    model_config = _FROZEN


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
