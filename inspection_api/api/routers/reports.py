"""
Report routes: plain CRUD plus the natural-key upsert.

`PUT /api/reports/{type}` is the only write path that is safe under
concurrent saves of the same document; it answers 201 when it created the row
and 200 when it replaced an existing one. The report date is read from the
body, with the `reportDate` query parameter as the fallback.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from inspection_api.api.deps import get_report_repository
from inspection_api.domain.models import NATURAL_KEY_FIELD
from inspection_api.errors import NotFoundError, ValidationError
from inspection_api.repositories import ReportRepository
from inspection_api.utils.normalize import is_truthy_flag, norm_text

router = APIRouter(prefix="/api/reports", tags=["reports"])


_ENVELOPE_KEYS = frozenset({"payload", "reporter"})


def _split_body(body: Optional[Dict[str, Any]]) -> tuple:
    """
    `{reporter?, payload}` or a bare payload object -> `(payload, reporter)`.

    A body is an envelope only when `payload` is an object and no keys other
    than `payload` and `reporter` are present; anything else is the payload.
    """
    if not isinstance(body, dict):
        raise ValidationError("payload must be an object")
    if isinstance(body.get("payload"), dict) and set(body) <= _ENVELOPE_KEYS:
        return body["payload"], body.get("reporter")
    return body, None


@router.post("", status_code=201)
def create_report(
    body: Optional[Dict[str, Any]] = Body(None),
    repo: ReportRepository = Depends(get_report_repository),
) -> Dict[str, Any]:
    body = body or {}
    report = repo.create(body.get("type"), body.get("payload"), owner=body.get("reporter"))
    return {"ok": True, "report": report.model_dump(mode="json")}


@router.get("")
def list_reports(
    kind: Optional[str] = Query(None, alias="type"),
    limit: Optional[str] = Query(None),
    lite: Optional[str] = Query(None),
    repo: ReportRepository = Depends(get_report_repository),
) -> Dict[str, Any]:
    rows = repo.list_reports(kind=kind, limit=limit, lite=is_truthy_flag(lite))
    return {"ok": True, "data": [r.model_dump(mode="json") for r in rows]}


@router.get("/{report_id}")
def get_report(
    report_id: int, repo: ReportRepository = Depends(get_report_repository)
) -> Dict[str, Any]:
    report = repo.get(report_id)
    if report is None:
        raise NotFoundError("not found")
    return {"ok": True, "report": report.model_dump(mode="json")}


@router.put("/{kind}")
def upsert_report(
    kind: str,
    report_date: Optional[str] = Query(None, alias="reportDate"),
    body: Optional[Dict[str, Any]] = Body(None),
    repo: ReportRepository = Depends(get_report_repository),
) -> JSONResponse:
    payload, reporter = _split_body(body)
    natural_key = norm_text(payload.get(NATURAL_KEY_FIELD)) or norm_text(report_date)
    if not natural_key:
        raise ValidationError("reportDate required")
    outcome = repo.upsert(kind, natural_key, payload, owner=reporter)
    return JSONResponse(
        status_code=201 if outcome.method == "insert" else 200,
        content=jsonable_encoder(
            {"ok": True, "report": outcome.report.model_dump(mode="json"), "method": outcome.method}
        ),
    )


@router.delete("")
def delete_by_natural_key(
    kind: Optional[str] = Query(None, alias="type"),
    report_date: Optional[str] = Query(None, alias="reportDate"),
    repo: ReportRepository = Depends(get_report_repository),
) -> Dict[str, Any]:
    deleted = repo.delete_by_natural_key(kind, report_date)
    return {"ok": True, "deleted": deleted}


@router.delete("/{report_id}")
def delete_report(
    report_id: int, repo: ReportRepository = Depends(get_report_repository)
) -> Dict[str, Any]:
    deleted = repo.delete_by_id(report_id)
    if not deleted:
        raise NotFoundError("not found")
    return {"ok": True, "deleted": deleted}
