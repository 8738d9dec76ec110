"""
Training routes: token sessions graded by the submission ledger, and
single-use training links issued per participant.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends

from inspection_api.api.deps import get_ledger, get_link_service
from inspection_api.quiz import SubmissionLedger, TrainingLinkService, participant_from
from inspection_api.quiz.links import link_view

router = APIRouter(prefix="/api", tags=["training"])


@router.get("/training-session/by-token/{token}")
def session_view(token: str, ledger: SubmissionLedger = Depends(get_ledger)) -> Dict[str, Any]:
    return {"ok": True, **ledger.view(token)}


@router.post("/training-session/by-token/{token}/submit")
def session_submit(
    token: str,
    body: Optional[Dict[str, Any]] = Body(None),
    ledger: SubmissionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    """
    Grade a session attempt. Body: `{answers: [int, ...], participant?: {...}}`.
    A repeat attempt answers 409 `ALREADY_SUBMITTED` with the recorded score.
    """
    body = body or {}
    raw_participant = body.get("participant")
    participant = participant_from(raw_participant) if isinstance(raw_participant, dict) else None
    outcome = ledger.submit(token, body.get("answers"), participant=participant)
    return {
        "ok": True,
        "reportId": outcome.report_id,
        "participantKey": outcome.participant_key,
        "score": outcome.score,
        "result": outcome.result,
        "passMark": outcome.pass_mark,
        "submittedAt": outcome.submitted_at,
        "rosterUpdated": outcome.roster_updated,
        "rosterAmbiguous": outcome.roster_ambiguous,
    }


@router.post("/training-links", status_code=201)
def create_links(
    body: Optional[Dict[str, Any]] = Body(None),
    service: TrainingLinkService = Depends(get_link_service),
) -> Dict[str, Any]:
    body = body or {}
    links = service.create_links(
        body.get("reportId"),
        body.get("participants"),
        module=body.get("module"),
        expires_in_days=body.get("expiresInDays"),
    )
    return {
        "ok": True,
        "reportId": links[0].report_id,
        "count": len(links),
        "links": [link_view(link) for link in links],
    }


@router.get("/training-links/{token}")
def get_link(token: str, service: TrainingLinkService = Depends(get_link_service)) -> Dict[str, Any]:
    return {"ok": True, **service.get_link(token)}


@router.post("/training-links/{token}/submit")
def submit_link(
    token: str,
    body: Optional[Dict[str, Any]] = Body(None),
    service: TrainingLinkService = Depends(get_link_service),
) -> Dict[str, Any]:
    body = body or {}
    saved = service.submit(
        token,
        body.get("answers"),
        module=body.get("module"),
        score=body.get("score"),
        result=body.get("result"),
        pass_mark=body.get("passMark"),
    )
    return {"ok": True, **saved}
