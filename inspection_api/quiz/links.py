"""
Training links: single-use UUID tokens issued per participant of a report.

Submitting through a link updates the participant's roster entry on the
report and marks the link used, in one transaction that locks the link row
and then the report row.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from psycopg_pool import ConnectionPool

from inspection_api.config import Settings, get_settings
from inspection_api.domain.models import Report, TrainingLink
from inspection_api.errors import ConflictError, ExpiredError, NotFoundError, ValidationError
from inspection_api.quiz.grading import (
    ROSTER_FIELD,
    as_number,
    apply_attempt,
    extract_quiz,
    grade_answers,
    match_roster,
    validate_answers,
    whole,
)
from inspection_api.repositories.links import TrainingLinkRepository, parse_token
from inspection_api.repositories.reports import ReportRepository
from inspection_api.utils.logging import get_logger
from inspection_api.utils.normalize import clamp_int, norm_text, now_iso, safe_list

log = get_logger(__name__)


def _is_expired(link: TrainingLink, now: Optional[datetime] = None) -> bool:
    if link.expires_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return link.expires_at < now


def report_summary(report: Report) -> Dict[str, Any]:
    """Minimal report fields a link holder may see (no quiz bank)."""
    payload = report.payload
    return {
        "id": report.id,
        "type": report.type,
        "created_at": report.created_at,
        "updated_at": report.updated_at,
        "title": payload.get("title") or "",
        "branch": payload.get("branch") or "",
        "module": payload.get("module") or "",
        "reportDate": payload.get("reportDate") or "",
    }


def link_view(link: TrainingLink) -> Dict[str, Any]:
    return {
        "token": str(link.token),
        "reportId": link.report_id,
        "participant": {
            "slNo": link.participant_slno or "",
            "name": link.participant_name or "",
        },
        "module": link.module or "",
        "createdAt": link.created_at,
        "expiresAt": link.expires_at,
        "usedAt": link.used_at,
    }


class TrainingLinkService:
    def __init__(
        self,
        pool: ConnectionPool,
        reports: Optional[ReportRepository] = None,
        links: Optional[TrainingLinkRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._pool = pool
        self._settings = settings or get_settings()
        self._reports = reports or ReportRepository(pool, self._settings)
        self._links = links or TrainingLinkRepository(pool)

    def create_links(
        self,
        report_id: Any,
        participants: Any,
        module: Any = None,
        expires_in_days: Any = None,
    ) -> List[TrainingLink]:
        """
        Issue one link per named participant of an existing report.

        Participants without a name are skipped; the expiry is clamped to
        `[1, link_expiry_days_max]` days.
        """
        rid = as_number(report_id)
        if rid is None or rid <= 0 or rid != int(rid):
            raise ValidationError("reportId required")
        people = safe_list(participants)
        if not people:
            raise ValidationError("participants required")
        if self._reports.get(int(rid)) is None:
            raise NotFoundError("report not found")

        days = clamp_int(
            expires_in_days,
            self._settings.link_expiry_days_default,
            1,
            self._settings.link_expiry_days_max,
        )
        expires_at = datetime.now(timezone.utc) + timedelta(days=days)
        module_name = norm_text(module) or None

        created: List[TrainingLink] = []
        with self._pool.connection() as conn:
            with conn.transaction():
                for person in people:
                    if not isinstance(person, dict):
                        continue
                    name = norm_text(person.get("name"))
                    if not name:
                        continue
                    created.append(
                        self._links.insert(
                            conn,
                            report_id=int(rid),
                            slno=norm_text(person.get("slNo")) or None,
                            name=name,
                            module=module_name,
                            expires_at=expires_at,
                            meta={"createdBy": "admin"},
                        )
                    )
                if not created:
                    raise ValidationError("no valid participants (name required)")

        log.info("Training links created", extra={"report_id": int(rid), "count": len(created)})
        return created

    def get_link(self, token: Any) -> Dict[str, Any]:
        key = parse_token(token)
        if key is None:
            raise NotFoundError("invalid token")
        link = self._links.get(key)
        if link is None:
            raise NotFoundError("invalid token")
        if _is_expired(link):
            raise ExpiredError()
        report = self._reports.get(link.report_id)
        if report is None:
            raise NotFoundError("report not found")
        return {"link": link_view(link), "report": report_summary(report)}

    def submit(
        self,
        token: Any,
        answers: Any,
        module: Any = None,
        score: Any = None,
        result: Any = None,
        pass_mark: Any = None,
    ) -> Dict[str, Any]:
        """
        Record a link holder's attempt on the report roster; the link is
        single-use.

        When the report carries a quiz the score is computed here from
        `answers`; otherwise the caller-supplied `score`, `result` and
        `pass_mark` are stored as given.
        """
        key = parse_token(token)
        if key is None:
            raise NotFoundError("invalid token")
        answer_list = safe_list(answers)
        if not answer_list:
            raise ValidationError("answers required")

        with self._pool.connection() as conn:
            with conn.transaction():
                link = self._links.lock(conn, key)
                if link is None:
                    raise NotFoundError("invalid token")
                if _is_expired(link):
                    raise ExpiredError()
                if link.used_at is not None:
                    raise ConflictError("TOKEN_ALREADY_USED")

                report = self._reports.lock_by_id(conn, link.report_id)
                if report is None:
                    raise NotFoundError("report not found")
                payload = dict(report.payload)

                quiz = extract_quiz(payload, self._settings.quiz_default_pass_mark)
                if quiz.questions:
                    checked = validate_answers(answer_list, len(quiz.questions))
                    grade = grade_answers(quiz.questions, checked, quiz.pass_mark)
                    final_score, final_result, final_pass = grade.score, grade.result, grade.pass_mark
                else:
                    final_score, final_result, final_pass = self._client_grade(
                        score, result, pass_mark
                    )

                attempt = {
                    "module": norm_text(module) or link.module or payload.get("module") or "",
                    "submittedAt": now_iso(),
                    "passMark": final_pass,
                    "score": final_score,
                    "result": final_result,
                    "answers": answer_list,
                }
                roster = safe_list(payload.get(ROSTER_FIELD))
                match = match_roster(roster, "slNo", link.participant_slno, link.participant_name)
                identity = {
                    "slNo": link.participant_slno or "",
                    "name": link.participant_name or "",
                    "designation": "",
                }
                updated = apply_attempt(roster, match, identity, final_score, final_result, attempt)
                if match.ambiguous:
                    log.warning(
                        "Roster match ambiguous; roster left unchanged",
                        extra={"report_id": report.id, "token": str(key)},
                    )
                if updated is not None:
                    payload[ROSTER_FIELD] = updated
                    self._reports.replace_payload(conn, report.id, payload)
                self._links.mark_used(conn, key)

        log.info(
            "Training link submission recorded",
            extra={"report_id": link.report_id, "score": final_score, "result": final_result},
        )
        return {
            "reportId": link.report_id,
            "participant": {
                "slNo": link.participant_slno or "",
                "name": link.participant_name or "",
            },
            "saved": {
                "score": final_score,
                "result": str(final_result).upper(),
                "passMark": final_pass,
            },
            "rosterAmbiguous": match.ambiguous,
        }

    @staticmethod
    def _client_grade(score: Any, result: Any, pass_mark: Any) -> tuple:
        number = as_number(score)
        if number is None:
            raise ValidationError("score required")
        verdict = norm_text(result).upper()
        if not verdict:
            raise ValidationError("result required")
        mark = as_number(pass_mark)
        if mark is None:
            raise ValidationError("passMark required")
        return whole(number), verdict, whole(mark)


__all__ = ["TrainingLinkService", "link_view", "report_summary"]
