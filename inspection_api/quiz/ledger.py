"""
Quiz submission ledger for token-addressed training sessions.

A training session is a `training_session` report whose payload carries a
`quizToken` and a quiz. Graded attempts are recorded in
`payload.quizSubmissions`, keyed by participant, and are never overwritten:
each participant moves from unattempted to submitted exactly once.

The check-then-write runs under `SELECT ... FOR UPDATE` on the report row,
so two concurrent submissions for the same participant serialize and the
second one sees the first entry.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from psycopg_pool import ConnectionPool

from inspection_api.config import Settings, get_settings
from inspection_api.domain.models import Participant, SubmissionOutcome
from inspection_api.errors import AlreadySubmittedError, NoQuizError, NotFoundError, ValidationError
from inspection_api.quiz.grading import (
    ROSTER_FIELD,
    SUBMISSIONS_FIELD,
    apply_attempt,
    extract_quiz,
    find_submission,
    grade_answers,
    match_roster,
    participant_key,
    public_questions,
    validate_answers,
)
from inspection_api.repositories.reports import ReportRepository
from inspection_api.utils.logging import get_logger
from inspection_api.utils.normalize import norm_text, now_iso

log = get_logger(__name__)


def participant_from(raw: Any) -> Participant:
    if not isinstance(raw, dict):
        return Participant()
    return Participant(**{k: norm_text(v) for k, v in raw.items() if isinstance(k, str)})


def session_participant(payload: Dict[str, Any]) -> Participant:
    """The participant a session was issued for (`payload.participant`), if any."""
    return participant_from(payload.get("participant"))


class SubmissionLedger:
    """
    Grades and records one attempt per participant per session.

    Parameters
    ----------
    pool : ConnectionPool
        Injected connection pool; `submit` holds one connection for its
        whole transaction.
    reports : ReportRepository | None
        Report access; built from `pool` when omitted.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        reports: Optional[ReportRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._pool = pool
        self._settings = settings or get_settings()
        self._reports = reports or ReportRepository(pool, self._settings)

    def view(self, session_token: str) -> Dict[str, Any]:
        """
        Session as shown to the quiz-taker. Runs without a lock and may be a
        moment behind an in-flight submission.
        """
        token = norm_text(session_token)
        if not token:
            raise ValidationError("token required")
        report = self._reports.find_by_quiz_token(token)
        if report is None:
            raise NotFoundError("SESSION_NOT_FOUND")

        payload = report.payload
        quiz = extract_quiz(payload, self._settings.quiz_default_pass_mark)
        if not quiz.questions:
            raise NoQuizError()

        who = session_participant(payload)
        if not any((who.name, who.employeeId, who.slNo)):
            roster = payload.get(ROSTER_FIELD)
            if isinstance(roster, list) and roster:
                who = participant_from(roster[0])

        existing = find_submission(payload, participant_key(session_participant(payload), token), token)
        return {
            "token": token,
            "reportId": report.id,
            "participant": who.model_dump(),
            "quiz": {
                "module": quiz.module,
                "passMark": quiz.pass_mark,
                "questions": public_questions(quiz.questions),
            },
            "alreadySubmitted": existing is not None,
            "lastSubmittedAt": (existing or {}).get("submittedAt")
            or (existing or {}).get("submitted_at"),
        }

    def submit(
        self,
        session_token: str,
        answers: Any,
        participant: Optional[Participant] = None,
    ) -> SubmissionOutcome:
        """
        Grade `answers` and record the attempt exactly once.

        Steps, all inside one transaction holding the report row lock:
        resolve the quiz, reject a repeat attempt, validate the answers,
        score, write the ledger entry and the roster fields.

        Raises
        ------
        NotFoundError
            No session report carries the token.
        NoQuizError
            The session report has no questions.
        AlreadySubmittedError
            The participant already has an entry; carries the prior score.
        ValidationError
            Answer count or answer types are wrong.
        """
        token = norm_text(session_token)
        if not token:
            raise ValidationError("token required")
        if not isinstance(answers, list) or not answers:
            raise ValidationError("answers required")

        with self._pool.connection() as conn:
            with conn.transaction():
                report = self._reports.lock_by_quiz_token(conn, token)
                if report is None:
                    raise NotFoundError("SESSION_NOT_FOUND")

                payload = dict(report.payload)
                quiz = extract_quiz(payload, self._settings.quiz_default_pass_mark)
                if not quiz.questions:
                    raise NoQuizError()

                who = participant
                if who is None or not any((who.employeeId, who.name)):
                    who = session_participant(payload)
                key = participant_key(who, token)

                existing = find_submission(payload, key, token)
                if existing is not None:
                    log.info(
                        "Repeat quiz submission rejected",
                        extra={"report_id": report.id, "participant_key": key},
                    )
                    raise AlreadySubmittedError(
                        score=existing.get("score"),
                        result=existing.get("result"),
                        submitted_at=existing.get("submittedAt"),
                    )

                checked = validate_answers(answers, len(quiz.questions))
                grade = grade_answers(quiz.questions, checked, quiz.pass_mark)
                submitted_at = now_iso()

                entry = {
                    "sessionToken": token,
                    "participantKey": key,
                    "participant": who.model_dump(),
                    "submittedAt": submitted_at,
                    "passMark": grade.pass_mark,
                    "score": grade.score,
                    "result": grade.result,
                    "answers": checked,
                }
                ledger = payload.get(SUBMISSIONS_FIELD)
                ledger = dict(ledger) if isinstance(ledger, dict) else {}
                ledger[key] = entry
                payload[SUBMISSIONS_FIELD] = ledger

                roster_updated, roster_ambiguous = self._update_roster(
                    payload, who, quiz.module, entry
                )
                self._reports.replace_payload(conn, report.id, payload)

        log.info(
            "Quiz submission recorded",
            extra={
                "report_id": report.id,
                "participant_key": key,
                "score": grade.score,
                "result": grade.result,
            },
        )
        return SubmissionOutcome(
            report_id=report.id,
            participant_key=key,
            score=grade.score,
            result=grade.result,
            pass_mark=grade.pass_mark,
            submitted_at=submitted_at,
            roster_updated=roster_updated,
            roster_ambiguous=roster_ambiguous,
        )

    @staticmethod
    def _update_roster(
        payload: Dict[str, Any], who: Participant, module: str, entry: Dict[str, Any]
    ) -> tuple:
        roster = payload.get(ROSTER_FIELD)
        if not isinstance(roster, list):
            return False, False

        match = match_roster(roster, "employeeId", who.employeeId, who.name)
        if match.ambiguous:
            log.warning(
                "Roster match ambiguous; roster left unchanged",
                extra={"participant_key": entry["participantKey"]},
            )
            return False, True

        attempt = {
            "module": module or payload.get("module") or "",
            "submittedAt": entry["submittedAt"],
            "passMark": entry["passMark"],
            "score": entry["score"],
            "result": entry["result"],
            "answers": entry["answers"],
        }
        identity = {
            "slNo": who.slNo,
            "name": who.name,
            "designation": who.designation,
            "employeeId": who.employeeId,
        }
        updated = apply_attempt(roster, match, identity, entry["score"], entry["result"], attempt)
        if updated is None:
            return False, False
        payload[ROSTER_FIELD] = updated
        return True, False


__all__ = ["SubmissionLedger", "participant_from", "session_participant"]
