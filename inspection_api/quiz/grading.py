"""
Pure quiz logic: quiz extraction, participant identity, answer validation,
scoring and roster updates.

Nothing here touches the database; the ledger and the link service call these
functions while holding the row lock on the owning report.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from inspection_api.domain.models import Grade, Participant, Quiz
from inspection_api.errors import ValidationError
from inspection_api.utils.normalize import norm_key, norm_text, round_half_up, today_iso

SUBMISSIONS_FIELD = "quizSubmissions"
LEGACY_SUBMISSION_FIELD = "quizSubmission"
ROSTER_FIELD = "participants"


def as_number(value: Any) -> Optional[float]:
    """Number(value) semantics: numeric strings count, booleans and junk do not."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def whole(number: float) -> Union[int, float]:
    """`3.0` -> `3`; fractional values are kept as they are."""
    return int(number) if number == int(number) else number


def extract_quiz(payload: Dict[str, Any], default_pass_mark: int = 80) -> Quiz:
    """
    Locate the quiz in a report payload.

    The quiz object may live under `quiz`, `quizData` or `trainingQuiz`;
    questions fall back to a top-level `questions` list and the pass mark to
    `passMark` / `PASS_MARK` on the payload, then to `default_pass_mark`.
    """
    quiz = payload.get("quiz") or payload.get("quizData") or payload.get("trainingQuiz") or {}
    if not isinstance(quiz, dict):
        quiz = {}

    if isinstance(quiz.get("questions"), list):
        questions = quiz["questions"]
    elif isinstance(payload.get("questions"), list):
        questions = payload["questions"]
    else:
        questions = []

    module = quiz.get("module") or payload.get("module") or payload.get("moduleName") or ""

    raw_pass_mark = quiz.get("passMark")
    if raw_pass_mark is None:
        raw_pass_mark = payload.get("passMark")
    if raw_pass_mark is None:
        raw_pass_mark = payload.get("PASS_MARK")
    pass_mark = as_number(raw_pass_mark)

    return Quiz(
        module=str(module),
        pass_mark=whole(pass_mark) if pass_mark is not None else default_pass_mark,
        questions=[q if isinstance(q, dict) else {} for q in questions],
    )


def public_questions(questions: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Questions as shown to a quiz-taker: the `correct` index is removed."""
    return [{k: v for k, v in q.items() if k != "correct"} for q in questions]


def participant_key(participant: Optional[Participant], session_token: str) -> str:
    """
    Stable ledger key for a quiz-taker.

    `emp:<employee id>` when known, else `name:<name>`, else the one-time
    `token:<session token>`. Employee ids and names are compared
    case-insensitively with whitespace collapsed.
    """
    if participant is not None:
        employee_id = norm_key(participant.employeeId)
        if employee_id:
            return f"emp:{employee_id}"
        name = norm_key(participant.name)
        if name:
            return f"name:{name}"
    return f"token:{norm_text(session_token)}"


def find_submission(
    payload: Dict[str, Any], key: str, session_token: str
) -> Optional[Dict[str, Any]]:
    """
    Existing ledger entry for `key`, the raw session token (older entries were
    keyed by token) or the single legacy `quizSubmission` field.
    """
    ledger = payload.get(SUBMISSIONS_FIELD)
    if isinstance(ledger, dict):
        for candidate in (key, session_token):
            entry = ledger.get(candidate)
            if entry:
                return entry if isinstance(entry, dict) else {}

    legacy = payload.get(LEGACY_SUBMISSION_FIELD)
    if isinstance(legacy, dict) and legacy.get("token") == session_token:
        return legacy
    return None


def validate_answers(answers: Any, expected: int) -> List[int]:
    """
    Check the answer list against the question count.

    Raises
    ------
    ValidationError
        `ANSWERS_LENGTH_MISMATCH` (with `expected` and `got`) or
        `INVALID_ANSWER_AT_<i>` for the first non-integer answer. Whole floats
        such as `1.0` count as integers.
    """
    if not isinstance(answers, list):
        raise ValidationError("answers required")
    if len(answers) != expected:
        raise ValidationError("ANSWERS_LENGTH_MISMATCH", expected=expected, got=len(answers))
    for i, answer in enumerate(answers):
        if isinstance(answer, float) and answer.is_integer():
            continue
        if isinstance(answer, bool) or not isinstance(answer, int):
            raise ValidationError(f"INVALID_ANSWER_AT_{i}")
    return [int(answer) for answer in answers]


def grade_answers(
    questions: Sequence[Dict[str, Any]], answers: Sequence[int], pass_mark: Union[int, float]
) -> Grade:
    """
    Score = round(100 * correct / total), halves rounded up; PASS when the
    score reaches the pass mark. Questions without a numeric `correct` index
    can never be answered correctly.
    """
    total = len(questions)
    if total == 0:
        raise ValidationError("NO_QUIZ_IN_REPORT")
    correct = 0
    for question, answer in zip(questions, answers):
        expected = as_number(question.get("correct"))
        if expected is not None and answer == expected:
            correct += 1
    score = round_half_up(correct / total * 100)
    return Grade(
        correct=correct,
        total=total,
        score=score,
        pass_mark=pass_mark,
        result="PASS" if score >= pass_mark else "FAIL",
    )


@dataclass(frozen=True)
class RosterMatch:
    index: Optional[int]
    ambiguous: bool = False


def match_roster(
    roster: Sequence[Any], ident_field: str, ident: Any, name: Any
) -> RosterMatch:
    """
    Find the roster entry for a participant.

    Matches on `ident_field` first. Without an identifier hit, falls back to
    the case-insensitive name among entries that carry no conflicting
    identifier. More than one hit at either stage is reported as ambiguous and
    resolves to no index.
    """
    ident_k = norm_key(ident)
    name_k = norm_key(name)
    entries = [(i, p) for i, p in enumerate(roster) if isinstance(p, dict)]

    if ident_k:
        hits = [i for i, p in entries if norm_key(p.get(ident_field)) == ident_k]
        if len(hits) == 1:
            return RosterMatch(hits[0])
        if len(hits) > 1:
            return RosterMatch(None, ambiguous=True)

    if name_k:
        hits = [
            i
            for i, p in entries
            if norm_key(p.get("name")) == name_k
            and (not ident_k or not norm_key(p.get(ident_field)))
        ]
        if len(hits) == 1:
            return RosterMatch(hits[0])
        if len(hits) > 1:
            return RosterMatch(None, ambiguous=True)

    return RosterMatch(None)


def apply_attempt(
    roster: Sequence[Any],
    match: RosterMatch,
    identity: Dict[str, str],
    score: Any,
    result: str,
    attempt: Dict[str, Any],
) -> Optional[List[Any]]:
    """
    Roster with the participant's denormalized score fields written.

    Updates the matched entry, or appends `identity` as a new entry when
    nothing matched. Returns None (leave the roster alone) when the match is
    ambiguous or there is no identity to append.
    """
    if match.ambiguous:
        return None
    fields = {
        "score": str(score),
        "result": str(result).upper(),
        "lastQuizAt": today_iso(),
        "quizAttempt": attempt,
    }
    updated = list(roster)
    if match.index is not None:
        updated[match.index] = {**updated[match.index], **fields}
        return updated
    if not any(identity.values()):
        return None
    updated.append({**identity, **fields})
    return updated


__all__ = [
    "LEGACY_SUBMISSION_FIELD",
    "as_number",
    "ROSTER_FIELD",
    "SUBMISSIONS_FIELD",
    "RosterMatch",
    "apply_attempt",
    "extract_quiz",
    "find_submission",
    "grade_answers",
    "match_roster",
    "participant_key",
    "public_questions",
    "validate_answers",
]
