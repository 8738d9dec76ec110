"""
Quiz package for the Inspection API.

`grading` holds the pure scoring and roster logic; `ledger` and `links` wrap
it in row-locked transactions for token sessions and training links.
"""

from inspection_api.quiz.grading import (
    extract_quiz,
    grade_answers,
    match_roster,
    participant_key,
    public_questions,
    validate_answers,
)
from inspection_api.quiz.ledger import SubmissionLedger, participant_from
from inspection_api.quiz.links import TrainingLinkService

__all__ = [
    "SubmissionLedger",
    "TrainingLinkService",
    "extract_quiz",
    "grade_answers",
    "match_roster",
    "participant_from",
    "participant_key",
    "public_questions",
    "validate_answers",
]
