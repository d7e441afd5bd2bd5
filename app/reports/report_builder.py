from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from app.core.clock import as_utc
from app.engine.scorer import (
    answer_for,
    question_applies,
    resolve_weight,
    score_question,
)
from app.models.quiz import QuizSubmission
from app.schemas.quiz import NO_ANSWER, Question, QuizDefinition


@dataclass
class TeamResult:
    submission: QuizSubmission
    score: float
    # question id -> score, literal text (open_text) or None (not applicable)
    cells: Dict[int, object] = field(default_factory=dict)
    rank: int = 0

    @property
    def submitted_at(self) -> datetime:
        return as_utc(self.submission.submitted_at)


def _cells_for(
    submission: QuizSubmission,
    questions: Sequence[Question],
    points: Optional[Sequence[float]],
) -> Dict[int, object]:
    answers = submission.answers or {}
    cells: Dict[int, object] = {}
    for q in questions:
        if not question_applies(q, submission.vehicle_category):
            cells[q.id] = None
            continue
        answer = answer_for(answers, q.id)
        if q.is_open_text:
            cells[q.id] = "" if answer in (None, NO_ANSWER) else answer
            continue
        cells[q.id] = score_question(q, answer, resolve_weight(q, points))
    return cells


def rescore(
    submission: QuizSubmission,
    quiz: Optional[QuizDefinition],
    points: Optional[Sequence[float]] = None,
) -> TeamResult:
    """
    Re-derive a team's score from its raw answers.

    Without quiz content the stored score is the only thing available.
    """
    if quiz is None:
        return TeamResult(submission=submission, score=float(submission.score or 0.0))

    cells = _cells_for(submission, quiz.questions, points)
    total = sum(v for v in cells.values() if isinstance(v, float))
    return TeamResult(submission=submission, score=round(float(total), 4), cells=cells)


def rank_results(results: List[TeamResult]) -> List[TeamResult]:
    """Score descending; the earlier submission wins a tie."""
    ordered = sorted(results, key=lambda r: (-r.score, r.submitted_at, r.submission.id))
    for position, result in enumerate(ordered, start=1):
        result.rank = position
    return ordered


def build_leaderboard(
    submissions: Sequence[QuizSubmission],
    quiz: Optional[QuizDefinition],
    points: Optional[Sequence[float]] = None,
) -> List[TeamResult]:
    return rank_results([rescore(s, quiz, points) for s in submissions])


def format_timestamp(value: Optional[datetime]) -> str:
    value = as_utc(value)
    if value is None:
        return ""
    return value.strftime("%Y-%m-%d %H:%M:%S")


def format_score(value: float) -> str:
    return f"{value:g}"
