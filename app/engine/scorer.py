# app/engine/scorer.py

"""
REGISTRATION QUIZ SCORING ENGINE.

Pure and deterministic. Every place that produces a score (the
submission path, the results CSV, the PDF leaderboard) goes through
this module, and the scoring-template CSV encodes the same rule as a
spreadsheet formula.

RULE (per question, after category filtering):
- open_text              -> not scored
- unanswered / NO_ANSWER -> 0
- exact match            -> +weight
- anything else          -> -0.5 * weight
"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from app.schemas.quiz import NO_ANSWER, Question, QuestionCategory

WRONG_ANSWER_PENALTY = 0.5
DEFAULT_WEIGHT = 1.0


def question_applies(question: Question, vehicle_category: Optional[str]) -> bool:
    """
    Category visibility filter.

    A question is shown to, scored for, and exported for a team only if
    it is a common question or its category equals the team's vehicle
    category.
    """
    if question.category == QuestionCategory.COMMON:
        return True
    return vehicle_category is not None and question.category.value == vehicle_category


def filter_questions(
    questions: Iterable[Question],
    vehicle_category: Optional[str],
) -> List[Question]:
    return [q for q in questions if question_applies(q, vehicle_category)]


def answer_for(answers: Mapping, question_id: int) -> Optional[str]:
    """Look up an answer by 1-based question id (JSON keys are strings)."""
    if not answers:
        return None
    value = answers.get(str(question_id))
    if value is None:
        value = answers.get(question_id)
    return value


def is_unanswered(answer: Optional[str]) -> bool:
    return answer is None or answer == "" or answer == NO_ANSWER


def resolve_weight(
    question: Question,
    points: Optional[Sequence[float]] = None,
) -> float:
    """
    Point weight for a question.

    The question's own ``weight`` wins. Otherwise the positional point
    table (indexed by 1-based question id) is used, and finally 1.
    """
    if question.weight is not None:
        return float(question.weight)
    if points and 1 <= question.id <= len(points):
        return float(points[question.id - 1])
    return DEFAULT_WEIGHT


def score_question(
    question: Question,
    answer: Optional[str],
    weight: float = DEFAULT_WEIGHT,
) -> Optional[float]:
    """
    Score a single question.

    Returns None for open_text questions (they never contribute), so
    callers can tell "not scored" apart from a zero.
    """
    if question.is_open_text:
        return None

    if is_unanswered(answer):
        return 0.0

    if answer == question.correct_option:
        return weight

    return -WRONG_ANSWER_PENALTY * weight


def score_breakdown(
    questions: Sequence[Question],
    answers: Mapping,
    points: Optional[Sequence[float]] = None,
) -> Dict[int, Optional[float]]:
    return {
        q.id: score_question(q, answer_for(answers, q.id), resolve_weight(q, points))
        for q in questions
    }


def score(
    questions: Sequence[Question],
    answers: Mapping,
    points: Optional[Sequence[float]] = None,
) -> float:
    """
    Total score for an already-filtered question set.

    Args:
        questions: questions relevant to the team's vehicle category
        answers: question id -> option text, free text or NO_ANSWER
        points: optional positional weight table

    Returns:
        Signed total, e.g. 1 correct + 1 wrong at weight 1 -> 0.5
    """
    total = sum(
        value
        for value in score_breakdown(questions, answers, points).values()
        if value is not None
    )
    return round(total, 4)


def score_for_team(
    questions: Sequence[Question],
    vehicle_category: Optional[str],
    answers: Mapping,
    points: Optional[Sequence[float]] = None,
) -> float:
    """Filter by vehicle category, then score."""
    return score(filter_questions(questions, vehicle_category), answers, points)
