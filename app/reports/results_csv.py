import csv
import io
from typing import List, Optional, Sequence

from app.models.quiz import QuizSubmission
from app.reports.report_builder import (
    build_leaderboard,
    format_score,
    format_timestamp,
)
from app.schemas.quiz import QuizDefinition

BASE_COLUMNS = [
    "Rank",
    "Team Name",
    "Email",
    "Vehicle Category",
    "Submitted At",
    "Time Taken (seconds)",
]


def _cell(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        return format_score(value)
    return str(value)


def generate_results_csv(
    submissions: Sequence[QuizSubmission],
    quiz: QuizDefinition,
    points: Optional[Sequence[float]] = None,
) -> str:
    """
    One row per team with per-question scores recomputed from the raw
    answers. Open-text questions show the team's text; questions outside
    the team's vehicle category are left empty.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")

    header: List[str] = list(BASE_COLUMNS)
    header += [f"Q{q.id}" for q in quiz.questions]
    header.append("Total Score")
    writer.writerow(header)

    for result in build_leaderboard(submissions, quiz, points):
        s = result.submission
        row = [
            result.rank,
            s.team_name or "",
            s.team_email or "",
            s.vehicle_category or "",
            format_timestamp(s.submitted_at),
            s.time_taken or 0,
        ]
        row += [_cell(result.cells.get(q.id)) for q in quiz.questions]
        row.append(format_score(result.score))
        writer.writerow(row)

    return buf.getvalue()
