"""
Scoring template CSV for manual grading in a spreadsheet.

Row 1 is the header, row 2 the editable config row (weight and correct
answer per question), rows 3.. one team each. Every score cell is a
live formula pointing at the config row, so editing a weight or a
correct answer regrades every team. The formula is the same rule as
app.engine.scorer.
"""

import csv
import io
from typing import List, Optional, Sequence

from app.core.clock import as_utc
from app.engine.scorer import answer_for, question_applies, resolve_weight
from app.models.quiz import QuizSubmission
from app.reports.report_builder import format_score, format_timestamp
from app.schemas.quiz import NO_ANSWER, QuizDefinition

BASE_COLUMNS = [
    "Team Name",
    "Email",
    "Vehicle Category",
    "Submission Time",
    "Time Taken (seconds)",
]

CONFIG_ROW = 2
FIRST_DATA_ROW = 3


def column_letter(index: int) -> str:
    """0-based column index -> spreadsheet letters (0 -> A, 26 -> AA)."""
    letters = ""
    index += 1
    while index > 0:
        index, rem = divmod(index - 1, 26)
        letters = chr(65 + rem) + letters
    return letters


def score_formula(answer_cell: str, correct_cell: str, weight_cell: str) -> str:
    return (
        f'=IF({answer_cell}="",0,'
        f"IF({answer_cell}={correct_cell},{weight_cell},-{weight_cell}*0.5))"
    )


def generate_scoring_template(
    submissions: Sequence[QuizSubmission],
    quiz: QuizDefinition,
    points: Optional[Sequence[float]] = None,
) -> str:
    questions = quiz.questions
    base = len(BASE_COLUMNS)

    # per question: Weight, Correct Answer, Answer, Score
    def col(question_index: int, offset: int) -> str:
        return column_letter(base + question_index * 4 + offset)

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")

    header: List[str] = list(BASE_COLUMNS)
    for q in questions:
        header += [
            f"Q{q.id} Weight",
            f"Q{q.id} Correct Answer",
            f"Q{q.id} Answer",
            f"Q{q.id} Score",
        ]
    header.append("Final Score")
    writer.writerow(header)

    config: List[str] = ["CONFIG (edit weights and correct answers here)", "", "", "", ""]
    for q in questions:
        if q.is_open_text:
            config += ["", "", "", ""]
            continue
        config += [format_score(resolve_weight(q, points)), q.correct_option or "", "", ""]
    config.append("")
    writer.writerow(config)

    ordered = sorted(submissions, key=lambda s: (as_utc(s.submitted_at), s.id))
    for row_number, s in enumerate(ordered, start=FIRST_DATA_ROW):
        answers = s.answers or {}
        row: List[str] = [
            s.team_name or "",
            s.team_email or "",
            s.vehicle_category or "",
            format_timestamp(s.submitted_at),
            str(s.time_taken or 0),
        ]
        score_cells: List[str] = []

        for i, q in enumerate(questions):
            if not question_applies(q, s.vehicle_category):
                row += ["", "", "", ""]
                continue

            answer = answer_for(answers, q.id)
            answer_text = "" if answer in (None, NO_ANSWER) else answer

            if q.is_open_text:
                # shown for reading, never scored
                row += ["", "", answer_text, ""]
                continue

            answer_cell = f"{col(i, 2)}{row_number}"
            weight_cell = f"{col(i, 0)}${CONFIG_ROW}"
            correct_cell = f"{col(i, 1)}${CONFIG_ROW}"

            row += ["", "", answer_text, score_formula(answer_cell, correct_cell, weight_cell)]
            score_cells.append(f"{col(i, 3)}{row_number}")

        row.append(f"=SUM({','.join(score_cells)})" if score_cells else "0")
        writer.writerow(row)

    return buf.getvalue()
