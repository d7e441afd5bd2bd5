import io
from datetime import datetime
from typing import List, Optional, Sequence
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from app.core.clock import format_duration, utcnow
from app.models.quiz import QuizSubmission
from app.reports.report_builder import (
    build_leaderboard,
    format_score,
    format_timestamp,
)
from app.schemas.quiz import QuizDefinition

TITLE = "Formula IHU Registration Quiz - Results"
HEADER_BLUE = colors.Color(0, 102 / 255, 1)


def _summary_lines(results, question_count: int) -> List[str]:
    total = len(results)
    avg_score = sum(r.score for r in results) / total if total else 0.0
    avg_time = round(sum(r.submission.time_taken or 0 for r in results) / total) if total else 0
    return [
        f"Total Submissions: {total}",
        f"Total Questions: {question_count}",
        f"Average Score: {avg_score:.2f}",
        f"Average Time: {format_duration(avg_time)}",
    ]


def generate_results_pdf(
    submissions: Sequence[QuizSubmission],
    quiz: Optional[QuizDefinition],
    points: Optional[Sequence[float]] = None,
    generated_at: Optional[datetime] = None,
) -> bytes:
    """
    Printable leaderboard (score desc, earlier submission wins ties) with
    a question / correct-answer appendix when quiz content is available.
    """
    styles = getSampleStyleSheet()
    small = styles["BodyText"].clone("Small", fontSize=8, leading=10)

    results = build_leaderboard(submissions, quiz, points)
    if quiz is not None:
        question_count = len(quiz.questions)
    else:
        question_count = len(submissions[0].questions or []) if submissions else 0

    story = [
        Paragraph(TITLE, styles["Title"]),
        Paragraph(
            f"Generated: {format_timestamp(generated_at or utcnow())} UTC",
            styles["Italic"],
        ),
        Spacer(1, 6 * mm),
        Paragraph("Summary Statistics", styles["Heading2"]),
    ]
    story += [Paragraph(line, styles["BodyText"]) for line in _summary_lines(results, question_count)]
    story.append(Spacer(1, 6 * mm))

    table_data = [["Rank", "Team Name", "Email", "Cat.", "Score", "Time", "Submitted At"]]
    for r in results:
        s = r.submission
        table_data.append([
            str(r.rank),
            Paragraph(escape(s.team_name or "N/A"), small),
            Paragraph(escape(s.team_email or "N/A"), small),
            s.vehicle_category or "",
            format_score(r.score),
            format_duration(s.time_taken or 0),
            format_timestamp(s.submitted_at),
        ])

    table = Table(
        table_data,
        repeatRows=1,
        colWidths=[12 * mm, 38 * mm, 48 * mm, 12 * mm, 16 * mm, 18 * mm, 36 * mm],
    )
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_BLUE),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.Color(0.96, 0.96, 0.96)]),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
    ]))
    story.append(table)

    if quiz is not None and quiz.questions:
        story.append(PageBreak())
        story.append(Paragraph("Question Breakdown", styles["Heading1"]))
        for q in quiz.questions:
            story.append(Paragraph(
                f"<b>Question {q.id} ({escape(q.category.value)}):</b> {escape(q.text)}",
                styles["BodyText"],
            ))
            if q.is_open_text:
                story.append(Paragraph("<i>Open text answer (not scored)</i>", small))
            for index, option in enumerate(q.options):
                label = f"{chr(65 + index)}. {escape(option)}"
                if option == q.correct_option:
                    story.append(Paragraph(
                        f'<font color="#009600"><b>{label} (correct)</b></font>', small
                    ))
                else:
                    story.append(Paragraph(label, small))
            story.append(Spacer(1, 4 * mm))

    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=14 * mm,
        rightMargin=14 * mm,
        topMargin=16 * mm,
        bottomMargin=16 * mm,
        title=TITLE,
    )
    doc.build(story)
    return buf.getvalue()
