import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import require_admin
from app.core.clock import as_utc, isoformat, utcnow
from app.core.config import settings
from app.core.errors import ConfigUnavailable, ContentWriteFailure, ValidationFailure
from app.db.session import get_db
from app.models.quiz import QuizSubmission
from app.reports.results_csv import generate_results_csv
from app.reports.results_pdf import generate_results_pdf
from app.reports.scoring_template import generate_scoring_template
from app.schemas.quiz import submission_detail
from app.services.quiz_config import QuizConfigLoader, get_quiz_loader
from app.services.quiz_import import DEFAULT_TITLE, QuizImporter, parse_questions_csv, parse_start_time
from app.services.submissions import SubmissionService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/quiz",
    tags=["Quiz Admin"],
    dependencies=[Depends(require_admin)],
)


def _first_submissions(db: Session) -> List[QuizSubmission]:
    try:
        return SubmissionService.first_submissions(db)
    except SQLAlchemyError:
        logger.exception("Error fetching submissions")
        raise HTTPException(status_code=500, detail="Failed to fetch submissions")


def _attachment(content, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _today() -> str:
    return utcnow().date().isoformat()


# -------------------------------------------------
# Quiz content (with correct answers)
# -------------------------------------------------
@router.get("/latest")
def get_latest_quiz(loader: QuizConfigLoader = Depends(get_quiz_loader)):
    quiz = loader.get_latest_quiz()
    if quiz is None:
        raise HTTPException(status_code=404, detail="No quiz found")
    return quiz.admin_dict()


# -------------------------------------------------
# Submissions
# -------------------------------------------------
@router.get("/admin/submissions")
def list_submissions(db: Session = Depends(get_db)):
    rows = _first_submissions(db)
    rows.sort(key=lambda s: (as_utc(s.submitted_at), s.id), reverse=True)
    return {"submissions": [submission_detail(s) for s in rows]}


@router.get("/ip-logs")
def get_ip_logs(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    try:
        rows = SubmissionService.recent_submissions(db, limit=limit, offset=offset)
    except SQLAlchemyError:
        logger.exception("Error fetching IP logs")
        raise HTTPException(status_code=500, detail="Failed to fetch IP logs")

    groups: Dict[str, List[QuizSubmission]] = defaultdict(list)
    for row in rows:
        groups[row.ip_address or "unknown"].append(row)

    ip_stats: List[Dict[str, Any]] = [
        {
            "ip": ip,
            "count": len(items),
            "teams": [
                {
                    "teamName": s.team_name,
                    "teamEmail": s.team_email,
                    "submittedAt": isoformat(s.submitted_at),
                    "score": s.score,
                    "timeTaken": s.time_taken,
                }
                for s in items
            ],
        }
        for ip, items in groups.items()
    ]
    ip_stats.sort(key=lambda entry: entry["count"], reverse=True)

    return {
        "total": len(rows),
        "uniqueIPs": len(groups),
        "ipStats": ip_stats,
    }


# -------------------------------------------------
# Exports
# -------------------------------------------------
@router.get("/export/csv")
def export_results_csv(
    db: Session = Depends(get_db),
    loader: QuizConfigLoader = Depends(get_quiz_loader),
):
    quiz = loader.get_quiz()
    if quiz is None:
        raise ConfigUnavailable("Quiz not found, scores cannot be recomputed")

    content = generate_results_csv(_first_submissions(db), quiz, settings.QUIZ_QUESTION_POINTS)
    return _attachment(content, "text/csv; charset=utf-8", f"quiz-results-{_today()}.csv")


@router.get("/export/pdf")
def export_results_pdf(
    db: Session = Depends(get_db),
    loader: QuizConfigLoader = Depends(get_quiz_loader),
):
    # the leaderboard still renders (from stored scores) without quiz content
    quiz = loader.get_quiz()
    content = generate_results_pdf(_first_submissions(db), quiz, settings.QUIZ_QUESTION_POINTS)
    return _attachment(content, "application/pdf", f"quiz-results-{_today()}.pdf")


@router.get("/export/scoring")
def export_scoring_template(
    db: Session = Depends(get_db),
    loader: QuizConfigLoader = Depends(get_quiz_loader),
):
    quiz = loader.get_quiz()
    if quiz is None:
        raise ConfigUnavailable("Quiz not found")

    content = generate_scoring_template(_first_submissions(db), quiz, settings.QUIZ_QUESTION_POINTS)
    return _attachment(content, "text/csv; charset=utf-8", "quiz-scoring-template.csv")


# -------------------------------------------------
# Question import (CSV -> content store)
# -------------------------------------------------
@router.post("/import")
def import_quiz(
    file: Optional[UploadFile] = File(None),
    quiz_id: Optional[str] = Query(None, alias="quizId"),
    title: str = Query(DEFAULT_TITLE),
    is_active: bool = Query(False, alias="isActive"),
    scheduled_start_time: Optional[str] = Query(None, alias="scheduledStartTime"),
    loader: QuizConfigLoader = Depends(get_quiz_loader),
):
    importer = QuizImporter(loader)
    if not importer.configured:
        raise ContentWriteFailure("Sanity client not configured")
    if file is None:
        raise ValidationFailure({"file": "No file provided"}, "No file provided")

    questions = parse_questions_csv(file.file.read())
    return importer.import_questions(
        questions,
        quiz_id=quiz_id,
        title=title,
        is_active=is_active,
        scheduled_start_time=parse_start_time(scheduled_start_time),
    )
