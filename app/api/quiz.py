import logging
from typing import Dict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import client_ip
from app.core.config import settings
from app.core.errors import AlreadySubmitted, ValidationFailure
from app.db.session import get_db
from app.engine.scorer import filter_questions
from app.schemas.quiz import (
    ProgressSaveRequest,
    SubmitRequest,
    is_valid_email,
    progress_dict,
    submission_summary,
)
from app.services.notifications import ConfirmationMailer, get_mailer
from app.services.progress import ProgressService
from app.services.quiz_config import QuizConfigLoader, get_quiz_loader
from app.services.submissions import SubmissionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quiz", tags=["Quiz"])

CONFIG_CACHE_CONTROL = "public, s-maxage=30, stale-while-revalidate=60"


def _require_team_email(team_email: str) -> str:
    team_email = (team_email or "").strip()
    if not team_email:
        raise ValidationFailure({"teamEmail": "Team email is required"}, "Team email is required")
    return team_email


# -------------------------------------------------
# GET: Quiz config (browser-safe, no correct answers)
# -------------------------------------------------
@router.get("/config")
def get_quiz_config(loader: QuizConfigLoader = Depends(get_quiz_loader)):
    quiz = loader.get_quiz()
    if quiz is None:
        raise HTTPException(status_code=404, detail="No quiz found")

    return JSONResponse(
        content=quiz.public_dict(),
        headers={"Cache-Control": CONFIG_CACHE_CONTROL},
    )


# -------------------------------------------------
# Progress
# -------------------------------------------------
@router.post("/progress")
def save_progress(
    payload: ProgressSaveRequest,
    db: Session = Depends(get_db),
):
    details: Dict[str, str] = {}
    if not payload.team_name.strip():
        details["teamName"] = "Team name is required"
    if not payload.team_email.strip():
        details["teamEmail"] = "Team email is required"
    if details:
        raise ValidationFailure(details, "Team name and email are required")

    try:
        existing = SubmissionService.get_status(db, payload.team_email.strip())
    except SQLAlchemyError:
        logger.exception("Submission check failed while saving progress")
        return {"success": True, "warning": "Progress saved locally"}

    if existing is not None:
        raise AlreadySubmitted(existing, "Team has already submitted the quiz")

    if not ProgressService.save(db, payload):
        return {"success": True, "warning": "Progress saved locally"}

    return {"success": True}


@router.get("/progress")
def get_progress(
    team_email: str = Query("", alias="teamEmail"),
    db: Session = Depends(get_db),
):
    team_email = _require_team_email(team_email)
    try:
        row = ProgressService.get(db, team_email)
    except SQLAlchemyError:
        logger.exception("Failed to read progress for %s", team_email)
        return {"progress": None}
    return {"progress": progress_dict(row) if row else None}


# -------------------------------------------------
# Submission
# -------------------------------------------------
@router.get("/submit")
def get_submission_status(
    team_email: str = Query("", alias="teamEmail"),
    db: Session = Depends(get_db),
):
    team_email = _require_team_email(team_email)
    try:
        row = SubmissionService.get_status(db, team_email)
    except SQLAlchemyError:
        logger.exception("Failed to check submission for %s", team_email)
        raise HTTPException(status_code=500, detail="Failed to check submission")

    return {
        "submitted": row is not None,
        "submission": submission_summary(row) if row else None,
    }


def _validate_submission(payload: SubmitRequest) -> None:
    details: Dict[str, str] = {}
    if not payload.team_name.strip():
        details["teamName"] = "Team name is required"
    if not payload.team_email.strip():
        details["teamEmail"] = "Team email is required"
    elif not is_valid_email(payload.team_email.strip()):
        details["teamEmail"] = "Invalid email address"
    if payload.vehicle_category is None:
        details["vehicleCategory"] = "Vehicle category is required"
    if payload.answers is None:
        details["answers"] = "Answers are required"
    if details:
        raise ValidationFailure(details)


@router.post("/submit")
def submit_quiz(
    payload: SubmitRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    loader: QuizConfigLoader = Depends(get_quiz_loader),
    mailer: ConfirmationMailer = Depends(get_mailer),
):
    # -------------------------------
    # 1. Validate
    # -------------------------------
    _validate_submission(payload)

    # -------------------------------
    # 2. Score + insert (race guarded)
    # -------------------------------
    quiz = loader.get_quiz()
    submission = SubmissionService.submit(
        db,
        payload,
        quiz,
        ip_address=client_ip(request),
        points=settings.QUIZ_QUESTION_POINTS,
    )

    # -------------------------------
    # 3. Confirmation email (best effort)
    # -------------------------------
    questions = filter_questions(quiz.questions, payload.vehicle_category) if quiz else []
    background_tasks.add_task(
        mailer.send,
        submission.team_name,
        submission.team_email,
        submission.time_taken,
        questions,
        dict(submission.answers or {}),
    )

    return {"success": True, "submissionId": submission.id}

