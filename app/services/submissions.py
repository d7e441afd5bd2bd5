import logging
from typing import List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.errors import AlreadySubmitted, TransientStoreFailure
from app.engine.scorer import score_for_team
from app.models.quiz import QuizProgress, QuizSubmission
from app.schemas.quiz import QuizDefinition, SubmitRequest

logger = logging.getLogger(__name__)


class SubmissionService:
    @staticmethod
    def get_status(db: Session, team_email: str) -> Optional[QuizSubmission]:
        """Earliest persisted submission for the email, if any."""
        return db.execute(
            select(QuizSubmission)
            .where(QuizSubmission.team_email == team_email)
            .where(QuizSubmission.submitted.is_(True))
            .order_by(QuizSubmission.submitted_at.asc(), QuizSubmission.id.asc())
            .limit(1)
        ).scalar_one_or_none()

    @staticmethod
    def compute_score(
        payload: SubmitRequest,
        quiz: Optional[QuizDefinition],
        points: Optional[Sequence[float]] = None,
    ) -> float:
        """
        Authoritative score, from the server's own copy of the questions.

        Without quiz content the submission is still recorded with 0;
        the raw answers are kept so it can be rescored later.
        """
        if quiz is None or not quiz.questions:
            logger.warning(
                "Quiz content unavailable while scoring %s, recording score=0",
                payload.team_email,
            )
            return 0.0
        return score_for_team(quiz.questions, payload.vehicle_category, payload.answers or {}, points)

    @staticmethod
    def submit(
        db: Session,
        payload: SubmitRequest,
        quiz: Optional[QuizDefinition],
        ip_address: Optional[str] = None,
        points: Optional[Sequence[float]] = None,
    ) -> QuizSubmission:
        """
        Record the team's one submission.

        The unique constraint on team_email decides who wins a race; the
        loser gets AlreadySubmitted carrying the winner's row.
        """
        score = SubmissionService.compute_score(payload, quiz, points)
        team_email = payload.team_email.strip()

        submission = QuizSubmission(
            team_name=payload.team_name.strip(),
            team_email=team_email,
            vehicle_category=payload.vehicle_category,
            preferred_team_number=payload.preferred_team_number,
            alternative_team_number=payload.alternative_team_number,
            fuel_type=payload.fuel_type if payload.vehicle_category == "CV" else None,
            time_taken=payload.time_taken,
            score=score,
            answers=payload.answers or {},
            questions=payload.questions or [],
            submitted_at=utcnow(),
            ip_address=ip_address,
            submitted=True,
        )

        try:
            db.add(submission)
            db.flush()
            # same transaction: progress only disappears if the insert wins
            db.execute(
                delete(QuizProgress).where(QuizProgress.team_email == team_email)
            )
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = SubmissionService.get_status(db, team_email)
            if existing is None:
                logger.exception("Integrity error without an existing submission for %s", team_email)
                raise TransientStoreFailure()
            logger.info(
                "Duplicate submission for %s rejected, first submission id=%s kept",
                team_email,
                existing.id,
            )
            raise AlreadySubmitted(existing)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Error saving submission for %s", team_email)
            raise TransientStoreFailure()

        db.refresh(submission)
        logger.info(
            "Submission %s recorded: team=%s score=%s time=%ss",
            submission.id,
            submission.team_email,
            submission.score,
            submission.time_taken,
        )
        return submission

    @staticmethod
    def first_submissions(db: Session) -> List[QuizSubmission]:
        """
        All submitted rows, oldest first, one per email.

        The unique constraint should make duplicates impossible; if any
        show up they are an integrity problem, never a second attempt.
        """
        rows = db.execute(
            select(QuizSubmission)
            .where(QuizSubmission.submitted.is_(True))
            .order_by(QuizSubmission.submitted_at.asc(), QuizSubmission.id.asc())
        ).scalars().all()

        seen = set()
        firsts: List[QuizSubmission] = []
        for row in rows:
            if row.team_email in seen:
                logger.warning("Duplicate submission row id=%s for %s ignored", row.id, row.team_email)
                continue
            seen.add(row.team_email)
            firsts.append(row)
        return firsts

    @staticmethod
    def recent_submissions(db: Session, limit: int = 100, offset: int = 0) -> List[QuizSubmission]:
        return db.execute(
            select(QuizSubmission)
            .order_by(QuizSubmission.submitted_at.desc(), QuizSubmission.id.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()
