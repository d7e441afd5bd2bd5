import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.models.quiz import QuizProgress
from app.schemas.quiz import ProgressSaveRequest

logger = logging.getLogger(__name__)


def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"progress upsert not supported on {dialect}")


class ProgressService:
    @staticmethod
    def save(db: Session, payload: ProgressSaveRequest) -> bool:
        """
        Upsert the team's progress row (one per email).

        Returns False if the store failed; the caller still reports
        success because the device keeps its own copy.
        """
        now = utcnow()
        values = {
            "team_name": payload.team_name.strip(),
            "team_email": payload.team_email.strip(),
            "answers": payload.answers or {},
            "start_time": payload.start_time,
            "current_question": payload.current_question or 1,
            "last_updated": now,
        }

        insert = _insert_for(db)
        stmt = insert(QuizProgress).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[QuizProgress.team_email],
            set_={
                "team_name": stmt.excluded.team_name,
                "answers": stmt.excluded.answers,
                "start_time": stmt.excluded.start_time,
                "current_question": stmt.excluded.current_question,
                "last_updated": stmt.excluded.last_updated,
            },
        )

        try:
            db.execute(stmt)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to save progress for %s", values["team_email"])
            return False
        return True

    @staticmethod
    def get(db: Session, team_email: str) -> Optional[QuizProgress]:
        return db.execute(
            select(QuizProgress).where(QuizProgress.team_email == team_email)
        ).scalar_one_or_none()

