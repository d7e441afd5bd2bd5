from sqlalchemy import Boolean, Column, DateTime, Float, Integer, JSON, String

from app.core.clock import utcnow
from app.db.base import Base


# =========================
# Submission (one per team)
# =========================
class QuizSubmission(Base):
    __tablename__ = "quiz_submissions"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # UNIQUE is the only thing that decides "first submission wins"
    team_email = Column(String(255), unique=True, nullable=False, index=True)
    team_name = Column(String(255), nullable=False)

    vehicle_category = Column(String(2), nullable=False)
    preferred_team_number = Column(String(50), nullable=True)
    alternative_team_number = Column(String(50), nullable=True)
    fuel_type = Column(String(50), nullable=True)

    score = Column(Float, nullable=False, default=0.0)
    time_taken = Column(Integer, nullable=False, default=0)

    answers = Column(JSON, nullable=False)
    questions = Column(JSON, nullable=True)

    submitted_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    ip_address = Column(String(64), nullable=True)
    submitted = Column(Boolean, default=True, nullable=False)


# =========================
# Progress (pre-submission)
# =========================
class QuizProgress(Base):
    __tablename__ = "quiz_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)

    team_email = Column(String(255), unique=True, nullable=False, index=True)
    team_name = Column(String(255), nullable=False)

    answers = Column(JSON, nullable=False, default=dict)
    start_time = Column(DateTime(timezone=True), nullable=True)
    current_question = Column(Integer, nullable=False, default=1)

    last_updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
