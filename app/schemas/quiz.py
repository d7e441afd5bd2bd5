# app/schemas/quiz.py

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, ValidationError, field_validator

from app.core.clock import as_utc, isoformat


QUIZ_DURATION = timedelta(minutes=120)
QUIZ_DURATION_MINUTES = 120

NO_ANSWER = "NO_ANSWER"

VehicleCategory = Literal["EV", "CV"]


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    OPEN_TEXT = "open_text"


class QuestionCategory(str, Enum):
    COMMON = "common"
    EV = "EV"
    CV = "CV"


class QuizStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    FINISHED = "finished"


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# =========================
# Quiz content
# =========================
class QuestionFile(CamelModel):
    url: str
    filename: str = "download"
    size: Optional[int] = None
    mime_type: Optional[str] = Field(None, alias="mimeType")


class Question(CamelModel):
    id: int
    text: str
    type: QuestionType = QuestionType.MULTIPLE_CHOICE
    options: List[str] = []
    correct_option: Optional[str] = Field(None, alias="correctOption")
    image: Optional[str] = None
    file: Optional[QuestionFile] = None
    category: QuestionCategory = QuestionCategory.COMMON
    weight: Optional[float] = None

    @property
    def is_open_text(self) -> bool:
        return self.type == QuestionType.OPEN_TEXT

    def public_dict(self) -> Dict[str, Any]:
        """Browser-safe view: never includes the correct option."""
        return self.model_dump(
            by_alias=True,
            mode="json",
            exclude={"correct_option", "weight"},
        )


class QuizDefinition(CamelModel):
    id: str
    title: str = "Formula IHU Registration Quiz"
    is_active: bool = Field(False, alias="isActive")
    scheduled_start_time: datetime = Field(..., alias="scheduledStartTime")
    instructions: str = ""
    questions: List[Question] = []

    @field_validator("scheduled_start_time")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @property
    def end_time(self) -> datetime:
        return self.scheduled_start_time + QUIZ_DURATION

    def status_at(self, now: datetime) -> QuizStatus:
        now = as_utc(now)
        if now < self.scheduled_start_time:
            return QuizStatus.PENDING
        if now < self.end_time:
            return QuizStatus.ACTIVE
        return QuizStatus.FINISHED

    def in_window(self, now: datetime) -> bool:
        return self.status_at(now) == QuizStatus.ACTIVE

    def is_attemptable(self, now: datetime) -> bool:
        # the most-recent fallback quiz is display-only
        return self.is_active and self.in_window(now)

    def public_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "isActive": self.is_active,
            "scheduledStartTime": isoformat(self.scheduled_start_time),
            "durationMinutes": QUIZ_DURATION_MINUTES,
            "questions": [q.public_dict() for q in self.questions],
            "instructions": self.instructions,
        }

    def admin_dict(self) -> Dict[str, Any]:
        body = self.public_dict()
        body["questions"] = [
            q.model_dump(by_alias=True, mode="json") for q in self.questions
        ]
        return body


# =========================
# Requests
# =========================
Answers = Dict[str, str]


def _stringify_answer_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): v for k, v in value.items()}
    return value


class ProgressSaveRequest(CamelModel):
    team_name: str = Field("", alias="teamName")
    team_email: str = Field("", alias="teamEmail")
    answers: Optional[Answers] = None
    start_time: Optional[datetime] = Field(None, alias="startTime")
    current_question: int = Field(1, alias="currentQuestion", ge=1)

    @field_validator("answers", mode="before")
    @classmethod
    def _stringify_keys(cls, value: Any) -> Any:
        return _stringify_answer_keys(value)


class SubmitRequest(CamelModel):
    team_name: str = Field("", alias="teamName")
    team_email: str = Field("", alias="teamEmail")
    vehicle_category: Optional[VehicleCategory] = Field(None, alias="vehicleCategory")
    preferred_team_number: Optional[str] = Field(None, alias="preferredTeamNumber")
    alternative_team_number: Optional[str] = Field(None, alias="alternativeTeamNumber")
    fuel_type: Optional[str] = Field(None, alias="fuelType")
    answers: Optional[Answers] = None
    time_taken: int = Field(0, alias="timeTaken", ge=0)
    # client copy, stored for the audit trail only
    questions: Optional[List[Dict[str, Any]]] = None
    # ignored: the server always scores
    score: Optional[float] = None

    @field_validator("answers", mode="before")
    @classmethod
    def _stringify_keys(cls, value: Any) -> Any:
        return _stringify_answer_keys(value)


class StudioLoginRequest(BaseModel):
    password: str


# =========================
# Responses
# =========================
def submission_summary(row: Any) -> Dict[str, Any]:
    return {
        "id": row.id,
        "team_name": row.team_name,
        "team_email": row.team_email,
        "vehicle_category": row.vehicle_category,
        "submitted_at": isoformat(row.submitted_at),
        "submitted": bool(row.submitted),
        "time_taken": row.time_taken,
        "score": row.score,
    }


def submission_detail(row: Any) -> Dict[str, Any]:
    body = submission_summary(row)
    body.update({
        "preferred_team_number": row.preferred_team_number,
        "alternative_team_number": row.alternative_team_number,
        "fuel_type": row.fuel_type,
        "answers": row.answers or {},
        "questions": row.questions or [],
        "ip_address": row.ip_address,
    })
    return body


def progress_dict(row: Any) -> Dict[str, Any]:
    return {
        "team_name": row.team_name,
        "team_email": row.team_email,
        "answers": row.answers or {},
        "start_time": isoformat(row.start_time),
        "current_question": row.current_question,
        "last_updated": isoformat(row.last_updated),
    }


_email_adapter = TypeAdapter(EmailStr)


def is_valid_email(value: str) -> bool:
    try:
        _email_adapter.validate_python(value)
    except ValidationError:
        return False
    return True
