"""
Client-side quiz attempt lifecycle.

    loading -> waiting -> ready -> active -> end_form -> submitted

``ended`` and ``unavailable`` are display-only dead ends. A persisted
submission found at any check forces ``submitted`` with the server's
score and time; locally computed values are never shown once one exists.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.client.api_client import QuizApiClient, QuizApiError, SubmissionStatus
from app.client.autosave import LocalProgressStorage, ProgressAutosaver, ProgressTicker
from app.core.clock import Clock, as_utc, utcnow
from app.core.errors import AlreadySubmitted, TransientStoreFailure
from app.engine.scorer import answer_for, filter_questions
from app.schemas.quiz import Question, QuizDefinition, QuizStatus

logger = logging.getLogger(__name__)

MAX_WAKEUP_DELAY = timedelta(hours=24)


class QuizState(str, Enum):
    LOADING = "loading"
    WAITING = "waiting"
    READY = "ready"
    ACTIVE = "active"
    END_FORM = "end_form"
    SUBMITTED = "submitted"
    ENDED = "ended"
    UNAVAILABLE = "unavailable"


class QuizSessionError(Exception):
    """An operation that the current state does not allow."""


@dataclass(frozen=True)
class TeamInfo:
    name: str
    email: str
    vehicle_category: str


# (delay_seconds, callback) -> object with cancel()
Scheduler = Callable[[float, Callable[[], None]], Any]


def thread_timer(delay_seconds: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay_seconds, callback)
    timer.daemon = True
    timer.start()
    return timer


def _progress_field(progress: Dict[str, Any], camel: str, snake: str) -> Any:
    # device snapshots are camelCase, server progress is snake_case
    if camel in progress:
        return progress[camel]
    return progress.get(snake)


def _parse_time(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    try:
        return as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        return None


class QuizSession:
    def __init__(
        self,
        api: QuizApiClient,
        clock: Clock = utcnow,
        scheduler: Scheduler = thread_timer,
        storage: Optional[LocalProgressStorage] = None,
        autosaver: Optional[ProgressAutosaver] = None,
    ):
        self.api = api
        self.clock = clock
        self.scheduler = scheduler
        self.storage = storage
        self.autosaver = autosaver
        if self.autosaver is None and storage is not None:
            self.autosaver = ProgressAutosaver(api, storage, clock=clock)
        if self.autosaver is not None and self.autosaver.on_submitted is None:
            self.autosaver.on_submitted = self._on_remote_submitted

        self.state = QuizState.LOADING
        self.quiz: Optional[QuizDefinition] = None
        self.team: Optional[TeamInfo] = None
        self.questions: Tuple[Question, ...] = ()
        self.answers: Dict[str, str] = {}
        self.current_question = 1
        self.start_time: Optional[datetime] = None
        self.time_taken: Optional[int] = None
        self.submission: Optional[SubmissionStatus] = None

        self._restored: Optional[Dict[str, Any]] = None
        self._lock = threading.RLock()
        self._timer = None
        self._timer_generation = 0
        self._ticker: Optional[ProgressTicker] = None

    # --------------------------------------------------
    # Loading / scheduling
    # --------------------------------------------------

    def load(self, team_email: Optional[str] = None, vehicle_category: Optional[str] = None) -> QuizState:
        with self._lock:
            if self.state == QuizState.SUBMITTED:
                return self.state

            if team_email:
                # one authoritative check before anything else is shown
                try:
                    if self._check_submitted(team_email):
                        return self.state
                except QuizApiError as e:
                    # start() checks again and the server guards the insert
                    logger.warning("Submission check on load failed: %s", e)

            self.quiz = self.api.get_config()
            if self.quiz is None:
                self.state = QuizState.UNAVAILABLE
                return self.state

            if team_email:
                self._restored = self._find_progress(team_email)
                if self._restored is not None and vehicle_category:
                    self._restored.setdefault("vehicleCategory", vehicle_category)

            self._evaluate(self.clock())
            return self.state

    def _find_progress(self, team_email: str) -> Optional[Dict[str, Any]]:
        if self.storage is not None:
            local = self.storage.load(team_email)
            if local:
                return dict(local)
        remote = self.api.get_progress(team_email)
        return dict(remote) if remote else None

    def _evaluate(self, now: datetime) -> None:
        status = self.quiz.status_at(now)

        if status == QuizStatus.PENDING:
            self.state = QuizState.WAITING
            self._schedule_wakeup(self.quiz.scheduled_start_time - as_utc(now))
            return

        if status == QuizStatus.FINISHED:
            # the global window decides; a team's own start_time does not extend it
            self.state = QuizState.ENDED
            return

        if not self.quiz.is_active:
            self.state = QuizState.UNAVAILABLE
            return

        if self._restored is not None and self._resume_from(self._restored, now):
            return
        self.state = QuizState.READY

    def _schedule_wakeup(self, delay: timedelta) -> None:
        self._cancel_timer()
        delay = min(max(delay, timedelta(0)), MAX_WAKEUP_DELAY)
        generation = self._timer_generation
        self._timer = self.scheduler(delay.total_seconds(), lambda: self._on_wakeup(generation))

    def _on_wakeup(self, generation: int) -> None:
        with self._lock:
            if generation != self._timer_generation or self.state != QuizState.WAITING:
                return
            self._timer = None
            self._evaluate(self.clock())

    def _cancel_timer(self) -> None:
        self._timer_generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # --------------------------------------------------
    # Resume
    # --------------------------------------------------

    def _resume_from(self, progress: Dict[str, Any], now: datetime) -> bool:
        name = _progress_field(progress, "teamName", "team_name") or ""
        email = _progress_field(progress, "teamEmail", "team_email") or ""
        category = progress.get("vehicleCategory")
        if not email or not category:
            # restored answers are applied by start() once the category is known
            return False

        self.team = TeamInfo(name=name, email=email, vehicle_category=category)
        self.questions = tuple(filter_questions(self.quiz.questions, category))
        self.answers = {str(k): v for k, v in (progress.get("answers") or {}).items()}
        self.current_question = int(_progress_field(progress, "currentQuestion", "current_question") or 1)
        self.start_time = _parse_time(_progress_field(progress, "startTime", "start_time")) or as_utc(now)
        self.state = QuizState.ACTIVE
        self._restored = None
        logger.info("Resumed attempt for %s with %d answers", email, len(self.answers))
        return True

    # --------------------------------------------------
    # Attempt
    # --------------------------------------------------

    def _require(self, *states: QuizState) -> None:
        if self.state == QuizState.SUBMITTED:
            raise QuizSessionError("This team has already submitted the quiz")
        if self.state not in states:
            raise QuizSessionError(f"Not allowed while {self.state.value}")

    def _check_submitted(self, team_email: str) -> bool:
        existing = self.api.get_submission_status(team_email)
        if existing is None:
            return False
        self._force_submitted(existing, team_email)
        return True

    def start(self, team_name: str, team_email: str, vehicle_category: str) -> QuizState:
        with self._lock:
            self._require(QuizState.READY)
            team_name = (team_name or "").strip()
            team_email = (team_email or "").strip()
            if not team_name or not team_email:
                raise QuizSessionError("Team name and email are required")
            if vehicle_category not in ("EV", "CV"):
                raise QuizSessionError("Vehicle category must be EV or CV")

            try:
                if self._check_submitted(team_email):
                    return self.state
            except QuizApiError as e:
                logger.warning("Submission check on start failed: %s", e)

            now = self.clock()
            if not self.quiz.is_attemptable(now):
                self._evaluate(now)
                return self.state

            self.team = TeamInfo(name=team_name, email=team_email, vehicle_category=vehicle_category)
            self.questions = tuple(filter_questions(self.quiz.questions, vehicle_category))
            self.answers = {}
            self.current_question = 1
            self.start_time = as_utc(now)

            restored = self._restored
            if restored and _progress_field(restored, "teamEmail", "team_email") == team_email:
                self.answers = {str(k): v for k, v in (restored.get("answers") or {}).items()}
                self.current_question = int(
                    _progress_field(restored, "currentQuestion", "current_question") or 1
                )
                self.start_time = _parse_time(_progress_field(restored, "startTime", "start_time")) or self.start_time
            self._restored = None

            self.state = QuizState.ACTIVE
            self._record_progress()
            if self.autosaver is not None:
                self.autosaver.flush(now)
            return self.state

    def answer(self, question_id: int, value: str) -> None:
        with self._lock:
            self._require(QuizState.ACTIVE)
            ids = [q.id for q in self.questions]
            if question_id not in ids:
                raise QuizSessionError(f"Question {question_id} is not part of this attempt")
            self.answers[str(question_id)] = value
            self.current_question = ids.index(question_id) + 1
            self._record_progress()

    def unanswered(self) -> List[int]:
        return [q.id for q in self.questions if answer_for(self.answers, q.id) in (None, "")]

    def finish(self) -> QuizState:
        with self._lock:
            self._require(QuizState.ACTIVE)
            missing = self.unanswered()
            if missing:
                raise QuizSessionError(f"Unanswered questions: {missing}")

            try:
                if self._check_submitted(self.team.email):
                    return self.state
            except QuizApiError as e:
                # the server guards the insert anyway
                logger.warning("Submission check before finishing failed: %s", e)

            now = min(as_utc(self.clock()), self.quiz.end_time)
            self._enter_end_form(now)
            return self.state

    def _enter_end_form(self, now: datetime) -> None:
        self.time_taken = max(0, int((now - self.start_time).total_seconds()))
        self.state = QuizState.END_FORM
        if self.autosaver is not None:
            self.autosaver.flush()

    def tick(self) -> QuizState:
        """Periodic driver: window end, late wake-ups and autosave."""
        with self._lock:
            now = as_utc(self.clock())
            if self.state == QuizState.WAITING and self.quiz.status_at(now) != QuizStatus.PENDING:
                self._cancel_timer()
                self._evaluate(now)
            elif self.state == QuizState.ACTIVE:
                if now >= self.quiz.end_time:
                    logger.info("Quiz window closed during attempt for %s", self.team.email)
                    self._enter_end_form(self.quiz.end_time)
                elif self.autosaver is not None:
                    self.autosaver.tick(now)
            return self.state

    # --------------------------------------------------
    # Submission
    # --------------------------------------------------

    def submit_end_form(
        self,
        preferred_team_number: str,
        alternative_team_number: Optional[str] = None,
        fuel_type: Optional[str] = None,
    ) -> SubmissionStatus:
        with self._lock:
            self._require(QuizState.END_FORM)
            if not (preferred_team_number or "").strip():
                raise QuizSessionError("Preferred team number is required")
            if self.team.vehicle_category == "CV" and not (fuel_type or "").strip():
                raise QuizSessionError("Fuel type is required for CV teams")

            payload = {
                "teamName": self.team.name,
                "teamEmail": self.team.email,
                "vehicleCategory": self.team.vehicle_category,
                "preferredTeamNumber": preferred_team_number.strip(),
                "alternativeTeamNumber": (alternative_team_number or "").strip() or None,
                "fuelType": (fuel_type or "").strip() or None,
                "answers": dict(self.answers),
                "timeTaken": self.time_taken,
                "questions": [q.public_dict() for q in self.questions],
            }

            try:
                submission_id = self.api.submit(payload)
            except AlreadySubmitted as e:
                self._force_submitted(e.submission, self.team.email)
                return self.submission
            except TransientStoreFailure:
                logger.warning("Submission for %s failed; end form kept for retry", self.team.email)
                raise

            try:
                persisted = self.api.get_submission_status(self.team.email)
            except QuizApiError as e:
                logger.warning("Could not read back submission %s: %s", submission_id, e)
                persisted = None
            if persisted is None:
                persisted = SubmissionStatus(id=submission_id, score=None, time_taken=self.time_taken)

            self._force_submitted(persisted, self.team.email)
            return self.submission

    def _on_remote_submitted(self, team_email: str) -> None:
        with self._lock:
            if self.state == QuizState.SUBMITTED:
                return
            try:
                persisted = self.api.get_submission_status(team_email)
            except QuizApiError as e:
                logger.warning("Could not read submission for %s: %s", team_email, e)
                persisted = None
            if persisted is None:
                persisted = SubmissionStatus(id=None, score=None, time_taken=self.time_taken or 0)
            logger.info("Team %s submitted elsewhere; attempt closed", team_email)
            self._force_submitted(persisted, team_email)

    def _force_submitted(self, submission: SubmissionStatus, team_email: str) -> None:
        self.state = QuizState.SUBMITTED
        self.submission = submission
        self.time_taken = submission.time_taken
        self._restored = None
        self._cancel_timer()
        if self.autosaver is not None:
            self.autosaver.stop(team_email)
        elif self.storage is not None:
            self.storage.clear(team_email)

    # --------------------------------------------------
    # Progress
    # --------------------------------------------------

    def _record_progress(self) -> None:
        if self.autosaver is None:
            return
        self.autosaver.on_change(
            self.team.name,
            self.team.email,
            self.answers,
            self.start_time,
            self.current_question,
            vehicle_category=self.team.vehicle_category,
        )

    def start_ticker(self, poll_seconds: float = 1.0) -> ProgressTicker:
        if self._ticker is None:
            self._ticker = ProgressTicker(self.tick, poll_seconds=poll_seconds)
            self._ticker.start()
        return self._ticker

    def close(self) -> None:
        with self._lock:
            self._cancel_timer()
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None

    def time_remaining(self) -> Optional[timedelta]:
        if self.quiz is None:
            return None
        return max(self.quiz.end_time - as_utc(self.clock()), timedelta(0))
