"""
Client-side progress persistence.

Every answer change is written to local storage at once and pushed to the
server after a short debounce. A periodic save runs regardless of changes.
Saving stops for good once the team is known to have submitted.
"""

import json
import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from app.client.api_client import QuizApiClient, QuizApiError
from app.core.clock import Clock, isoformat, utcnow

logger = logging.getLogger(__name__)

DEBOUNCE = timedelta(seconds=2)
SAVE_INTERVAL = timedelta(seconds=30)


class LocalProgressStorage:
    """One JSON document per team email, kept in a single file."""

    def __init__(self, path):
        self.path = Path(path)

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Local progress file %s is unreadable; ignoring it", self.path)
            return {}

    def _write_all(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def load(self, team_email: str) -> Optional[Dict[str, Any]]:
        return self._read_all().get(team_email)

    def save(self, team_email: str, progress: Dict[str, Any]) -> None:
        data = self._read_all()
        data[team_email] = progress
        self._write_all(data)

    def clear(self, team_email: str) -> None:
        data = self._read_all()
        if data.pop(team_email, None) is not None:
            self._write_all(data)


class ProgressAutosaver:
    def __init__(
        self,
        api: QuizApiClient,
        storage: LocalProgressStorage,
        clock: Clock = utcnow,
        debounce: timedelta = DEBOUNCE,
        interval: timedelta = SAVE_INTERVAL,
        on_submitted: Optional[Callable[[str], None]] = None,
    ):
        self.api = api
        self.storage = storage
        self.clock = clock
        self.debounce = debounce
        self.interval = interval
        # called with the team email when the server refuses a save as already submitted
        self.on_submitted = on_submitted

        self._lock = threading.Lock()
        self._snapshot: Optional[Dict[str, Any]] = None
        self._dirty_since: Optional[datetime] = None
        self._last_remote_save: Optional[datetime] = None
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def on_change(
        self,
        team_name: str,
        team_email: str,
        answers: Dict[str, str],
        start_time: datetime,
        current_question: int,
        vehicle_category: Optional[str] = None,
    ) -> None:
        if self._stopped:
            return
        snapshot = {
            "teamName": team_name,
            "teamEmail": team_email,
            "answers": dict(answers),
            "startTime": isoformat(start_time),
            "currentQuestion": max(1, int(current_question)),
        }
        if vehicle_category:
            # the server ignores this; kept so a device resume can re-filter questions
            snapshot["vehicleCategory"] = vehicle_category
        with self._lock:
            self._snapshot = snapshot
            self._dirty_since = self.clock()
            if self._last_remote_save is None:
                # the periodic interval counts from the first change
                self._last_remote_save = self._dirty_since
        self.storage.save(team_email, snapshot)

    def tick(self, now: Optional[datetime] = None) -> bool:
        """Push to the server when the debounce or the periodic interval is due."""
        now = now or self.clock()
        with self._lock:
            if self._stopped or self._snapshot is None:
                return False
            debounced = self._dirty_since is not None and now - self._dirty_since >= self.debounce
            periodic = now - self._last_remote_save >= self.interval
            if not (debounced or periodic):
                return False
        return self.flush(now)

    def flush(self, now: Optional[datetime] = None) -> bool:
        with self._lock:
            if self._stopped or self._snapshot is None:
                return False
            snapshot = dict(self._snapshot)

        try:
            accepted = self.api.save_progress(snapshot)
        except QuizApiError as e:
            # local copy is still current; next tick retries
            logger.warning("Remote progress save failed: %s", e)
            return False

        now = now or self.clock()
        with self._lock:
            self._last_remote_save = now
            if self._snapshot == snapshot:
                self._dirty_since = None

        if not accepted:
            logger.info("Server reports %s already submitted; autosave stopped", snapshot["teamEmail"])
            self.stop()
            if self.on_submitted is not None:
                self.on_submitted(snapshot["teamEmail"])
            return False
        return True

    def stop(self, team_email: Optional[str] = None) -> None:
        with self._lock:
            self._stopped = True
            email = team_email or (self._snapshot or {}).get("teamEmail")
            self._snapshot = None
            self._dirty_since = None
        if email:
            self.storage.clear(email)


class ProgressTicker(threading.Thread):
    """Drives ``tick`` on a fixed poll interval until stopped."""

    def __init__(self, tick: Callable[[], Any], poll_seconds: float = 1.0):
        super().__init__(daemon=True, name="quiz-progress-ticker")
        self._tick = tick
        self._poll_seconds = poll_seconds
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self._poll_seconds):
            try:
                self._tick()
            except Exception:
                logger.exception("Progress tick failed")

    def stop(self) -> None:
        self._stop_event.set()
