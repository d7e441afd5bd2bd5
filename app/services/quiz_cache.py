"""
Single-slot cache for the current quiz definition.

Only one quiz is ever "current", so this holds one (value, stored_at)
pair instead of a keyed store. Freshness depends on where "now" falls
relative to the quiz window: stale content hurts most while teams are
answering, so entries expire faster then.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from app.core.clock import Clock, utcnow
from app.schemas.quiz import QuizDefinition


@dataclass(frozen=True)
class CacheEntry:
    value: QuizDefinition
    stored_at: datetime


class QuizCache:
    def __init__(
        self,
        ttl_seconds: float = 300.0,
        active_ttl_seconds: float = 30.0,
        prestart_buffer_seconds: float = 120.0,
        clock: Clock = utcnow,
    ):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.active_ttl = timedelta(seconds=active_ttl_seconds)
        self.prestart_buffer = timedelta(seconds=prestart_buffer_seconds)
        self._clock = clock
        self._entry: Optional[CacheEntry] = None
        self._lock = threading.Lock()

    def _max_age(self, quiz: QuizDefinition, now: datetime) -> timedelta:
        start = quiz.scheduled_start_time
        if start <= now <= quiz.end_time:
            return self.active_ttl
        return self.ttl

    def is_fresh(self, entry: CacheEntry, now: datetime) -> bool:
        quiz = entry.value
        until_start = quiz.scheduled_start_time - now
        # about to go live: always re-read so activation is picked up
        if timedelta(0) < until_start < self.prestart_buffer:
            return False
        return now - entry.stored_at < self._max_age(quiz, now)

    def get(self) -> Optional[QuizDefinition]:
        with self._lock:
            entry = self._entry
        if entry is None:
            return None
        if not self.is_fresh(entry, self._clock()):
            return None
        return entry.value

    def set(self, quiz: QuizDefinition) -> None:
        with self._lock:
            self._entry = CacheEntry(value=quiz, stored_at=self._clock())

    def invalidate(self) -> None:
        with self._lock:
            self._entry = None
