import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from app.content.sanity import ContentResult, SanityClient
from app.core.config import settings
from app.schemas.quiz import QuizDefinition
from app.services.quiz_cache import QuizCache

logger = logging.getLogger(__name__)


def parse_quiz_document(doc: Dict[str, Any]) -> QuizDefinition:
    """
    Turn a raw registrationQuiz document into a QuizDefinition.

    Question ids are 1-based positions in the CMS array.
    """
    questions: List[Dict[str, Any]] = []
    for index, raw in enumerate(doc.get("questions") or [], start=1):
        questions.append({
            "id": index,
            "text": raw.get("text") or "",
            "type": raw.get("type") or "multiple_choice",
            "options": raw.get("options") or [],
            "correctOption": raw.get("correctOption"),
            "image": raw.get("image"),
            "file": raw.get("file") if (raw.get("file") or {}).get("url") else None,
            "category": raw.get("category") or "common",
            "weight": raw.get("weight"),
        })

    return QuizDefinition.model_validate({
        "id": doc.get("_id"),
        "title": doc.get("title") or "Formula IHU Registration Quiz",
        "isActive": bool(doc.get("isActive")),
        "scheduledStartTime": doc.get("scheduledStartTime"),
        "instructions": doc.get("instructions") or "",
        "questions": questions,
    })


class QuizConfigLoader:
    """Resolves the one currently relevant quiz: the active one, else the latest."""

    def __init__(self, content, cache: Optional[QuizCache] = None):
        self.content = content
        self.cache = cache or QuizCache()

    def _to_quiz(self, result: ContentResult, label: str) -> Optional[QuizDefinition]:
        if not result.ok:
            if result.error:
                logger.warning("No %s quiz (%s): %s", label, result.status.value, result.error)
            return None
        try:
            return parse_quiz_document(result.value)
        except ValidationError as e:
            logger.error("Malformed %s quiz document: %s", label, e)
            return None

    def load(self) -> Optional[QuizDefinition]:
        """Uncached lookup."""
        quiz = self._to_quiz(self.content.fetch_active_quiz(), "active")
        if quiz is None:
            quiz = self._to_quiz(self.content.fetch_latest_quiz(), "latest")
        return quiz

    def get_quiz(self) -> Optional[QuizDefinition]:
        cached = self.cache.get()
        if cached is not None:
            return cached

        quiz = self.load()
        if quiz is None:
            logger.info("No registration quiz available")
            return None

        self.cache.set(quiz)
        return quiz

    def get_latest_quiz(self) -> Optional[QuizDefinition]:
        return self._to_quiz(self.content.fetch_latest_quiz(), "latest")


_loader: Optional[QuizConfigLoader] = None


def get_quiz_loader() -> QuizConfigLoader:
    """FastAPI dependency; one loader (and cache slot) per process."""
    global _loader
    if _loader is None:
        _loader = QuizConfigLoader(
            SanityClient(settings),
            QuizCache(
                ttl_seconds=settings.QUIZ_CACHE_TTL_SECONDS,
                active_ttl_seconds=settings.QUIZ_CACHE_ACTIVE_TTL_SECONDS,
                prestart_buffer_seconds=settings.QUIZ_CACHE_PRESTART_BUFFER_SECONDS,
            ),
        )
    return _loader
