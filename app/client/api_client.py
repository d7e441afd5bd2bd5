# PATH: app/client/api_client.py
#
# HTTP client for the quiz endpoints, used by the client-side session.
#
# ENDPOINTS:
# - GET  /api/quiz/config
# - GET  /api/quiz/submit?teamEmail=
# - POST /api/quiz/submit
# - GET  /api/quiz/progress?teamEmail=
# - POST /api/quiz/progress

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from app.core.errors import AlreadySubmitted, TransientStoreFailure
from app.schemas.quiz import QuizDefinition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionStatus:
    """Persisted submission as the server reports it."""

    id: Any
    score: Optional[float]
    time_taken: int
    submitted_at: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "SubmissionStatus":
        score = data.get("score")
        return cls(
            id=data.get("id"),
            score=float(score) if score is not None else None,
            time_taken=int(data.get("time_taken") or 0),
            submitted_at=data.get("submitted_at"),
        )


class QuizApiError(Exception):
    pass


class QuizApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        if not base_url:
            raise ValueError("base_url is required")
        self._base_url = str(base_url).rstrip("/")
        self._timeout = float(timeout_seconds)
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    def _url(self, path: str) -> str:
        return f"{self._base_url}/api/quiz/{path}"

    # --------------------------------------------------
    # Config
    # --------------------------------------------------

    def get_config(self) -> Optional[QuizDefinition]:
        """None when no quiz exists or the service is unreachable."""
        try:
            resp = self._session.get(self._url("config"), timeout=self._timeout)
        except requests.RequestException as e:
            logger.warning("Quiz config fetch failed: %s", e)
            return None
        if resp.status_code != 200:
            logger.info("Quiz config unavailable (HTTP %s)", resp.status_code)
            return None
        return QuizDefinition.model_validate(resp.json())

    # --------------------------------------------------
    # Submission
    # --------------------------------------------------

    def get_submission_status(self, team_email: str) -> Optional[SubmissionStatus]:
        """Raises QuizApiError when the status cannot be determined."""
        try:
            resp = self._session.get(
                self._url("submit"),
                params={"teamEmail": team_email},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise QuizApiError(f"submission status check failed: {e}") from e
        if resp.status_code != 200:
            raise QuizApiError(f"submission status check failed: HTTP {resp.status_code}")

        data = _json_body(resp)
        if data is None:
            raise QuizApiError("submission status check failed: response is not JSON")
        if not data.get("submitted") or not data.get("submission"):
            return None
        return SubmissionStatus.from_json(data["submission"])

    def submit(self, payload: Dict[str, Any]) -> Any:
        """
        Returns the new submission id.

        Raises AlreadySubmitted (with the persisted SubmissionStatus) or
        TransientStoreFailure; the latter is safe to retry.
        """
        try:
            resp = self._session.post(self._url("submit"), json=payload, timeout=self._timeout)
        except requests.RequestException as e:
            raise TransientStoreFailure(f"submission request failed: {e}") from e

        # gateways answer 5xx with HTML pages
        data = _json_body(resp) or {}
        if resp.status_code >= 500:
            raise TransientStoreFailure(data.get("error") or f"HTTP {resp.status_code}")
        if resp.status_code == 200 and data.get("success"):
            return data.get("submissionId")
        if data.get("alreadySubmitted") and data.get("submission"):
            raise AlreadySubmitted(SubmissionStatus.from_json(data["submission"]))
        raise QuizApiError(data.get("error") or f"submission rejected: HTTP {resp.status_code}")

    # --------------------------------------------------
    # Progress
    # --------------------------------------------------

    def get_progress(self, team_email: str) -> Optional[Dict[str, Any]]:
        try:
            resp = self._session.get(
                self._url("progress"),
                params={"teamEmail": team_email},
                timeout=self._timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning("Progress fetch failed: %s", e)
            return None
        return (_json_body(resp) or {}).get("progress")

    def save_progress(self, payload: Dict[str, Any]) -> bool:
        """
        False when the server refused because the team already submitted.

        Network errors, server errors and rejected payloads raise
        QuizApiError so the caller keeps its local copy and retries later.
        """
        try:
            resp = self._session.post(self._url("progress"), json=payload, timeout=self._timeout)
        except requests.RequestException as e:
            raise QuizApiError(f"progress save failed: {e}") from e
        if resp.status_code < 400:
            return True

        data = _json_body(resp) or {}
        if resp.status_code == 400 and data.get("alreadySubmitted"):
            return False
        raise QuizApiError(data.get("error") or f"progress save failed: HTTP {resp.status_code}")


def _json_body(resp) -> Optional[Dict[str, Any]]:
    """Decoded JSON object; None for empty or non-JSON bodies."""
    if not resp.content:
        return None
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
