"""
Quiz error taxonomy.

Routers raise these; the handlers registered in ``app.main`` turn them
into JSON responses.
"""

from typing import Any, Dict, Optional


class QuizError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.message}


class ConfigUnavailable(QuizError):
    """No quiz exists, or the content store could not be reached."""

    status_code = 503
    message = "Quiz configuration is unavailable"


class ValidationFailure(QuizError):
    status_code = 400
    message = "Missing required fields"

    def __init__(self, details: Dict[str, str], message: Optional[str] = None):
        super().__init__(message)
        self.details = details

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.message, "details": self.details}


class AlreadySubmitted(QuizError):
    """The team already has a persisted submission; carries that row."""

    status_code = 400
    message = "Team has already submitted the quiz. Only the first submission is kept."

    def __init__(self, submission: Any, message: Optional[str] = None):
        super().__init__(message)
        self.submission = submission


class TransientStoreFailure(QuizError):
    status_code = 500
    message = "Failed to save submission, please retry"


class ContentWriteFailure(QuizError):
    """The content store rejected or could not take a write."""

    status_code = 500
    message = "Failed to import quiz"
