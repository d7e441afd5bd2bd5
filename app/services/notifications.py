"""
Quiz confirmation email, sent through the Resend HTTP API.

Sending is best-effort: it runs after the submission is committed and
never raises, so a mail outage cannot undo or block a submission.
"""

import html
import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

import requests

from app.core.clock import format_duration
from app.core.config import Settings, settings as default_settings
from app.engine.scorer import answer_for
from app.schemas.quiz import NO_ANSWER, Question, is_valid_email

logger = logging.getLogger(__name__)

SUBJECT = "Quiz Submission Confirmation - Formula IHU"


def render_confirmation_email(
    team_name: str,
    time_taken: int,
    questions: List[Question],
    answers: Mapping,
) -> str:
    rows = []
    for index, question in enumerate(questions, start=1):
        answer = answer_for(answers, question.id)
        if answer == NO_ANSWER:
            shown = "<em style=\"color: #6b7280;\">Skipped</em>"
        elif not answer:
            shown = "<em style=\"color: #6b7280;\">No answer</em>"
        else:
            shown = html.escape(answer)
        rows.append(
            "<tr style=\"border-bottom: 1px solid #e5e7eb;\">"
            f"<td style=\"padding: 12px 0; vertical-align: top;\"><strong style=\"color: #0066FF;\">Q{index}.</strong></td>"
            f"<td style=\"padding: 12px 0; padding-left: 12px;\">{html.escape(question.text)}"
            f"<br/><span style=\"color: #111827;\">Your answer: {shown}</span></td>"
            "</tr>"
        )

    return (
        "<!DOCTYPE html><html><body style=\"font-family: Arial, sans-serif; color: #111827;\">"
        "<h2 style=\"color: #0066FF;\">Formula IHU Registration Quiz</h2>"
        f"<p>Dear {html.escape(team_name)},</p>"
        "<p>Your quiz submission has been received. Only your first submission is kept.</p>"
        f"<p><strong>Time taken:</strong> {format_duration(time_taken)}</p>"
        f"<table style=\"width: 100%; border-collapse: collapse;\">{''.join(rows)}</table>"
        "<p>Good luck,<br/>The Formula IHU team</p>"
        "</body></html>"
    )


class ConfirmationMailer:
    def __init__(
        self,
        cfg: Optional[Settings] = None,
        *,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        cfg = cfg or default_settings
        self._api_key = cfg.RESEND_API_KEY
        self._api_url = cfg.RESEND_API_URL
        self._from = cfg.FROM_EMAIL
        self._reply_to = cfg.REPLY_TO_EMAIL
        self._max_retries = max(int(cfg.EMAIL_MAX_RETRIES), 1)
        self._session = session or requests.Session()
        self._sleep = sleep

    def send(
        self,
        team_name: str,
        team_email: str,
        time_taken: int,
        questions: List[Question],
        answers: Mapping,
    ) -> bool:
        """Returns True if the provider accepted the message."""
        if not self._api_key:
            logger.warning("RESEND_API_KEY not configured, confirmation for %s not sent", team_email)
            return False

        if not is_valid_email(team_email):
            logger.warning("Invalid recipient %r, confirmation not sent", team_email)
            return False

        payload: Dict[str, Any] = {
            "from": self._from,
            "to": [team_email],
            "reply_to": self._reply_to,
            "subject": SUBJECT,
            "html": render_confirmation_email(team_name, time_taken, questions, answers),
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        for attempt in range(1, self._max_retries + 1):
            try:
                resp = self._session.post(self._api_url, json=payload, headers=headers, timeout=10)
            except requests.RequestException as e:
                logger.warning("Confirmation email attempt %s for %s failed: %s", attempt, team_email, e)
            else:
                if resp.ok:
                    logger.info("Confirmation email sent to %s", team_email)
                    return True
                if 400 <= resp.status_code < 500:
                    # client errors will not succeed on retry
                    logger.error(
                        "Email provider rejected confirmation for %s: %s %s",
                        team_email,
                        resp.status_code,
                        resp.text[:500],
                    )
                    return False
                logger.warning(
                    "Email provider error %s on attempt %s for %s",
                    resp.status_code,
                    attempt,
                    team_email,
                )

            if attempt < self._max_retries:
                self._sleep(2 ** attempt)

        logger.error("Confirmation email for %s failed after %s attempts", team_email, self._max_retries)
        return False


_mailer: Optional[ConfirmationMailer] = None


def get_mailer() -> ConfirmationMailer:
    """FastAPI dependency; one mailer (and HTTP connection pool) per process."""
    global _mailer
    if _mailer is None:
        _mailer = ConfirmationMailer(default_settings)
    return _mailer
