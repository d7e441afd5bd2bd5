import requests

from app.core.config import Settings
from app.schemas.quiz import Question
from app.core.clock import format_duration
from app.services.notifications import ConfirmationMailer, get_mailer, render_confirmation_email


class FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code
        self.text = "provider says no" if status_code >= 400 else "{}"

    @property
    def ok(self):
        return self.status_code < 400


class FakeSession:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.posts = []

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome)


QUESTIONS = [
    Question(id=1, text="Max voltage?", options=["A", "B"], correctOption="B"),
    Question(id=2, text="<b>Bold</b> claim?", options=["A", "B"], correctOption="A"),
]


def make_mailer(session, api_key="re_test", retries=2):
    sleeps = []
    cfg = Settings(RESEND_API_KEY=api_key, EMAIL_MAX_RETRIES=retries)
    return ConfirmationMailer(cfg, session=session, sleep=sleeps.append), sleeps


class TestConfirmationMailer:
    def test_sends(self):
        session = FakeSession(200)
        mailer, sleeps = make_mailer(session)

        assert mailer.send("Aristotle Racing", "team@uni.gr", 125, QUESTIONS, {"1": "B"}) is True
        url, kwargs = session.posts[0]
        assert url == "https://api.resend.com/emails"
        assert kwargs["json"]["to"] == ["team@uni.gr"]
        assert kwargs["headers"]["Authorization"] == "Bearer re_test"
        assert sleeps == []

    def test_retries_server_errors_with_backoff(self):
        session = FakeSession(500, 200)
        mailer, sleeps = make_mailer(session)

        assert mailer.send("Team", "team@uni.gr", 60, QUESTIONS, {}) is True
        assert len(session.posts) == 2
        assert sleeps == [2]

    def test_client_errors_are_not_retried(self):
        session = FakeSession(422, 200)
        mailer, _ = make_mailer(session)

        assert mailer.send("Team", "team@uni.gr", 60, QUESTIONS, {}) is False
        assert len(session.posts) == 1

    def test_gives_up_without_raising(self):
        session = FakeSession(requests.ConnectionError("down"), requests.Timeout("slow"))
        mailer, sleeps = make_mailer(session)

        assert mailer.send("Team", "team@uni.gr", 60, QUESTIONS, {}) is False
        assert len(session.posts) == 2
        assert sleeps == [2]

    def test_not_configured(self):
        session = FakeSession()
        mailer, _ = make_mailer(session, api_key=None)
        assert mailer.send("Team", "team@uni.gr", 60, QUESTIONS, {}) is False
        assert session.posts == []

    def test_invalid_recipient(self):
        session = FakeSession()
        mailer, _ = make_mailer(session)
        assert mailer.send("Team", "nope", 60, QUESTIONS, {}) is False
        assert session.posts == []


class TestRendering:
    def test_duration(self):
        assert format_duration(125) == "2m 5s"
        assert format_duration(0) == "0m 0s"
        assert format_duration(None) == "0m 0s"

    def test_escapes_and_marks_skipped(self):
        body = render_confirmation_email("<Team>", 90, QUESTIONS, {"1": "B", "2": "NO_ANSWER"})
        assert "&lt;Team&gt;" in body
        assert "&lt;b&gt;Bold&lt;/b&gt;" in body
        assert "Skipped" in body
        assert "1m 30s" in body


def test_mailer_is_shared_across_requests():
    assert get_mailer() is get_mailer()
