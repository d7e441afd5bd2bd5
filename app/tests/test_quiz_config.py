import pytest
import requests

from app.content.sanity import ContentResult, ContentStatus, SanityClient
from app.core.config import Settings
from app.schemas.quiz import QuestionCategory, QuestionType, QuizStatus
from app.services.quiz_cache import QuizCache
from app.services.quiz_config import QuizConfigLoader, parse_quiz_document

from conftest import QUIZ_START, FakeContent, build_quiz_document


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    def close(self):
        pass


class TestParseQuizDocument:
    def test_ids_are_one_based_positions(self, quiz):
        assert [q.id for q in quiz.questions] == [1, 2, 3, 4, 5]

    def test_defaults(self, quiz):
        first = quiz.questions[0]
        assert first.type == QuestionType.MULTIPLE_CHOICE
        assert first.category == QuestionCategory.COMMON
        assert quiz.questions[4].is_open_text

    def test_window(self, quiz):
        assert quiz.scheduled_start_time == QUIZ_START
        assert quiz.status_at(QUIZ_START).value == "active"
        assert quiz.status_at(quiz.end_time) == QuizStatus.FINISHED

    def test_public_dict_hides_correct_answers(self, quiz):
        body = quiz.public_dict()
        assert body["durationMinutes"] == 120
        assert body["scheduledStartTime"] == "2025-01-01T13:00:00Z"
        assert all("correctOption" not in q for q in body["questions"])
        assert quiz.admin_dict()["questions"][0]["correctOption"] == "B"


class TestQuizConfigLoader:
    def test_active_quiz(self, loader):
        assert loader.get_quiz().id == "quiz-2025"

    def test_falls_back_to_latest(self, clock):
        latest = build_quiz_document(_id="quiz-old", isActive=False)
        content = FakeContent(active=ContentResult(ContentStatus.NOT_FOUND), latest=latest)
        loader = QuizConfigLoader(content, QuizCache(clock=clock))
        quiz = loader.get_quiz()
        assert quiz.id == "quiz-old"
        assert not quiz.is_attemptable(clock())

    def test_unavailable_store_yields_none(self, clock, unavailable_content):
        content = FakeContent(active=unavailable_content, latest=unavailable_content)
        assert QuizConfigLoader(content, QuizCache(clock=clock)).get_quiz() is None

    def test_malformed_document_yields_none(self, clock):
        content = FakeContent(active={"_id": "broken", "questions": []})
        assert QuizConfigLoader(content, QuizCache(clock=clock)).get_quiz() is None

    def test_successful_lookup_is_cached(self, loader, content):
        loader.get_quiz()
        calls = content.calls
        loader.get_quiz()
        assert content.calls == calls

    def test_failed_lookup_is_not_cached(self, clock):
        content = FakeContent(active=ContentResult(ContentStatus.NOT_FOUND),
                              latest=ContentResult(ContentStatus.NOT_FOUND))
        loader = QuizConfigLoader(content, QuizCache(clock=clock))
        assert loader.get_quiz() is None

        content.active = build_quiz_document()
        assert loader.get_quiz().id == "quiz-2025"


class TestSanityClient:
    def settings(self, **overrides):
        values = {"SANITY_PROJECT_ID": "abc123", "SANITY_DATASET": "production"}
        values.update(overrides)
        return Settings(**values)

    def test_not_configured(self):
        client = SanityClient(self.settings(SANITY_PROJECT_ID=None), session=FakeSession())
        result = client.fetch_active_quiz()
        assert result.status == ContentStatus.NOT_CONFIGURED
        assert not result.ok

    def test_found(self):
        session = FakeSession(FakeResponse(payload={"result": build_quiz_document()}))
        result = SanityClient(self.settings(), session=session).fetch_active_quiz()

        assert result.ok
        assert parse_quiz_document(result.value).id == "quiz-2025"
        url, kwargs = session.requests[0]
        assert url == "https://abc123.apicdn.sanity.io/v2024-01-01/data/query/production"
        assert "registrationQuiz" in kwargs["params"]["query"]
        assert kwargs["timeout"] == 10.0

    def test_token_disables_cdn(self):
        session = FakeSession(FakeResponse(payload={"result": None}))
        client = SanityClient(self.settings(SANITY_API_TOKEN="secret"), session=session)
        result = client.fetch_latest_quiz()

        assert result.status == ContentStatus.NOT_FOUND
        url, kwargs = session.requests[0]
        assert ".api.sanity.io" in url
        assert kwargs["headers"]["Authorization"] == "Bearer secret"

    @pytest.mark.parametrize("session", [
        FakeSession(error=requests.ConnectionError("down")),
        FakeSession(FakeResponse(status_code=500, payload={})),
    ])
    def test_unavailable(self, session):
        result = SanityClient(self.settings(), session=session).fetch_active_quiz()
        assert result.status == ContentStatus.UNAVAILABLE
        assert result.error
