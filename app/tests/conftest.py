from datetime import datetime, timedelta, timezone

import pytest
import requests
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import ADMIN_COOKIE, studio_session_value
from app.content.sanity import ContentResult, ContentStatus
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.services.notifications import get_mailer
from app.services.quiz_cache import QuizCache
from app.services.quiz_config import QuizConfigLoader, get_quiz_loader, parse_quiz_document

# start of the quiz window used across tests
QUIZ_START = datetime(2025, 1, 1, 13, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeContent:
    """Stands in for SanityClient; results can be swapped per test."""

    configured = True

    def __init__(self, active=None, latest=None):
        self.active = active
        self.latest = latest
        self.calls = 0
        self.mutations = []
        # ContentResult for writes; None means success
        self.write_result = None

    def _result(self, value):
        if isinstance(value, ContentResult):
            return value
        return ContentResult.found(value)

    def fetch_active_quiz(self):
        self.calls += 1
        return self._result(self.active)

    def fetch_latest_quiz(self):
        self.calls += 1
        return self._result(self.latest if self.latest is not None else self.active)

    def mutate(self, mutations):
        self.mutations.extend(mutations)
        if self.write_result is not None:
            return self.write_result
        results = []
        for mutation in mutations:
            if "patch" in mutation:
                results.append({"id": mutation["patch"]["id"], "operation": "update"})
            else:
                results.append({"id": "quiz-imported", "operation": "create"})
        return ContentResult.found(results)

    def create_document(self, document):
        return self.mutate([{"create": document}])

    def set_fields(self, document_id, fields):
        return self.mutate([{"patch": {"id": document_id, "set": fields}}])


class FakeMailer:
    def __init__(self):
        self.sent = []

    def send(self, team_name, team_email, time_taken, questions, answers):
        self.sent.append({
            "team_name": team_name,
            "team_email": team_email,
            "time_taken": time_taken,
            "question_ids": [q.id for q in questions],
            "answers": answers,
        })
        return True


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self._text = text
        if text is not None:
            self.content = text.encode("utf-8")
        else:
            self.content = b"{}" if payload is not None else b""

    def json(self):
        if self._text is not None:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def _send(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    def get(self, url, **kwargs):
        return self._send("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._send("POST", url, **kwargs)

    def close(self):
        pass


class RoutingSession(FakeSession):
    """Answers per (method, endpoint); an exception value is raised instead."""

    def __init__(self, routes):
        super().__init__()
        self.routes = dict(routes)

    def _send(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        outcome = self.routes[(method, url.rsplit("/", 1)[-1])]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def build_quiz_document(**overrides):
    doc = {
        "_id": "quiz-2025",
        "title": "Formula IHU 2025 Registration Quiz",
        "isActive": True,
        "scheduledStartTime": "2025-01-01T13:00:00Z",
        "instructions": "Answer every question.",
        "questions": [
            {"text": "Max accumulator voltage?", "options": ["A", "B", "C"], "correctOption": "B"},
            {"text": "Minimum track width?", "options": ["A", "B", "C"], "correctOption": "A"},
            {"text": "Insulation monitoring device?", "options": ["A", "B", "C"], "correctOption": "C", "category": "EV"},
            {"text": "Fuel tank material?", "options": ["A", "B", "C"], "correctOption": "A", "category": "CV"},
            {"text": "Describe your team structure.", "type": "open_text"},
        ],
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def quiz_document():
    return build_quiz_document()


@pytest.fixture
def quiz(quiz_document):
    return parse_quiz_document(quiz_document)


@pytest.fixture
def clock():
    return FakeClock(QUIZ_START + timedelta(minutes=30))


@pytest.fixture
def content(quiz_document):
    return FakeContent(active=quiz_document)


@pytest.fixture
def loader(content, clock):
    return QuizConfigLoader(content, QuizCache(clock=clock))


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory, loader, mailer):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_quiz_loader] = lambda: loader
    app.dependency_overrides[get_mailer] = lambda: mailer
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def admin_client(client):
    client.cookies.set(ADMIN_COOKIE, studio_session_value())
    return client


@pytest.fixture
def unavailable_content():
    return ContentResult(ContentStatus.UNAVAILABLE, error="connection refused")
