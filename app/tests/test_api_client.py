import pytest
import requests

from app.client.api_client import QuizApiClient, QuizApiError
from app.core.errors import AlreadySubmitted, TransientStoreFailure
from app.services.quiz_config import parse_quiz_document

from conftest import FakeResponse, FakeSession, build_quiz_document


def make_client(response=None, error=None):
    session = FakeSession(response, error)
    return QuizApiClient("http://quiz.local/", session=session), session


class TestConfig:
    def test_parses_public_config(self):
        public = parse_quiz_document(build_quiz_document()).public_dict()
        client, session = make_client(FakeResponse(payload=public))

        quiz = client.get_config()
        assert quiz.id == "quiz-2025"
        assert quiz.questions[0].correct_option is None
        assert session.calls[0][1] == "http://quiz.local/api/quiz/config"

    @pytest.mark.parametrize("response,error", [
        (FakeResponse(404, {"detail": "No quiz found"}), None),
        (None, requests.ConnectionError("down")),
    ])
    def test_missing_config(self, response, error):
        client, _ = make_client(response, error)
        assert client.get_config() is None


class TestSubmit:
    def test_success(self):
        client, session = make_client(FakeResponse(200, {"success": True, "submissionId": 5}))
        assert client.submit({"teamEmail": "team@uni.gr"}) == 5
        assert session.calls[0][2]["json"] == {"teamEmail": "team@uni.gr"}

    def test_already_submitted(self):
        body = {
            "error": "Team has already submitted the quiz.",
            "alreadySubmitted": True,
            "submissionId": 3,
            "submission": {"id": 3, "score": 2.0, "time_taken": 120},
        }
        client, _ = make_client(FakeResponse(400, body))

        with pytest.raises(AlreadySubmitted) as exc:
            client.submit({})
        assert exc.value.submission.score == 2.0
        assert exc.value.submission.time_taken == 120

    def test_server_error_is_transient(self):
        client, _ = make_client(FakeResponse(500, {"error": "Failed to save submission"}))
        with pytest.raises(TransientStoreFailure):
            client.submit({})

    def test_gateway_html_page_is_transient(self):
        client, _ = make_client(FakeResponse(502, text="<html><body>Bad Gateway</body></html>"))
        with pytest.raises(TransientStoreFailure) as exc:
            client.submit({})
        assert "502" in exc.value.message

    def test_network_error_is_transient(self):
        client, _ = make_client(error=requests.Timeout("slow"))
        with pytest.raises(TransientStoreFailure):
            client.submit({})

    def test_validation_error(self):
        client, _ = make_client(FakeResponse(400, {"error": "Missing required fields", "details": {}}))
        with pytest.raises(QuizApiError):
            client.submit({})


class TestStatusAndProgress:
    def test_status(self):
        client, session = make_client(FakeResponse(200, {
            "submitted": True,
            "submission": {"id": 1, "score": 1.5, "time_taken": 90},
        }))
        status = client.get_submission_status("team@uni.gr")
        assert (status.id, status.score, status.time_taken) == (1, 1.5, 90)
        assert session.calls[0][2]["params"] == {"teamEmail": "team@uni.gr"}

    def test_not_submitted(self):
        client, _ = make_client(FakeResponse(200, {"submitted": False, "submission": None}))
        assert client.get_submission_status("team@uni.gr") is None

    @pytest.mark.parametrize("error", [
        requests.ConnectionError("down"),
        requests.Timeout("slow"),
    ])
    def test_status_network_error(self, error):
        client, _ = make_client(error=error)
        with pytest.raises(QuizApiError):
            client.get_submission_status("team@uni.gr")

    def test_status_non_json_body(self):
        client, _ = make_client(FakeResponse(200, text="<html>maintenance</html>"))
        with pytest.raises(QuizApiError):
            client.get_submission_status("team@uni.gr")

    def test_save_progress_refused_after_submission(self):
        client, _ = make_client(FakeResponse(400, {
            "error": "Team has already submitted the quiz",
            "alreadySubmitted": True,
            "submission": {"id": 3, "score": 2.0, "time_taken": 120},
        }))
        assert client.save_progress({"teamEmail": "team@uni.gr"}) is False

    def test_save_progress_invalid_payload_is_an_error(self):
        client, _ = make_client(FakeResponse(400, {
            "error": "Team name and email are required",
            "details": {"teamName": "Team name is required"},
        }))
        with pytest.raises(QuizApiError):
            client.save_progress({"teamEmail": "team@uni.gr"})

    def test_save_progress_network_error(self):
        client, _ = make_client(error=requests.ConnectionError("down"))
        with pytest.raises(QuizApiError):
            client.save_progress({})

    def test_get_progress(self):
        client, _ = make_client(FakeResponse(200, {"progress": {"answers": {"1": "A"}}}))
        assert client.get_progress("team@uni.gr") == {"answers": {"1": "A"}}
