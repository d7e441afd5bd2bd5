from app.content.sanity import ContentResult, ContentStatus


def submission_body(**overrides):
    body = {
        "teamName": "Aristotle Racing",
        "teamEmail": "team@uni.gr",
        "vehicleCategory": "EV",
        "preferredTeamNumber": "42",
        "alternativeTeamNumber": "7",
        "answers": {"1": "B", "2": "C", "5": "We have 40 members."},
        "timeTaken": 120,
        "score": 1000,
    }
    body.update(overrides)
    return body


def progress_body(**overrides):
    body = {
        "teamName": "Aristotle Racing",
        "teamEmail": "team@uni.gr",
        "answers": {"1": "B"},
        "startTime": "2025-01-01T13:05:00Z",
        "currentQuestion": 2,
    }
    body.update(overrides)
    return body


class TestConfig:
    def test_public_config(self, client):
        resp = client.get("/api/quiz/config")
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "public, s-maxage=30, stale-while-revalidate=60"

        body = resp.json()
        assert body["id"] == "quiz-2025"
        assert body["durationMinutes"] == 120
        assert len(body["questions"]) == 5
        assert all("correctOption" not in q for q in body["questions"])

    def test_no_quiz(self, client, content):
        content.active = ContentResult(ContentStatus.NOT_FOUND)
        content.latest = ContentResult(ContentStatus.NOT_FOUND)
        assert client.get("/api/quiz/config").status_code == 404


class TestSubmit:
    def test_success(self, client, mailer):
        resp = client.post("/api/quiz/submit", json=submission_body(), headers={"x-forwarded-for": "1.2.3.4, 10.0.0.1"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["submissionId"]

        status = client.get("/api/quiz/submit", params={"teamEmail": "team@uni.gr"}).json()
        assert status["submitted"] is True
        # client-sent score is ignored
        assert status["submission"]["score"] == 0.5
        assert status["submission"]["time_taken"] == 120

        assert len(mailer.sent) == 1
        assert mailer.sent[0]["question_ids"] == [1, 2, 3, 5]

    def test_duplicate_returns_first_submission(self, client, mailer):
        first = client.post("/api/quiz/submit", json=submission_body(answers={"1": "B", "2": "A"}))
        assert first.status_code == 200

        resp = client.post("/api/quiz/submit", json=submission_body(answers={"1": "C"}, timeTaken=999))
        assert resp.status_code == 400
        body = resp.json()
        assert body["alreadySubmitted"] is True
        assert body["submissionId"] == first.json()["submissionId"]
        assert body["submission"]["score"] == 2.0
        assert body["submission"]["time_taken"] == 120
        assert len(mailer.sent) == 1

    def test_missing_fields(self, client):
        resp = client.post("/api/quiz/submit", json={"teamName": "", "teamEmail": ""})
        assert resp.status_code == 400
        details = resp.json()["details"]
        assert set(details) == {"teamName", "teamEmail", "vehicleCategory", "answers"}

    def test_invalid_email(self, client):
        resp = client.post("/api/quiz/submit", json=submission_body(teamEmail="not-an-email"))
        assert resp.status_code == 400
        assert resp.json()["details"]["teamEmail"] == "Invalid email address"

    def test_bad_vehicle_category(self, client):
        resp = client.post("/api/quiz/submit", json=submission_body(vehicleCategory="XX"))
        assert resp.status_code == 400
        assert "vehicleCategory" in resp.json()["details"]

    def test_status_requires_email(self, client):
        resp = client.get("/api/quiz/submit")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Team email is required"

    def test_status_unknown_team(self, client):
        body = client.get("/api/quiz/submit", params={"teamEmail": "nobody@uni.gr"}).json()
        assert body == {"submitted": False, "submission": None}

    def test_unavailable_quiz_still_records(self, client, content, unavailable_content):
        content.active = unavailable_content
        content.latest = unavailable_content
        resp = client.post("/api/quiz/submit", json=submission_body())
        assert resp.status_code == 200

        status = client.get("/api/quiz/submit", params={"teamEmail": "team@uni.gr"}).json()
        assert status["submission"]["score"] == 0.0


class TestProgress:
    def test_save_and_read(self, client):
        assert client.post("/api/quiz/progress", json=progress_body()).json() == {"success": True}
        assert client.post("/api/quiz/progress", json=progress_body(answers={"1": "B", "2": "A"})).status_code == 200

        progress = client.get("/api/quiz/progress", params={"teamEmail": "team@uni.gr"}).json()["progress"]
        assert progress["answers"] == {"1": "B", "2": "A"}
        assert progress["current_question"] == 2
        assert progress["start_time"] == "2025-01-01T13:05:00Z"

    def test_requires_team_fields(self, client):
        resp = client.post("/api/quiz/progress", json=progress_body(teamName="", teamEmail=""))
        assert resp.status_code == 400
        assert set(resp.json()["details"]) == {"teamName", "teamEmail"}

    def test_no_progress(self, client):
        body = client.get("/api/quiz/progress", params={"teamEmail": "team@uni.gr"}).json()
        assert body == {"progress": None}

    def test_submission_clears_and_blocks_progress(self, client):
        client.post("/api/quiz/progress", json=progress_body())
        client.post("/api/quiz/submit", json=submission_body())

        assert client.get("/api/quiz/progress", params={"teamEmail": "team@uni.gr"}).json() == {"progress": None}
        resp = client.post("/api/quiz/progress", json=progress_body())
        assert resp.status_code == 400
        assert resp.json()["alreadySubmitted"] is True
        assert resp.json()["submission"]["id"] is not None

    def test_invalid_progress_is_not_reported_as_submitted(self, client):
        resp = client.post("/api/quiz/progress", json=progress_body(teamName=""))
        assert resp.status_code == 400
        assert "alreadySubmitted" not in resp.json()


def test_health_check(client):
    assert client.get("/").json()["status"] == "ok"
