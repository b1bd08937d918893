"""
API tests for the practice router.

Uses FastAPI's TestClient without entering the lifespan, so no PostgreSQL
connection is attempted; the session dependency is pointed at SQLite.
"""

import pytest
from fastapi.testclient import TestClient

from src.api import main as api_main
from src.api.main import app
from src.db.database import get_session

LEARNER = "learner-1"


@pytest.fixture
def client(session_factory):
    def override_get_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_session] = override_get_session
    yield TestClient(app)
    app.dependency_overrides.clear()


def _start(client, mode="recall", xp_goal=30, learner_id=LEARNER):
    response = client.post(
        "/practice/start",
        json={
            "learner_id": learner_id,
            "exam_id": "exam-1",
            "subject_id": "physics",
            "mode": mode,
            "xp_goal": xp_goal,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()["session_id"]


def _next(client, session_id, learner_id=LEARNER):
    return client.post("/practice/next", json={"learner_id": learner_id, "session_id": session_id})


def _answer(client, session_id, delivery_id, answer="B", seconds=5, learner_id=LEARNER):
    return client.post(
        "/practice/answer",
        json={
            "learner_id": learner_id,
            "session_id": session_id,
            "delivery_id": delivery_id,
            "answer": answer,
            "time_taken_seconds": seconds,
        },
    )


class TestHealth:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "practice-engine"

    def test_health(self, client, monkeypatch):
        monkeypatch.setattr(api_main, "check_database_health", lambda: ("ok", None))
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["components"] == {"database": "ok"}

    def test_health_reports_database_errors(self, client, monkeypatch):
        monkeypatch.setattr(api_main, "check_database_health", lambda: ("error", "refused"))
        body = client.get("/health").json()
        assert body["status"] == "unhealthy"
        assert body["errors"] == {"database": "refused"}


class TestStart:
    def test_start_returns_created(self, client):
        session_id = _start(client)
        assert session_id

    def test_missing_field_is_invalid_argument(self, client):
        response = client.post(
            "/practice/start",
            json={"learner_id": LEARNER, "subject_id": "physics", "mode": "recall", "xp_goal": 10},
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "invalid_argument"
        assert "exam_id" in body["message"]

    @pytest.mark.parametrize(("mode", "xp_goal"), [("sprint", 10), ("recall", 0)])
    def test_bad_values(self, client, mode, xp_goal):
        response = client.post(
            "/practice/start",
            json={
                "learner_id": LEARNER,
                "exam_id": "exam-1",
                "subject_id": "physics",
                "mode": mode,
                "xp_goal": xp_goal,
            },
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_argument"

    @pytest.mark.parametrize("xp_goal", ["10", True, "ten"])
    def test_xp_goal_must_be_a_json_number(self, client, xp_goal):
        response = client.post(
            "/practice/start",
            json={
                "learner_id": LEARNER,
                "exam_id": "exam-1",
                "subject_id": "physics",
                "mode": "recall",
                "xp_goal": xp_goal,
            },
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "invalid_argument"
        assert body["message"] == "Invalid request fields: xp_goal"


class TestPracticeLoop:
    def test_full_loop(self, client, add_questions):
        add_questions(3)
        session_id = _start(client, xp_goal=20)

        response = _next(client, session_id)
        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"delivery_id", "question", "xp_so_far", "xp_goal", "bonus_active"}
        assert "correct_answer" not in body["question"]
        assert body["xp_so_far"] == 0
        assert body["xp_goal"] == 20

        response = _answer(client, session_id, body["delivery_id"], "B")
        assert response.status_code == 200
        assert response.json() == {"is_correct": True, "xp_awarded": 10}

        response = _answer(client, session_id, body["delivery_id"], "B")
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

        body = _next(client, session_id).json()
        assert body["xp_so_far"] == 10
        response = _answer(client, session_id, body["delivery_id"], "C")
        assert response.json() == {"is_correct": False, "xp_awarded": 1}

        response = client.post("/practice/end", json={"learner_id": LEARNER, "session_id": session_id})
        assert response.status_code == 200
        assert response.json() == {}

        response = client.post("/practice/end", json={"learner_id": LEARNER, "session_id": session_id})
        assert response.status_code == 409

        response = _next(client, session_id)
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_state"

    def test_error_statuses(self, client, add_questions):
        add_questions(1)
        session_id = _start(client)

        assert _next(client, "missing").status_code == 404
        assert _next(client, session_id, learner_id="intruder").status_code == 403

        delivery_id = _next(client, session_id).json()["delivery_id"]
        assert _answer(client, session_id, "missing", "B").status_code == 404
        assert _answer(client, session_id, delivery_id, "B", learner_id="intruder").status_code == 403
        assert _answer(client, session_id, delivery_id, "B", seconds=-3).status_code == 400

        response = _next(client, session_id)
        assert response.status_code == 404
        assert response.json()["error"] == "no_questions_available"

        response = client.post("/practice/end", json={"learner_id": LEARNER, "session_id": "missing"})
        assert response.status_code == 404

    def test_answer_requires_time_taken(self, client, add_questions):
        add_questions(1)
        session_id = _start(client)
        delivery_id = _next(client, session_id).json()["delivery_id"]
        response = client.post(
            "/practice/answer",
            json={
                "learner_id": LEARNER,
                "session_id": session_id,
                "delivery_id": delivery_id,
                "answer": "B",
            },
        )
        assert response.status_code == 400
        assert "time_taken_seconds" in response.json()["message"]

    @pytest.mark.parametrize("seconds", ["12", True, [12]])
    def test_time_taken_must_be_a_json_number(self, client, add_questions, seconds):
        add_questions(1)
        session_id = _start(client)
        delivery_id = _next(client, session_id).json()["delivery_id"]

        response = _answer(client, session_id, delivery_id, "B", seconds=seconds)
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "invalid_argument"
        assert body["message"] == "Invalid request fields: time_taken_seconds"

        response = _answer(client, session_id, delivery_id, "B", seconds=12.5)
        assert response.status_code == 200
        assert response.json() == {"is_correct": True, "xp_awarded": 10}


class TestReadEndpoints:
    def test_session_summary(self, client, add_questions):
        add_questions(2)
        session_id = _start(client)
        delivery_id = _next(client, session_id).json()["delivery_id"]
        _answer(client, session_id, delivery_id, "B")

        response = client.get(f"/practice/sessions/{session_id}", params={"learner_id": LEARNER})
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "in_progress"
        assert body["questions_count"] == 1
        assert body["correct_count"] == 1
        assert body["xp_so_far"] == 10
        assert body["accuracy"] == 1.0
        assert body["deliveries_by_strategy"] == {"eval": 1}

        response = client.get(f"/practice/sessions/{session_id}", params={"learner_id": "intruder"})
        assert response.status_code == 403

    def test_learner_mastery(self, client, add_questions, set_mastery):
        set_mastery(LEARNER, "optics", 0.9)
        add_questions(1, topic_id="kinematics")
        session_id = _start(client)
        delivery_id = _next(client, session_id).json()["delivery_id"]
        _answer(client, session_id, delivery_id, "C")

        body = client.get(f"/practice/mastery/{LEARNER}").json()
        assert body["learner_id"] == LEARNER
        assert body["theta"] < 0.0
        levels = {topic["topic_id"]: topic["level"] for topic in body["topics"]}
        assert levels == {"kinematics": "weak", "optics": "mastered"}

    def test_unknown_learner_has_no_mastery(self, client):
        body = client.get("/practice/mastery/nobody").json()
        assert body == {"learner_id": "nobody", "theta": 0.0, "topics": []}
