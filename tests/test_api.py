import pytest
from fastapi.testclient import TestClient

from conftest import EXAM, STUDENT, build_store
from exam_session.main import app
from exam_session.wiring import SessionRegistry, get_registry


@pytest.fixture
def registry(config):
    return SessionRegistry(build_store(), config)


@pytest.fixture
def client(registry):
    app.dependency_overrides[get_registry] = lambda: registry
    with TestClient(app) as client:
        yield client
        for attempt_id in list(registry._by_attempt):
            client.delete(f"/sessions/{attempt_id}")
    app.dependency_overrides.clear()


def _open(client, exam_id=EXAM):
    return client.post("/sessions", json={"student_id": STUDENT, "exam_id": exam_id})


def test_health(client) -> None:
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


def test_take_exam_end_to_end(client) -> None:
    res = _open(client)
    assert res.status_code == 200
    view = res.json()
    attempt_id = view["attempt_id"]
    assert view["phase"] == "ready"
    assert view["exam_name"] == "Physics Midterm"
    assert view["current"]["question_id"] == "q1"
    assert [e["state"] for e in view["palette"]] == ["current", "unanswered", "unanswered"]

    view = client.post(f"/sessions/{attempt_id}/answer", json={"question_id": "q1", "option": 1}).json()
    assert view["current"]["selected_option"] == 1

    view = client.post(f"/sessions/{attempt_id}/navigate", json={"direction": "next"}).json()
    assert view["current"]["question_id"] == "q2"
    assert view["palette"][0]["state"] == "answered"

    view = client.post(f"/sessions/{attempt_id}/mark", json={"question_id": "q2"}).json()
    assert view["current"]["marked_for_review"] is True
    assert view["summary"]["marked"] == 1

    res = client.post(f"/sessions/{attempt_id}/events", json={"type": "paste"})
    assert res.json() == {"default_prevented": True}
    view = client.get(f"/sessions/{attempt_id}").json()
    assert view["counters"]["copy_paste_events"] == 1

    view = client.post(f"/sessions/{attempt_id}/submit", json={}).json()
    assert view["confirm_pending"] is True
    assert view["phase"] == "ready"

    view = client.post(f"/sessions/{attempt_id}/submit", json={"confirmed": True}).json()
    assert view["phase"] == "submitted"
    assert view["current"] is None
    result = view["result"]
    assert (result["score"], result["total_marks"], result["percentage"]) == (2, 10, 20.0)
    assert result["status"] == "failed"

    res = client.post(f"/sessions/{attempt_id}/answer", json={"question_id": "q2", "option": 0})
    assert res.status_code == 409

    res = _open(client)
    assert res.status_code == 400
    assert "Re-attempts are not allowed" in res.json()["detail"]


def test_reopening_returns_the_same_session(client) -> None:
    first = _open(client).json()
    second = _open(client).json()
    assert first["attempt_id"] == second["attempt_id"]


def test_unknown_exam_is_rejected(client) -> None:
    res = _open(client, exam_id="no-such-exam")
    assert res.status_code == 400
    assert res.json()["detail"] == "Failed to load exam data."


def test_unknown_session_is_not_found(client) -> None:
    assert client.get("/sessions/nope").status_code == 404


def test_bad_answers_are_unprocessable(client) -> None:
    attempt_id = _open(client).json()["attempt_id"]
    assert client.post(f"/sessions/{attempt_id}/answer", json={"question_id": "q2", "option": 5}).status_code == 422
    assert client.post(f"/sessions/{attempt_id}/answer", json={"question_id": "q2", "option": -1}).status_code == 422
    res = client.post(f"/sessions/{attempt_id}/navigate", json={"index": 1, "direction": "next"})
    assert res.status_code == 422


def test_leaving_closes_the_session(client) -> None:
    attempt_id = _open(client).json()["attempt_id"]
    res = client.delete(f"/sessions/{attempt_id}")
    assert res.status_code == 200
    assert res.json()["phase"] == "closed"
    assert client.get(f"/sessions/{attempt_id}").status_code == 404


def test_finished_sessions_are_evicted_on_next_open(client, registry) -> None:
    attempt_id = _open(client).json()["attempt_id"]
    client.post(f"/sessions/{attempt_id}/submit", json={"confirmed": True})
    assert client.get(f"/sessions/{attempt_id}").json()["phase"] == "submitted"

    other = client.post("/sessions", json={"student_id": "stu-2", "exam_id": EXAM}).json()
    assert client.get(f"/sessions/{attempt_id}").status_code == 404
    assert list(registry._by_attempt) == [other["attempt_id"]]
