from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from fastapi.testclient import TestClient

from quiz_quest.api import build_app, static_token_verifier
from quiz_quest.catalog import default_catalog, fresh_progress
from quiz_quest.db import Database

AUTH = {"Authorization": "Bearer tok-1"}
ADMIN = {"x-admin-token": "admin-secret"}


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=ZoneInfo("Europe/Oslo"))


def _client(db: Database) -> TestClient:
    app = build_app(
        db,
        default_catalog(),
        verify_token=static_token_verifier({"tok-1": 1}),
        admin_token="admin-secret",
        clock=lambda: _dt(2026, 3, 2),
    )
    return TestClient(app)


def test_requests_without_valid_token_are_rejected(tmp_path) -> None:
    client = _client(Database(tmp_path / "app.db"))
    assert client.get("/api/progress").status_code == 401
    assert client.get("/api/progress", headers={"Authorization": "Bearer nope"}).status_code == 401
    assert client.get("/api/progress", headers={"Authorization": "tok-1"}).status_code == 401


def test_progress_for_new_user(tmp_path) -> None:
    client = _client(Database(tmp_path / "app.db"))
    res = client.get("/api/progress", headers=AUTH)
    assert res.status_code == 200
    body = res.json()
    assert body["progress"]["points"] == 0
    assert body["level"]["level"] == 1
    assert len(body["progress"]["badges"]) == 8
    assert "Level 1" in body["summary"]


def test_record_session_and_list(tmp_path) -> None:
    client = _client(Database(tmp_path / "app.db"))
    res = client.post("/api/sessions", json={"task_name": "Math", "duration": 30}, headers=AUTH)
    assert res.status_code == 200
    body = res.json()
    assert body["session"]["points"] == 150
    assert body["progress"]["points"] == 305
    assert body["leveled_up"] is True
    assert body["unlocked"]["achievements"] == ["first-session"]
    assert body["unlocked"]["challenges"] == ["perfect-day"]
    assert "Level up" in body["message"]
    assert "Challenge completed: Perfect Day (+45)" in body["message"]

    listed = client.get("/api/sessions", headers=AUTH).json()
    assert [s["task_name"] for s in listed["sessions"]] == ["Math"]


def test_invalid_input_is_400(tmp_path) -> None:
    client = _client(Database(tmp_path / "app.db"))
    assert client.post("/api/sessions", json={"task_name": "Math", "duration": -5}, headers=AUTH).status_code == 400
    assert client.post("/api/sessions", json={"task_name": "Math"}, headers=AUTH).status_code == 400
    assert client.post("/api/quiz", json={"correct": 1, "wrong": 0, "coins_used": 4}, headers=AUTH).status_code == 400
    assert client.post("/api/quiz", json={"correct": 0, "wrong": 0}, headers=AUTH).status_code == 400
    assert client.post("/api/flashcards/generated", json={"count": 0}, headers=AUTH).status_code == 400
    assert client.post("/api/flashcards/review", json={"action": "forgot"}, headers=AUTH).status_code == 400
    assert client.post("/api/quiz/coin", json={"coins_used_in_quiz": 3}, headers=AUTH).status_code == 400
    assert client.post("/api/quests/missing/progress", json={"delta": 1}, headers=AUTH).status_code == 400
    assert client.put("/api/progress/daily-goal", json={"minutes": 0}, headers=AUTH).status_code == 400
    assert client.get("/api/analytics?type=bogus", headers=AUTH).status_code == 400


def test_power_up_endpoints(tmp_path) -> None:
    client = _client(Database(tmp_path / "app.db"))
    refused = client.post("/api/powerups", json={"power_up_id": "double-points"}, headers=AUTH)
    assert refused.status_code == 400
    assert refused.json()["reason"] == "insufficient_funds"

    client.post("/api/sessions", json={"task_name": "Math", "duration": 30}, headers=AUTH)
    bought = client.post("/api/powerups", json={"power_up_id": "double-points"}, headers=AUTH)
    assert bought.status_code == 200
    assert bought.json()["points"] == 205

    listing = client.get("/api/powerups", headers=AUTH).json()
    assert [a["power_up_id"] for a in listing["active"]] == ["double-points"]
    assert len(listing["available"]) == 4


def test_quiz_quest_and_ai_endpoints(tmp_path) -> None:
    client = _client(Database(tmp_path / "app.db"))
    quiz = client.post("/api/quiz", json={"correct": 3, "wrong": 2, "coins_used": 1}, headers=AUTH).json()
    assert quiz["points_delta"] == 3
    assert quiz["score"] == 60

    quest = client.post("/api/quests/quiz-5/progress", json={"delta": 4}, headers=AUTH).json()
    assert quest["quest"]["progress"] == 5
    assert quest["quest"]["completed"] is True
    assert quest["reward"] == 75

    ai = client.post("/api/ai-questions", headers=AUTH)
    assert ai.status_code == 200


def test_analytics_types(tmp_path) -> None:
    client = _client(Database(tmp_path / "app.db"))
    client.post("/api/sessions", json={"task_name": "Math", "duration": 30}, headers=AUTH)
    trend = client.get("/api/analytics?type=study-time-trend&days=7", headers=AUTH).json()
    assert len(trend["data"]) == 7
    assert trend["data"][-1] == {"date": "2026-03-02", "minutes": 30}
    recent = client.get("/api/analytics?type=recent-sessions", headers=AUTH).json()
    assert len(recent["data"]) == 1
    stats = client.get("/api/analytics?type=overall-stats", headers=AUTH).json()
    assert stats["data"]["total_sessions"] == 1


def test_conflict_maps_to_409_and_drops_the_session(tmp_path) -> None:
    class StaleReadDatabase(Database):
        def load_progress(self, user_id):  # type: ignore[override]
            return fresh_progress(user_id, default_catalog())

    db = StaleReadDatabase(tmp_path / "app.db")
    db.save_progress(fresh_progress(1, default_catalog()))
    client = _client(db)
    res = client.post("/api/sessions", json={"task_name": "Math", "duration": 30}, headers=AUTH)
    assert res.status_code == 409
    assert db.list_study_sessions(1) == []


def test_admin_config_requires_token_and_tunes_rules(tmp_path) -> None:
    client = _client(Database(tmp_path / "app.db"))
    assert client.get("/admin/api/config").status_code == 401
    cfg = client.get("/admin/api/config", headers=ADMIN).json()
    assert cfg["config"]["rules.session_points_per_minute"] == 5

    res = client.post(
        "/admin/api/config",
        json={"updates": {"rules.session_points_per_minute": "10", "bogus": 1}, "actor": "test"},
        headers=ADMIN,
    )
    assert res.json()["updated_count"] == 1

    session = client.post("/api/sessions", json={"task_name": "Math", "duration": 5}, headers=AUTH).json()
    assert session["session"]["points"] == 50
    history = client.get("/admin/api/config/history", headers=ADMIN).json()
    assert history["changes"][0]["key"] == "rules.session_points_per_minute"
    assert history["changes"][0]["value"] == 10
    assert history["changes"][0]["actor"] == "test"
    assert client.get("/admin/api/config/history").status_code == 401


def test_flashcard_endpoints(tmp_path) -> None:
    client = _client(Database(tmp_path / "app.db"))
    generated = client.post("/api/flashcards/generated", json={"count": 5}, headers=AUTH).json()
    assert generated["points_delta"] == 15
    assert generated["progress"]["flashcards_generated"] == 5

    review = client.post("/api/flashcards/review", json={"action": "known"}, headers=AUTH).json()
    assert review["points_delta"] == 5

    session = client.post("/api/flashcards/session", json={"reviewed": 3, "known": 1}, headers=AUTH).json()
    assert session["points_delta"] == 9
    assert session["progress"]["points"] == 29


def test_challenge_listing(tmp_path) -> None:
    client = _client(Database(tmp_path / "app.db"))
    before = client.get("/api/challenges", headers=AUTH).json()["challenges"]
    assert [c["id"] for c in before] == ["speed-quiz", "perfect-day", "ai-master", "early-riser"]
    assert not any(c["completed_today"] for c in before)

    quiz = client.post("/api/quiz", json={"correct": 4, "wrong": 0, "seconds": 90}, headers=AUTH).json()
    assert quiz["unlocked"]["challenges"] == ["speed-quiz"]

    after = {c["id"]: c for c in client.get("/api/challenges", headers=AUTH).json()["challenges"]}
    assert after["speed-quiz"]["completed_today"] is True
    assert after["speed-quiz"]["difficulty"] == "medium"
    assert after["speed-quiz"]["times_completed"] == 1
