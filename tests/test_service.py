from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from quiz_quest.catalog import default_catalog, fresh_progress
from quiz_quest.db import Database, ProgressConflict, ProgressNotFound
from quiz_quest.events import ValidationError
from quiz_quest.service import (
    advance_quest,
    buy_power_up,
    compute_status,
    finish_flashcard_session,
    overall_stats,
    record_flashcard_review,
    record_flashcards_generated,
    record_quiz_result,
    record_study_session,
    set_daily_goal,
    study_time_trend,
    todays_challenges,
    track_ai_question,
    use_coin,
)


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=ZoneInfo("Europe/Oslo"))


def test_first_session_initialises_and_levels_up(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    result = record_study_session(db, 1, "Biology", 30, _dt(2026, 3, 2))
    outcome = result.outcome
    assert result.session.points == 150
    assert result.double_points is False
    assert outcome.progress.points == 305
    assert outcome.progress.level == 3
    assert outcome.leveled_up
    assert outcome.badge_ids == ["points-100"]
    assert outcome.achievement_ids == ["first-session"]
    assert outcome.challenge_ids == ["perfect-day"]
    assert outcome.reward_points == 55
    assert db.load_progress(1).version == 1


def test_double_points_from_active_power_up(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 3, 2)
    record_study_session(db, 1, "Biology", 30, now)
    purchase = buy_power_up(db, 1, "double-points", now)
    assert purchase.success
    assert purchase.cost == 100
    assert purchase.activation is not None
    assert purchase.progress.points == 205

    doubled = record_study_session(db, 1, "Biology", 10, now + timedelta(minutes=5))
    assert doubled.double_points is True
    assert doubled.session.points == 100

    expired = record_study_session(db, 1, "Biology", 10, now + timedelta(minutes=45))
    assert expired.double_points is False
    assert expired.session.points == 50


def test_purchase_failures(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 3, 2)
    poor = buy_power_up(db, 1, "focus-mode", now)
    assert not poor.success and poor.reason == "insufficient_funds"
    assert poor.progress.points == 0

    unknown = buy_power_up(db, 1, "teleport", now)
    assert not unknown.success and unknown.reason == "unknown_power_up"

    db.set_app_config({"feature.power_ups_enabled": False}, actor="test")
    disabled = buy_power_up(db, 1, "focus-mode", now)
    assert disabled.reason == "disabled"


def test_early_end_keeps_minutes(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    result = record_study_session(db, 1, "Physics", 12, _dt(2026, 3, 2), ended_early=True)
    assert result.session.points == -25
    assert result.session.ended_early
    assert result.outcome.progress.points == -25
    assert result.outcome.progress.total_study_time == 12
    assert result.outcome.progress.sessions_completed == 0


def test_session_input_validation(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    with pytest.raises(ValidationError):
        record_study_session(db, 1, "  ", 10, _dt(2026, 3, 2))
    with pytest.raises(ValidationError):
        record_study_session(db, 1, "Math", -5, _dt(2026, 3, 2))
    assert db.list_study_sessions(1) == []


def test_quiz_and_coin(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    quiz = record_quiz_result(db, 1, correct=9, wrong=1, coins_used=0, now=_dt(2026, 3, 2))
    assert quiz.score == 90
    assert quiz.outcome.progress.points == 44
    assert quiz.outcome.progress.expert_quizzes == 1
    assert quiz.outcome.badge_ids == ["first-quiz"]

    coin = use_coin(db, 1, coins_used_in_quiz=0, now=_dt(2026, 3, 2))
    assert coin.points_delta == -10
    assert coin.progress.points == 34


def test_ai_questions_complete_quest(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 3, 2)
    challenges: list[str] = []
    for i in range(9):
        outcome = track_ai_question(db, 1, now + timedelta(minutes=i))
        assert outcome.quest_ids == []
        challenges.extend(outcome.challenge_ids)
    assert challenges == ["ai-master"]
    last = track_ai_question(db, 1, now + timedelta(minutes=9))
    assert last.quest_ids == ["ai-chat-10"]
    assert last.reward_points == 40
    assert last.progress.points == 75
    assert compute_status(db, 1, now + timedelta(minutes=9)).ai_questions_today == 10
    assert track_ai_question(db, 1, now + timedelta(minutes=10)).reward_points == 0


def test_advance_quest(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 3, 2)
    outcome = advance_quest(db, 1, "quiz-5", 5, now)
    assert outcome.quest.completed
    assert outcome.reward == 75
    assert db.load_progress(1).points == 75
    with pytest.raises(ValidationError):
        advance_quest(db, 1, "missing", 1, now)


def test_status_derives_today_from_sessions(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    record_study_session(db, 1, "Math", 20, _dt(2026, 3, 2))
    today = compute_status(db, 1, _dt(2026, 3, 2, 18))
    assert today.today_minutes == 20
    assert today.daily_progress == 20
    assert not today.daily_goal_reached

    tomorrow = compute_status(db, 1, _dt(2026, 3, 3, 9))
    assert tomorrow.today_minutes == 0
    assert tomorrow.daily_progress == 0


def test_daily_goal_update(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    progress = set_daily_goal(db, 1, 45, _dt(2026, 3, 2))
    assert progress.daily_goal == 45
    with pytest.raises(ValidationError):
        set_daily_goal(db, 1, 0, _dt(2026, 3, 2))


def test_analytics(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    record_study_session(db, 1, "Math", 20, _dt(2026, 3, 1))
    record_study_session(db, 1, "Math", 15, _dt(2026, 3, 3), ended_early=True)

    trend = study_time_trend(db, 1, _dt(2026, 3, 3, 20), days=3)
    assert [(t.day, t.minutes) for t in trend] == [
        (date(2026, 3, 1), 20),
        (date(2026, 3, 2), 0),
        (date(2026, 3, 3), 15),
    ]

    stats = overall_stats(db, 1)
    assert stats.total_sessions == 2
    assert stats.total_minutes == 35
    assert stats.ended_early_sessions == 1
    assert stats.longest_streak == 1


def test_stale_progress_conflicts(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    record_study_session(db, 1, "Math", 10, _dt(2026, 3, 2))
    stale = db.load_progress(1)
    record_study_session(db, 1, "Math", 10, _dt(2026, 3, 2, 11))
    with pytest.raises(ProgressConflict):
        db.save_progress(replace(stale, points=0))


def test_stale_read_leaves_no_session_behind(tmp_path, monkeypatch) -> None:
    db = Database(tmp_path / "app.db")
    record_study_session(db, 1, "Math", 10, _dt(2026, 3, 2))
    stale = db.load_progress(1)
    record_study_session(db, 1, "Math", 10, _dt(2026, 3, 2, 11))

    monkeypatch.setattr(db, "load_progress", lambda user_id: stale)
    with pytest.raises(ProgressConflict):
        record_study_session(db, 1, "Math", 10, _dt(2026, 3, 2, 12))
    assert len(db.list_study_sessions(1)) == 2


def test_retuned_curve_pays_no_level_bonus(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    db.save_progress(replace(fresh_progress(1, default_catalog()), points=120, level=2))
    db.set_app_config({"rules.level2_base": 50, "rules.level_step": 10}, actor="test")

    coin = use_coin(db, 1, coins_used_in_quiz=0, now=_dt(2026, 3, 2))
    assert coin.points_delta == -10
    assert coin.progress.points == 110
    assert coin.progress.level == 3


def test_empty_quiz_is_rejected(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    with pytest.raises(ValidationError):
        record_quiz_result(db, 1, correct=0, wrong=0, coins_used=0, now=_dt(2026, 3, 2))
    with pytest.raises(ProgressNotFound):
        db.load_progress(1)


def test_quiz_accuracy_is_a_running_average(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    record_quiz_result(db, 1, correct=9, wrong=1, coins_used=0, now=_dt(2026, 3, 2))
    second = record_quiz_result(db, 1, correct=1, wrong=1, coins_used=0, now=_dt(2026, 3, 2, 11))
    assert second.score == 50
    assert second.outcome.progress.quiz_accuracy == 70
    assert overall_stats(db, 1).quiz_accuracy == 70.0


def test_flashcard_points(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 3, 2)
    assert record_flashcards_generated(db, 1, 4, now).points_delta == 12
    assert record_flashcard_review(db, 1, "known", now).points_delta == 5
    assert record_flashcard_review(db, 1, "saved", now).points_delta == 2
    assert record_flashcard_review(db, 1, "review", now).points_delta == 1
    finished = finish_flashcard_session(db, 1, reviewed=2, known=1, now=now)
    assert finished.points_delta == 7
    assert finished.progress.points == 27

    stats = overall_stats(db, 1)
    assert (stats.flashcards_generated, stats.flashcards_reviewed, stats.flashcards_known) == (4, 2, 1)

    with pytest.raises(ValidationError):
        finish_flashcard_session(db, 1, reviewed=1, known=2, now=now)
    db.set_app_config({"feature.flashcards_enabled": False}, actor="test")
    with pytest.raises(ValidationError):
        record_flashcards_generated(db, 1, 1, now)


def test_todays_challenges(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    now = _dt(2026, 3, 2)
    quiz = record_quiz_result(db, 1, correct=3, wrong=1, coins_used=0, now=now, seconds=100)
    assert quiz.outcome.challenge_ids == ["speed-quiz"]

    today = {s.challenge.id: s.completed_today for s in todays_challenges(db, 1, now)}
    assert today == {"speed-quiz": True, "perfect-day": False, "ai-master": False, "early-riser": False}

    tomorrow = {s.challenge.id: s for s in todays_challenges(db, 1, now + timedelta(days=1))}
    assert not tomorrow["speed-quiz"].completed_today
    assert tomorrow["speed-quiz"].challenge.times_completed == 1
