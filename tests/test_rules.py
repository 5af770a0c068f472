from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from quiz_quest.catalog import default_catalog, fresh_progress
from quiz_quest.db_models import UserProgress
from quiz_quest.events import ValidationError
from quiz_quest.gamification import flashcard_session_points, level_from_points, running_accuracy
from quiz_quest.rules import (
    activate_power_up,
    add_study_time,
    apply_coin,
    apply_flashcard_review,
    apply_flashcard_session,
    apply_flashcards_generated,
    apply_points,
    apply_quiz_result,
    apply_session_completion,
    double_points_active,
    purchase_power_up,
    record_ai_question,
    set_daily_goal,
    update_streak,
)


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=ZoneInfo("Europe/Oslo"))


def test_level_up_bonus_applied_once() -> None:
    progress = UserProgress(user_id=1, points=95, level=1)
    out = apply_points(progress, 150)
    assert out.points == 345
    assert out.level == 3


def test_no_bonus_without_level_change() -> None:
    out = apply_points(UserProgress(user_id=1, points=10), 20)
    assert out.points == 30
    assert out.level == 1


def test_retuned_curve_is_not_a_level_up() -> None:
    progress = UserProgress(user_id=1, points=120, level=2)
    out = apply_coin(progress, 0, tuning={"level2_base": 50, "level_step": 10})
    assert out.points == 110
    assert out.level == 3


def test_points_may_go_negative() -> None:
    out = apply_points(UserProgress(user_id=1, points=5), -25)
    assert out.points == -20
    assert out.level == 1


def test_streak_same_next_and_gap_days() -> None:
    d = date(2026, 3, 2)
    p = update_streak(UserProgress(user_id=1), d)
    assert p.streak == 1
    assert update_streak(p, d) == p
    p = update_streak(p, d + timedelta(days=1))
    assert p.streak == 2
    assert p.longest_streak == 2
    p = update_streak(p, d + timedelta(days=4))
    assert p.streak == 1
    assert p.longest_streak == 2
    assert p.last_study_date == d + timedelta(days=4)


def test_completed_session_credits_points_and_time() -> None:
    p = apply_session_completion(UserProgress(user_id=1), 10, False, False, date(2026, 3, 2))
    assert p.points == 50
    assert p.level == 1
    assert p.sessions_completed == 1
    assert p.total_study_time == 10
    assert p.daily_progress == 10
    assert p.streak == 1


def test_early_end_costs_flat_penalty() -> None:
    p = apply_session_completion(UserProgress(user_id=1, points=40), 10, True, True, date(2026, 3, 2))
    assert p.points == 15
    assert p.sessions_completed == 0
    assert p.total_study_time == 10
    assert p.streak == 1


def test_daily_progress_clamps_and_rolls_over() -> None:
    d = date(2026, 3, 2)
    p = UserProgress(user_id=1, daily_goal=30)
    p = add_study_time(p, 20, d)
    p = add_study_time(p, 20, d)
    assert p.daily_progress == 30
    assert p.total_study_time == 40
    assert p.daily_goals_met == 1
    p = add_study_time(p, 5, d + timedelta(days=1))
    assert p.daily_progress == 5
    assert p.daily_goals_met == 1
    assert p.total_study_time == 45


def test_quiz_result_scoring() -> None:
    p = apply_quiz_result(UserProgress(user_id=1), correct=3, wrong=2, coins_used=1)
    assert p.points == 3
    assert p.quizzes_completed == 1
    assert p.expert_quizzes == 0

    expert = apply_quiz_result(UserProgress(user_id=1), correct=9, wrong=1, coins_used=0)
    assert expert.expert_quizzes == 1
    assert expert.quiz_accuracy == 90
    assert apply_quiz_result(expert, correct=1, wrong=3, coins_used=0).quiz_accuracy == 57.5


def test_quiz_result_rejects_bad_counts() -> None:
    with pytest.raises(ValidationError):
        apply_quiz_result(UserProgress(user_id=1), correct=1, wrong=0, coins_used=4)
    with pytest.raises(ValidationError):
        apply_quiz_result(UserProgress(user_id=1), correct=-1, wrong=0, coins_used=0)
    with pytest.raises(ValidationError):
        apply_quiz_result(UserProgress(user_id=1), correct=0, wrong=0, coins_used=0)


def test_coin_cap() -> None:
    p = apply_coin(UserProgress(user_id=1), 0)
    assert p.points == -10
    with pytest.raises(ValidationError):
        apply_coin(UserProgress(user_id=1), 3)


def test_power_up_purchase_requires_balance() -> None:
    poor, ok = purchase_power_up(UserProgress(user_id=1, points=80))
    assert ok is False
    assert poor.points == 80

    rich, ok = purchase_power_up(UserProgress(user_id=1, points=150, level=2))
    assert ok is True
    assert rich.points == 50
    assert rich.level == 1


def test_double_points_window() -> None:
    now = _dt(2026, 3, 2)
    definition = default_catalog().power_up("double-points")
    assert definition is not None
    p = activate_power_up(UserProgress(user_id=1), definition, now)
    assert double_points_active(p, now + timedelta(minutes=10))
    assert not double_points_active(p, now + timedelta(minutes=30))


def test_instant_power_up_leaves_no_activation() -> None:
    definition = default_catalog().power_up("time-extension")
    assert definition is not None
    p = activate_power_up(UserProgress(user_id=1), definition, _dt(2026, 3, 2))
    assert p.power_ups == ()


def test_daily_goal_range() -> None:
    p = UserProgress(user_id=1, daily_goal=30, daily_progress=20)
    assert set_daily_goal(p, 10).daily_progress == 10
    with pytest.raises(ValidationError):
        set_daily_goal(p, 0)
    with pytest.raises(ValidationError):
        set_daily_goal(p, 1441)


def test_level_always_matches_points() -> None:
    d = date(2026, 3, 2)
    p = fresh_progress(1, default_catalog())
    steps = [
        lambda x: apply_session_completion(x, 45, False, False, d),
        lambda x: apply_quiz_result(x, 8, 2, 1),
        lambda x: apply_coin(x, 1),
        lambda x: purchase_power_up(x)[0],
        lambda x: apply_session_completion(x, 5, True, False, d),
        lambda x: apply_session_completion(x, 120, False, True, d + timedelta(days=1)),
    ]
    for step in steps:
        p = step(p)
        assert p.level == level_from_points(p.points)
        assert 0 <= p.daily_progress <= p.daily_goal


def test_rules_do_not_mutate_input() -> None:
    before = UserProgress(user_id=1, points=95)
    snapshot = replace(before)
    apply_points(before, 150)
    assert before == snapshot


def test_running_accuracy() -> None:
    assert running_accuracy(0.0, 0, 80) == 80
    assert running_accuracy(80.0, 1, 60) == 70
    assert running_accuracy(70.0, 2, 100) == 80


def test_ai_question_count_rolls_over_daily() -> None:
    day = date(2026, 3, 2)
    p = record_ai_question(record_ai_question(UserProgress(user_id=1), day), day)
    assert p.ai_questions_today == 2
    nxt = record_ai_question(p, day + timedelta(days=1))
    assert nxt.ai_questions_today == 1 and nxt.ai_questions_date == day + timedelta(days=1)


def test_flashcard_rules() -> None:
    p = apply_flashcards_generated(UserProgress(user_id=1), 3)
    assert p.points == 9 and p.flashcards_generated == 3
    with pytest.raises(ValidationError):
        apply_flashcards_generated(p, 0)

    p = apply_flashcard_review(p, "review")
    assert p.points == 10 and p.flashcards_reviewed == 1 and p.flashcards_known == 0

    assert flashcard_session_points(4, 2) == 14
    finished = apply_flashcard_session(p, reviewed=4, known=2)
    assert finished.points == 24
    assert finished.flashcards_reviewed == 1
    with pytest.raises(ValidationError):
        apply_flashcard_session(p, reviewed=1, known=2)
