from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta

from quiz_quest.catalog import PowerUpDef
from quiz_quest.db_models import PowerUpActivation, UserProgress
from quiz_quest.events import ValidationError
from quiz_quest.gamification import (
    EXPERT_QUIZ_SCORE,
    _effective_tuning,
    flashcard_generation_points,
    flashcard_review_points,
    flashcard_session_points,
    level_from_points,
    quiz_points,
    quiz_score,
    running_accuracy,
    session_points,
)


def apply_points(progress: UserProgress, delta: int, tuning: dict[str, int] | None = None) -> UserProgress:
    """Add ``delta`` and re-derive the level.

    A level increase earns one flat bonus per call. Levels reached only
    because of that bonus are recorded but earn nothing further. The starting
    level is re-derived under the current curve, so retuning the curve never
    pays a bonus by itself.
    """
    cfg = _effective_tuning(tuning)
    baseline = level_from_points(progress.points, tuning=tuning)
    points = progress.points + delta
    level = level_from_points(points, tuning=tuning)
    if level > baseline:
        points += int(cfg["level_up_bonus"])
        level = level_from_points(points, tuning=tuning)
    return replace(progress, points=points, level=level)


def update_streak(progress: UserProgress, today: date) -> UserProgress:
    last = progress.last_study_date
    if last == today:
        return progress

    if last is not None and last == today - timedelta(days=1):
        streak = progress.streak + 1
    else:
        streak = 1
    return replace(
        progress,
        streak=streak,
        longest_streak=max(progress.longest_streak, streak),
        last_study_date=today,
    )


def daily_progress_for(progress: UserProgress, today: date) -> int:
    if progress.daily_progress_date != today:
        return 0
    return min(progress.daily_progress, progress.daily_goal)


def add_study_time(progress: UserProgress, minutes: int, today: date) -> UserProgress:
    before = daily_progress_for(progress, today)
    after = min(progress.daily_goal, before + minutes)
    goal_reached = before < progress.daily_goal <= after
    return replace(
        progress,
        total_study_time=progress.total_study_time + minutes,
        daily_progress=after,
        daily_progress_date=today,
        daily_goals_met=progress.daily_goals_met + (1 if goal_reached else 0),
    )


def apply_session_completion(
    progress: UserProgress,
    minutes: int,
    is_early_end: bool,
    double_points_active: bool,
    today: date,
    tuning: dict[str, int] | None = None,
) -> UserProgress:
    if minutes < 0:
        raise ValidationError("minutes must not be negative")
    delta = session_points(minutes, ended_early=is_early_end, double_points=double_points_active, tuning=tuning)
    updated = update_streak(progress, today)
    updated = add_study_time(updated, minutes, today)
    if is_early_end:
        updated = replace(updated, last_early_end_date=today)
    else:
        updated = replace(updated, sessions_completed=updated.sessions_completed + 1)
    return apply_points(updated, delta, tuning=tuning)


def apply_quiz_result(
    progress: UserProgress,
    correct: int,
    wrong: int,
    coins_used: int,
    tuning: dict[str, int] | None = None,
) -> UserProgress:
    cfg = _effective_tuning(tuning)
    if min(correct, wrong, coins_used) < 0:
        raise ValidationError("quiz counts must not be negative")
    if correct + wrong == 0:
        raise ValidationError("A quiz result needs at least one answered question")
    if coins_used > int(cfg["max_coins_per_quiz"]):
        raise ValidationError(f"At most {cfg['max_coins_per_quiz']} coins can be used per quiz")

    score = quiz_score(correct, wrong)
    updated = replace(
        progress,
        quizzes_completed=progress.quizzes_completed + 1,
        expert_quizzes=progress.expert_quizzes + (1 if score >= EXPERT_QUIZ_SCORE else 0),
        quiz_accuracy=running_accuracy(progress.quiz_accuracy, progress.quizzes_completed, score),
    )
    return apply_points(updated, quiz_points(correct, wrong, coins_used, tuning=tuning), tuning=tuning)


def apply_coin(progress: UserProgress, coins_used_in_quiz: int, tuning: dict[str, int] | None = None) -> UserProgress:
    cfg = _effective_tuning(tuning)
    if coins_used_in_quiz < 0:
        raise ValidationError("coins_used_in_quiz must not be negative")
    if coins_used_in_quiz >= int(cfg["max_coins_per_quiz"]):
        raise ValidationError(f"At most {cfg['max_coins_per_quiz']} coins can be used per quiz")
    return apply_points(progress, -int(cfg["coin_penalty"]), tuning=tuning)


def purchase_power_up(
    progress: UserProgress,
    cost: int = 100,
    tuning: dict[str, int] | None = None,
) -> tuple[UserProgress, bool]:
    if cost < 0:
        raise ValidationError("cost must not be negative")
    if progress.points < cost:
        return progress, False
    return apply_points(progress, -cost, tuning=tuning), True


def double_points_active(progress: UserProgress, now: datetime) -> bool:
    return any(p.power_up_id == "double-points" for p in progress.active_power_ups(now))


def activate_power_up(progress: UserProgress, definition: PowerUpDef, now: datetime) -> UserProgress:
    """Record a bought power-up. Instant power-ups leave no activation behind."""
    kept = tuple(p for p in progress.power_ups if p.is_active(now))
    if definition.duration_minutes <= 0:
        return replace(progress, power_ups=kept)
    activation = PowerUpActivation(
        power_up_id=definition.id,
        multiplier=definition.multiplier,
        activated_at=now,
        expires_at=now + timedelta(minutes=definition.duration_minutes),
    )
    return replace(progress, power_ups=kept + (activation,))


def set_daily_goal(progress: UserProgress, minutes: int) -> UserProgress:
    if minutes < 1 or minutes > 24 * 60:
        raise ValidationError("Daily goal must be between 1 and 1440 minutes")
    return replace(progress, daily_goal=minutes, daily_progress=min(progress.daily_progress, minutes))


def record_ai_question(progress: UserProgress, today: date) -> UserProgress:
    asked = progress.ai_questions_today if progress.ai_questions_date == today else 0
    return replace(progress, ai_questions_today=asked + 1, ai_questions_date=today)


def ai_questions_on(progress: UserProgress, today: date) -> int:
    return progress.ai_questions_today if progress.ai_questions_date == today else 0


def apply_flashcards_generated(progress: UserProgress, count: int, tuning: dict[str, int] | None = None) -> UserProgress:
    if count < 1:
        raise ValidationError("count must be at least 1")
    updated = replace(progress, flashcards_generated=progress.flashcards_generated + count)
    return apply_points(updated, flashcard_generation_points(count, tuning=tuning), tuning=tuning)


def apply_flashcard_review(progress: UserProgress, action: str, tuning: dict[str, int] | None = None) -> UserProgress:
    delta = flashcard_review_points(action, tuning=tuning)
    updated = replace(
        progress,
        flashcards_reviewed=progress.flashcards_reviewed + (0 if action == "saved" else 1),
        flashcards_known=progress.flashcards_known + (1 if action == "known" else 0),
    )
    return apply_points(updated, delta, tuning=tuning)


def apply_flashcard_session(
    progress: UserProgress,
    reviewed: int,
    known: int,
    tuning: dict[str, int] | None = None,
) -> UserProgress:
    """Bonus for finishing a review round. Per-card counters are kept by ``apply_flashcard_review``."""
    if reviewed < 0 or known < 0 or known > reviewed:
        raise ValidationError("known must be between 0 and reviewed")
    return apply_points(progress, flashcard_session_points(reviewed, known, tuning=tuning), tuning=tuning)
