from __future__ import annotations

from dataclasses import dataclass

DEFAULT_RULES_TUNING = {
    "session_points_per_minute": 5,
    "early_end_penalty": 25,
    "quiz_correct_points": 5,
    "quiz_wrong_penalty": 1,
    "coin_penalty": 10,
    "max_coins_per_quiz": 3,
    "power_up_cost": 100,
    "level_up_bonus": 100,
    "level2_base": 100,
    "level_step": 50,
    "default_daily_goal": 30,
    "flashcard_generated_points": 3,
    "flashcard_saved_points": 2,
    "flashcard_known_points": 5,
    "flashcard_review_points": 1,
    "flashcard_reviewed_bonus": 2,
    "flashcard_mastered_bonus": 3,
}

DOUBLE_POINTS_MULTIPLIER = 2
EXPERT_QUIZ_SCORE = 90


@dataclass(frozen=True)
class LevelProgress:
    level: int
    current_level_points: int
    next_level_points: int
    progress_ratio: float
    remaining_to_next: int


def _effective_tuning(tuning: dict[str, int] | None = None) -> dict[str, int]:
    if not tuning:
        return dict(DEFAULT_RULES_TUNING)
    merged = dict(DEFAULT_RULES_TUNING)
    merged.update(tuning)
    return merged


def points_for_level(level: int, tuning: dict[str, int] | None = None) -> int:
    """Cost of advancing from ``level - 1`` to ``level``."""
    cfg = _effective_tuning(tuning)
    if level <= 1:
        return 0
    return max(1, int(cfg["level2_base"]) + (level - 2) * int(cfg["level_step"]))


def total_points_for_level(level: int, tuning: dict[str, int] | None = None) -> int:
    if level <= 1:
        return 0
    total = 0
    for lvl in range(2, level + 1):
        total += points_for_level(lvl, tuning=tuning)
    return total


def level_from_points(points: int, tuning: dict[str, int] | None = None) -> int:
    remaining = max(0, points)
    level = 1
    while True:
        needed = points_for_level(level + 1, tuning=tuning)
        if needed > remaining:
            break
        remaining -= needed
        level += 1
    return level


def level_progress(points: int, tuning: dict[str, int] | None = None) -> LevelProgress:
    value = max(0, points)
    level = level_from_points(value, tuning=tuning)
    current_floor = total_points_for_level(level, tuning=tuning)
    next_total = total_points_for_level(level + 1, tuning=tuning)
    span = max(next_total - current_floor, 1)
    current_level_points = value - current_floor
    return LevelProgress(
        level=level,
        current_level_points=current_level_points,
        next_level_points=span,
        progress_ratio=current_level_points / span,
        remaining_to_next=max(next_total - value, 0),
    )


def session_points(
    minutes: int,
    ended_early: bool,
    double_points: bool = False,
    tuning: dict[str, int] | None = None,
) -> int:
    cfg = _effective_tuning(tuning)
    if ended_early:
        return -int(cfg["early_end_penalty"])
    earned = max(0, minutes) * int(cfg["session_points_per_minute"])
    if double_points:
        earned *= DOUBLE_POINTS_MULTIPLIER
    return earned


def quiz_points(correct: int, wrong: int, coins_used: int, tuning: dict[str, int] | None = None) -> int:
    cfg = _effective_tuning(tuning)
    return (
        correct * int(cfg["quiz_correct_points"])
        - wrong * int(cfg["quiz_wrong_penalty"])
        - coins_used * int(cfg["coin_penalty"])
    )


def quiz_score(correct: int, wrong: int) -> int:
    answered = correct + wrong
    if answered <= 0:
        return 0
    return (correct * 100) // answered


def running_accuracy(previous: float, quizzes_before: int, score: int) -> float:
    """Average quiz score after one more quiz."""
    total = max(0, quizzes_before) + 1
    return (previous * (total - 1) + score) / total


def flashcard_generation_points(count: int, tuning: dict[str, int] | None = None) -> int:
    cfg = _effective_tuning(tuning)
    return max(0, count) * int(cfg["flashcard_generated_points"])


def flashcard_review_points(action: str, tuning: dict[str, int] | None = None) -> int:
    cfg = _effective_tuning(tuning)
    return int(cfg.get(f"flashcard_{action}_points", 0))


def flashcard_session_points(reviewed: int, known: int, tuning: dict[str, int] | None = None) -> int:
    cfg = _effective_tuning(tuning)
    return max(0, reviewed) * int(cfg["flashcard_reviewed_bonus"]) + max(0, known) * int(cfg["flashcard_mastered_bonus"])


def format_minutes_hm(minutes: int) -> str:
    sign = "-" if minutes < 0 else ""
    total = abs(minutes)
    h, m = divmod(total, 60)
    if m == 0:
        return f"{sign}{h}h"
    if h == 0:
        return f"{sign}{m}m"
    return f"{sign}{h}h {m}m"
