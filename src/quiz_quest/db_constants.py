from __future__ import annotations

from typing import Any

APP_CONFIG_DEFAULTS: dict[str, Any] = {
    "feature.power_ups_enabled": True,
    "feature.ai_questions_enabled": True,
    "feature.flashcards_enabled": True,
    "rules.session_points_per_minute": 5,
    "rules.early_end_penalty": 25,
    "rules.quiz_correct_points": 5,
    "rules.quiz_wrong_penalty": 1,
    "rules.coin_penalty": 10,
    "rules.max_coins_per_quiz": 3,
    "rules.power_up_cost": 100,
    "rules.level_up_bonus": 100,
    "rules.level2_base": 100,
    "rules.level_step": 50,
    "rules.default_daily_goal": 30,
    "rules.flashcard_generated_points": 3,
    "rules.flashcard_saved_points": 2,
    "rules.flashcard_known_points": 5,
    "rules.flashcard_review_points": 1,
    "rules.flashcard_reviewed_bonus": 2,
    "rules.flashcard_mastered_bonus": 3,
}

# app_config key -> (tuning key, lower bound)
RULES_CONFIG_KEYS: dict[str, tuple[str, int]] = {
    "rules.session_points_per_minute": ("session_points_per_minute", 0),
    "rules.early_end_penalty": ("early_end_penalty", 0),
    "rules.quiz_correct_points": ("quiz_correct_points", 0),
    "rules.quiz_wrong_penalty": ("quiz_wrong_penalty", 0),
    "rules.coin_penalty": ("coin_penalty", 0),
    "rules.max_coins_per_quiz": ("max_coins_per_quiz", 1),
    "rules.power_up_cost": ("power_up_cost", 0),
    "rules.level_up_bonus": ("level_up_bonus", 0),
    "rules.level2_base": ("level2_base", 1),
    "rules.level_step": ("level_step", 0),
    "rules.default_daily_goal": ("default_daily_goal", 1),
    "rules.flashcard_generated_points": ("flashcard_generated_points", 0),
    "rules.flashcard_saved_points": ("flashcard_saved_points", 0),
    "rules.flashcard_known_points": ("flashcard_known_points", 0),
    "rules.flashcard_review_points": ("flashcard_review_points", 0),
    "rules.flashcard_reviewed_bonus": ("flashcard_reviewed_bonus", 0),
    "rules.flashcard_mastered_bonus": ("flashcard_mastered_bonus", 0),
}

SESSION_LIST_LIMIT = 100
AUDIT_LIST_LIMIT = 200
