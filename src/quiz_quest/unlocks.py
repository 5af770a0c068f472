from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any

from quiz_quest.catalog import Catalog
from quiz_quest.db_models import Quest, UserProgress
from quiz_quest.events import ValidationError
from quiz_quest.rules import apply_points

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventContext:
    today: date | None = None
    studied_at: datetime | None = None
    session_minutes: int = 0
    session_completed: bool = False
    quiz_completed: bool = False
    quiz_score: int | None = None
    quiz_seconds: int | None = None
    daily_goal_reached: bool = False
    ai_questions: int = 0
    flashcards_generated: int = 0
    flashcards_reviewed: int = 0
    flashcards_known: int = 0


@dataclass(frozen=True)
class UnlockResult:
    progress: UserProgress
    badge_ids: list[str]
    achievement_ids: list[str]
    reward_points: int

    @property
    def unlocked_anything(self) -> bool:
        return bool(self.badge_ids or self.achievement_ids)


@dataclass(frozen=True)
class ChallengeResult:
    progress: UserProgress
    challenge_ids: list[str]
    reward_points: int


def rule_satisfied(rule: dict[str, Any], progress: UserProgress, context: EventContext) -> bool:
    rtype = str(rule.get("type", ""))
    value = int(rule.get("value", 0))

    if rtype == "points_at_least":
        return progress.points >= value
    if rtype == "streak_at_least":
        return progress.streak >= value
    if rtype == "sessions_at_least":
        return progress.sessions_completed >= value
    if rtype == "quizzes_at_least":
        return progress.quizzes_completed >= value
    if rtype == "expert_quizzes_at_least":
        return progress.expert_quizzes >= value
    if rtype == "flashcards_generated_at_least":
        return progress.flashcards_generated >= value
    if rtype == "flashcards_known_at_least":
        return progress.flashcards_known >= value
    if rtype == "session_minutes_at_least":
        return context.session_minutes >= value > 0
    if rtype == "quiz_score_at_least":
        return context.quiz_completed and context.quiz_score is not None and context.quiz_score >= value
    if rtype == "quiz_under_seconds":
        return context.quiz_completed and context.quiz_seconds is not None and context.quiz_seconds < value
    if rtype == "studied_before_hour":
        return context.studied_at is not None and context.studied_at.hour < value
    if rtype == "studied_from_hour":
        return context.studied_at is not None and context.studied_at.hour >= value
    if rtype == "daily_goal_without_early_end":
        return context.daily_goal_reached and context.today is not None and progress.last_early_end_date != context.today
    if rtype == "ai_questions_today_at_least":
        return (
            context.today is not None
            and progress.ai_questions_date == context.today
            and progress.ai_questions_today >= value
        )
    return False


def evaluate_unlocks(
    progress: UserProgress,
    context: EventContext,
    now: datetime,
    catalog: Catalog,
    tuning: dict[str, int] | None = None,
) -> UnlockResult:
    """Flag every newly satisfied badge and achievement.

    Achievement rewards are folded into the points once. Nothing is
    re-evaluated after the fold, so items that would only be satisfied by the
    reward itself wait for the next event. Quest progress is not touched here.
    """
    badge_ids: list[str] = []
    badges = []
    for badge in progress.badges:
        definition = catalog.badge(badge.id)
        if badge.earned or definition is None or not rule_satisfied(definition.rule, progress, context):
            badges.append(badge)
            continue
        badges.append(replace(badge, earned=True, earned_at=now))
        badge_ids.append(badge.id)

    achievement_ids: list[str] = []
    reward = 0
    achievements = []
    for achievement in progress.achievements:
        definition = catalog.achievement(achievement.id)
        if achievement.earned or definition is None or not rule_satisfied(definition.rule, progress, context):
            achievements.append(achievement)
            continue
        achievements.append(replace(achievement, earned=True, earned_at=now))
        achievement_ids.append(achievement.id)
        reward += achievement.points

    if not (badge_ids or achievement_ids):
        return UnlockResult(progress=progress, badge_ids=[], achievement_ids=[], reward_points=0)

    updated = replace(progress, badges=tuple(badges), achievements=tuple(achievements))
    if reward:
        updated = apply_points(updated, reward, tuning=tuning)
    logger.info(
        "unlocks user_id=%s badges=%s achievements=%s reward=%s",
        progress.user_id,
        badge_ids,
        achievement_ids,
        reward,
    )
    return UnlockResult(progress=updated, badge_ids=badge_ids, achievement_ids=achievement_ids, reward_points=reward)


def evaluate_challenges(
    progress: UserProgress,
    context: EventContext,
    now: datetime,
    catalog: Catalog,
    tuning: dict[str, int] | None = None,
) -> ChallengeResult:
    """Complete today's challenges whose rule holds. Each can be won once per local day."""
    today = now.date()
    challenge_ids: list[str] = []
    reward = 0
    challenges = []
    for challenge in progress.challenges:
        definition = catalog.challenge(challenge.id)
        if challenge.completed_on(today) or definition is None or not rule_satisfied(definition.rule, progress, context):
            challenges.append(challenge)
            continue
        challenges.append(replace(challenge, completed_at=now, times_completed=challenge.times_completed + 1))
        challenge_ids.append(challenge.id)
        reward += challenge.reward

    if not challenge_ids:
        return ChallengeResult(progress=progress, challenge_ids=[], reward_points=0)

    updated = replace(progress, challenges=tuple(challenges))
    if reward:
        updated = apply_points(updated, reward, tuning=tuning)
    logger.info("challenges user_id=%s completed=%s reward=%s", progress.user_id, challenge_ids, reward)
    return ChallengeResult(progress=updated, challenge_ids=challenge_ids, reward_points=reward)


def _context_amount(source: str, quest: Quest, progress: UserProgress, context: EventContext) -> int:
    if source == "study_minutes":
        return context.session_minutes
    if source == "quizzes":
        return 1 if context.quiz_completed else 0
    if source == "ai_questions":
        return context.ai_questions
    if source == "streak_days":
        return min(progress.streak, quest.target) - quest.progress
    if source == "daily_goals":
        return 1 if context.daily_goal_reached else 0
    if source == "flashcards_generated":
        return context.flashcards_generated
    if source == "flashcards_reviewed":
        return context.flashcards_reviewed
    if source == "flashcards_known":
        return context.flashcards_known
    return 0


def quest_deltas(progress: UserProgress, context: EventContext, catalog: Catalog) -> list[tuple[str, int]]:
    """Progress each open quest gains from one event, in catalog order."""
    deltas: list[tuple[str, int]] = []
    for quest in progress.quests:
        definition = catalog.quest(quest.id)
        if quest.completed or definition is None:
            continue
        amount = _context_amount(definition.source, quest, progress, context)
        if amount > 0:
            deltas.append((quest.id, amount))
    return deltas


def _advance_quest(quest: Quest, delta: int, now: datetime) -> tuple[Quest, int]:
    if quest.completed or delta <= 0:
        return quest, 0
    new_progress = min(quest.progress + delta, quest.target)
    if new_progress < quest.target:
        return replace(quest, progress=new_progress), 0
    return replace(quest, progress=quest.target, completed=True, completed_at=now), quest.reward


def increment_quest_progress(
    progress: UserProgress,
    quest_id: str,
    delta: int,
    now: datetime,
    tuning: dict[str, int] | None = None,
) -> tuple[UserProgress, int]:
    if delta < 0:
        raise ValidationError("Quest progress delta must not be negative")
    quest = progress.find_quest(quest_id)
    if quest is None:
        raise ValidationError(f"Unknown quest: {quest_id}")

    updated, reward = _advance_quest(quest, delta, now)
    if updated == quest:
        return progress, 0

    quests = tuple(updated if q.id == quest_id else q for q in progress.quests)
    result = replace(progress, quests=quests)
    if reward:
        result = apply_points(result, reward, tuning=tuning)
        logger.info("quest completed user_id=%s quest=%s reward=%s", progress.user_id, quest_id, reward)
    return result, reward
