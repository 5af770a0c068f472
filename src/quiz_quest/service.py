from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any

from quiz_quest.catalog import Catalog, default_catalog, fresh_progress, sync_catalog
from quiz_quest.db import Database, ProgressNotFound
from quiz_quest.db_repo import ProgressStore
from quiz_quest.db_models import Challenge, PowerUpActivation, Quest, StudySession, UserProgress
from quiz_quest.engine import EngineResult, process_event
from quiz_quest.events import (
    AiQuestionAsked,
    CoinUsed,
    Event,
    FlashcardReviewed,
    FlashcardSessionFinished,
    FlashcardsGenerated,
    PowerUpPurchased,
    QuestIncremented,
    QuizAnswered,
    SessionCompleted,
    SessionEndedEarly,
    ValidationError,
)
from quiz_quest.gamification import level_progress, quiz_score, session_points
from quiz_quest.rules import ai_questions_on, daily_progress_for, double_points_active
from quiz_quest.rules import set_daily_goal as apply_daily_goal
from quiz_quest.time_utils import day_range_for, days_between, trailing_days
from quiz_quest.unlocks import EventContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventOutcome:
    progress: UserProgress
    points_delta: int
    level_before: int
    badge_ids: list[str]
    achievement_ids: list[str]
    quest_ids: list[str]
    reward_points: int
    challenge_ids: list[str] = field(default_factory=list)

    @property
    def leveled_up(self) -> bool:
        return self.progress.level > self.level_before


@dataclass(frozen=True)
class SessionOutcome:
    outcome: EventOutcome
    session: StudySession
    double_points: bool


@dataclass(frozen=True)
class QuizOutcome:
    outcome: EventOutcome
    score: int


@dataclass(frozen=True)
class PurchaseOutcome:
    progress: UserProgress
    success: bool
    reason: str | None
    power_up_id: str
    cost: int
    activation: PowerUpActivation | None = None


@dataclass(frozen=True)
class QuestOutcome:
    progress: UserProgress
    quest: Quest
    reward: int


@dataclass(frozen=True)
class ChallengeStatus:
    challenge: Challenge
    completed_today: bool


@dataclass(frozen=True)
class StatusView:
    progress: UserProgress
    level: int
    current_level_points: int
    next_level_points: int
    progress_ratio: float
    remaining_to_next: int
    today_minutes: int
    daily_progress: int
    daily_goal_reached: bool
    badges_earned: int
    achievements_earned: int
    quests_completed: int
    active_power_ups: list[PowerUpActivation]
    ai_questions_today: int = 0
    challenges_completed_today: int = 0


@dataclass(frozen=True)
class DayTotal:
    day: date
    minutes: int


@dataclass(frozen=True)
class OverallStats:
    total_sessions: int
    total_minutes: int
    ended_early_sessions: int
    average_score: float | None
    longest_session: int
    points: int
    level: int
    streak: int
    longest_streak: int
    quizzes_completed: int
    quiz_accuracy: float
    badges_earned: int
    achievements_earned: int
    quests_completed: int
    challenges_completed: int
    flashcards_generated: int
    flashcards_reviewed: int
    flashcards_known: int


def ensure_progress(db: ProgressStore, user_id: int, catalog: Catalog, tuning: dict[str, int] | None = None) -> UserProgress:
    try:
        progress = db.load_progress(user_id)
    except ProgressNotFound:
        goal = int((tuning or {}).get("default_daily_goal", 30))
        logger.info("initialising progress user_id=%s", user_id)
        return fresh_progress(user_id, catalog, daily_goal=goal)
    return sync_catalog(progress, catalog)


def _outcome(result: EngineResult) -> EventOutcome:
    unlocks = result.unlocks
    challenges = result.challenges
    reward = result.quest_reward
    if unlocks:
        reward += unlocks.reward_points
    if challenges:
        reward += challenges.reward_points
    return EventOutcome(
        progress=result.progress,
        points_delta=result.points_delta,
        level_before=result.level_before,
        badge_ids=list(unlocks.badge_ids) if unlocks else [],
        achievement_ids=list(unlocks.achievement_ids) if unlocks else [],
        quest_ids=list(result.quest_ids),
        reward_points=reward,
        challenge_ids=list(challenges.challenge_ids) if challenges else [],
    )


def _log_level_up(saved: UserProgress, level_before: int) -> None:
    if saved.level > level_before:
        logger.info(
            "level up user_id=%s level=%s->%s points=%s",
            saved.user_id,
            level_before,
            saved.level,
            saved.points,
        )


def _commit(db: Database, result: EngineResult, now: datetime) -> EngineResult:
    saved = db.save_progress(result.progress, now=now)
    _log_level_up(saved, result.level_before)
    return replace(result, progress=saved)


def _apply(
    db: Database,
    progress: UserProgress,
    event: Event,
    now: datetime,
    catalog: Catalog,
    tuning: dict[str, int],
    context: EventContext | None = None,
) -> EngineResult:
    result = process_event(progress, event, now, catalog, tuning=tuning, context=context)
    if not result.accepted:
        return result
    return _commit(db, result, now)


def record_study_session(
    db: Database,
    user_id: int,
    task_name: str,
    minutes: int,
    now: datetime,
    score: int | None = None,
    quiz_answers: tuple[dict[str, Any], ...] = (),
    ended_early: bool = False,
    catalog: Catalog | None = None,
) -> SessionOutcome:
    """Score a finished session and store it together with the new progress.

    The session row and the progress record are written in one transaction,
    so a :class:`ProgressConflict` leaves neither behind.
    """
    name = task_name.strip()
    if not name:
        raise ValidationError("task_name is required")
    if score is not None and not 0 <= score <= 100:
        raise ValidationError("score must be between 0 and 100")

    cat = catalog or default_catalog()
    tuning = db.get_rules_tuning()
    progress = ensure_progress(db, user_id, cat, tuning)
    doubled = not ended_early and double_points_active(progress, now)
    event: Event = SessionEndedEarly(minutes=minutes) if ended_early else SessionCompleted(minutes=minutes, double_points=doubled)

    result = process_event(progress, event, now, cat, tuning=tuning, context=EventContext(studied_at=now))
    saved, session = db.save_progress_with_session(
        result.progress,
        task_name=name,
        duration=minutes,
        points=session_points(minutes, ended_early=ended_early, double_points=doubled, tuning=tuning),
        completed_at=now,
        score=score,
        ended_early=ended_early,
        quiz_answers=quiz_answers,
    )
    _log_level_up(saved, result.level_before)
    result = replace(result, progress=saved)
    logger.info(
        "study session user_id=%s minutes=%s ended_early=%s delta=%s",
        user_id,
        minutes,
        ended_early,
        result.points_delta,
    )
    return SessionOutcome(outcome=_outcome(result), session=session, double_points=doubled)


def record_quiz_result(
    db: Database,
    user_id: int,
    correct: int,
    wrong: int,
    coins_used: int,
    now: datetime,
    seconds: int | None = None,
    catalog: Catalog | None = None,
) -> QuizOutcome:
    if seconds is not None and seconds < 0:
        raise ValidationError("seconds must not be negative")
    cat = catalog or default_catalog()
    tuning = db.get_rules_tuning()
    progress = ensure_progress(db, user_id, cat, tuning)
    event = QuizAnswered(correct=correct, wrong=wrong, coins_used=coins_used)
    result = _apply(db, progress, event, now, cat, tuning, EventContext(quiz_seconds=seconds))
    score = quiz_score(correct, wrong)
    logger.info("quiz result user_id=%s score=%s delta=%s", user_id, score, result.points_delta)
    return QuizOutcome(outcome=_outcome(result), score=score)


def use_coin(
    db: Database,
    user_id: int,
    coins_used_in_quiz: int,
    now: datetime,
    catalog: Catalog | None = None,
) -> EventOutcome:
    cat = catalog or default_catalog()
    tuning = db.get_rules_tuning()
    progress = ensure_progress(db, user_id, cat, tuning)
    result = _apply(db, progress, CoinUsed(coins_used_in_quiz=coins_used_in_quiz), now, cat, tuning)
    return _outcome(result)


def buy_power_up(
    db: Database,
    user_id: int,
    power_up_id: str,
    now: datetime,
    catalog: Catalog | None = None,
) -> PurchaseOutcome:
    cat = catalog or default_catalog()
    tuning = db.get_rules_tuning()
    progress = ensure_progress(db, user_id, cat, tuning)
    definition = cat.power_up(power_up_id)

    def _failed(reason: str, cost: int) -> PurchaseOutcome:
        logger.info("power-up rejected user_id=%s power_up=%s reason=%s", user_id, power_up_id, reason)
        return PurchaseOutcome(progress=progress, success=False, reason=reason, power_up_id=power_up_id, cost=cost)

    if not db.is_feature_enabled("power_ups"):
        return _failed("disabled", 0)
    if definition is None:
        return _failed("unknown_power_up", 0)

    cost = definition.cost if definition.cost is not None else int(tuning["power_up_cost"])
    result = _apply(db, progress, PowerUpPurchased(power_up_id=power_up_id, cost=cost), now, cat, tuning)
    if not result.accepted:
        return _failed(result.reason or "rejected", cost)

    activation = next(
        (p for p in result.progress.active_power_ups(now) if p.power_up_id == power_up_id),
        None,
    )
    logger.info("power-up bought user_id=%s power_up=%s cost=%s", user_id, power_up_id, cost)
    return PurchaseOutcome(
        progress=result.progress,
        success=True,
        reason=None,
        power_up_id=power_up_id,
        cost=cost,
        activation=activation,
    )


def advance_quest(
    db: Database,
    user_id: int,
    quest_id: str,
    delta: int,
    now: datetime,
    catalog: Catalog | None = None,
) -> QuestOutcome:
    cat = catalog or default_catalog()
    tuning = db.get_rules_tuning()
    progress = ensure_progress(db, user_id, cat, tuning)
    result = process_event(progress, QuestIncremented(quest_id=quest_id, delta=delta), now, cat, tuning=tuning)
    if result.progress != progress or progress.version == 0:
        result = _commit(db, result, now)
    quest = result.progress.find_quest(quest_id)
    if quest is None:
        raise ValidationError(f"Unknown quest: {quest_id}")
    return QuestOutcome(progress=result.progress, quest=quest, reward=result.quest_reward)


def track_ai_question(db: Database, user_id: int, now: datetime, catalog: Catalog | None = None) -> EventOutcome:
    """Count one AI tutor question towards today's tally and the AI quests."""
    cat = catalog or default_catalog()
    if not db.is_feature_enabled("ai_questions"):
        raise ValidationError("AI question tracking is disabled")
    tuning = db.get_rules_tuning()
    progress = ensure_progress(db, user_id, cat, tuning)
    result = _apply(db, progress, AiQuestionAsked(), now, cat, tuning)
    logger.info("ai question user_id=%s today=%s", user_id, result.progress.ai_questions_today)
    return _outcome(result)


def _flashcard_event(db: Database, user_id: int, event: Event, now: datetime, catalog: Catalog | None) -> EventOutcome:
    cat = catalog or default_catalog()
    if not db.is_feature_enabled("flashcards"):
        raise ValidationError("Flashcards are disabled")
    tuning = db.get_rules_tuning()
    progress = ensure_progress(db, user_id, cat, tuning)
    result = _apply(db, progress, event, now, cat, tuning)
    logger.info("flashcards user_id=%s event=%s delta=%s", user_id, type(event).__name__, result.points_delta)
    return _outcome(result)


def record_flashcards_generated(db: Database, user_id: int, count: int, now: datetime, catalog: Catalog | None = None) -> EventOutcome:
    return _flashcard_event(db, user_id, FlashcardsGenerated(count=count), now, catalog)


def record_flashcard_review(db: Database, user_id: int, action: str, now: datetime, catalog: Catalog | None = None) -> EventOutcome:
    """Score one card being saved, marked as known or reviewed again."""
    return _flashcard_event(db, user_id, FlashcardReviewed(action=action), now, catalog)


def finish_flashcard_session(
    db: Database,
    user_id: int,
    reviewed: int,
    known: int,
    now: datetime,
    catalog: Catalog | None = None,
) -> EventOutcome:
    return _flashcard_event(db, user_id, FlashcardSessionFinished(reviewed=reviewed, known=known), now, catalog)


def todays_challenges(db: Database, user_id: int, now: datetime, catalog: Catalog | None = None) -> list[ChallengeStatus]:
    cat = catalog or default_catalog()
    progress = ensure_progress(db, user_id, cat, db.get_rules_tuning())
    today = now.date()
    return [ChallengeStatus(challenge=c, completed_today=c.completed_on(today)) for c in progress.challenges]


def set_daily_goal(db: Database, user_id: int, minutes: int, now: datetime, catalog: Catalog | None = None) -> UserProgress:
    cat = catalog or default_catalog()
    tuning = db.get_rules_tuning()
    progress = ensure_progress(db, user_id, cat, tuning)
    return db.save_progress(apply_daily_goal(progress, minutes), now=now)


def compute_status(db: Database, user_id: int, now: datetime, catalog: Catalog | None = None) -> StatusView:
    cat = catalog or default_catalog()
    tuning = db.get_rules_tuning()
    progress = ensure_progress(db, user_id, cat, tuning)
    lp = level_progress(progress.points, tuning=tuning)
    day = day_range_for(now)
    today_minutes = db.sum_minutes_between(user_id, day.start, day.end)
    # Sessions are the source of truth; the stored counter only lags behind on a new day.
    daily = min(progress.daily_goal, max(today_minutes, daily_progress_for(progress, now.date())))

    return StatusView(
        progress=progress,
        level=progress.level,
        current_level_points=lp.current_level_points,
        next_level_points=lp.next_level_points,
        progress_ratio=lp.progress_ratio,
        remaining_to_next=lp.remaining_to_next,
        today_minutes=today_minutes,
        daily_progress=daily,
        daily_goal_reached=daily >= progress.daily_goal,
        badges_earned=sum(1 for b in progress.badges if b.earned),
        achievements_earned=sum(1 for a in progress.achievements if a.earned),
        quests_completed=sum(1 for q in progress.quests if q.completed),
        active_power_ups=progress.active_power_ups(now),
        ai_questions_today=ai_questions_on(progress, now.date()),
        challenges_completed_today=sum(1 for c in progress.challenges if c.completed_on(now.date())),
    )


def study_time_trend(db: Database, user_id: int, now: datetime, days: int = 30) -> list[DayTotal]:
    window = trailing_days(now, days)
    totals = db.daily_minutes_between(user_id, window.start, window.end)
    return [DayTotal(day=d, minutes=totals.get(d, 0)) for d in days_between(window.start.date(), window.end.date())]


def recent_sessions(db: Database, user_id: int, limit: int = 10) -> list[StudySession]:
    return db.list_study_sessions(user_id, limit=limit)


def overall_stats(db: Database, user_id: int, catalog: Catalog | None = None) -> OverallStats:
    cat = catalog or default_catalog()
    progress = ensure_progress(db, user_id, cat, db.get_rules_tuning())
    totals = db.session_totals(user_id)
    return OverallStats(
        total_sessions=totals["session_count"],
        total_minutes=totals["total_minutes"],
        ended_early_sessions=totals["ended_early_count"],
        average_score=totals["average_score"],
        longest_session=totals["longest_session"],
        points=progress.points,
        level=progress.level,
        streak=progress.streak,
        longest_streak=progress.longest_streak,
        quizzes_completed=progress.quizzes_completed,
        quiz_accuracy=round(progress.quiz_accuracy, 1),
        badges_earned=sum(1 for b in progress.badges if b.earned),
        achievements_earned=sum(1 for a in progress.achievements if a.earned),
        quests_completed=sum(1 for q in progress.quests if q.completed),
        challenges_completed=sum(c.times_completed for c in progress.challenges),
        flashcards_generated=progress.flashcards_generated,
        flashcards_reviewed=progress.flashcards_reviewed,
        flashcards_known=progress.flashcards_known,
    )
