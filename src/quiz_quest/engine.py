from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from quiz_quest.catalog import Catalog
from quiz_quest.db_models import UserProgress
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
    validate_event,
)
from quiz_quest.gamification import _effective_tuning, quiz_score
from quiz_quest.rules import (
    activate_power_up,
    apply_coin,
    apply_flashcard_review,
    apply_flashcard_session,
    apply_flashcards_generated,
    apply_quiz_result,
    apply_session_completion,
    purchase_power_up,
    record_ai_question,
)
from quiz_quest.unlocks import (
    ChallengeResult,
    EventContext,
    UnlockResult,
    evaluate_challenges,
    evaluate_unlocks,
    increment_quest_progress,
    quest_deltas,
)


@dataclass(frozen=True)
class EngineResult:
    progress: UserProgress
    accepted: bool
    points_before: int
    level_before: int
    unlocks: UnlockResult | None = None
    challenges: ChallengeResult | None = None
    quest_ids: tuple[str, ...] = ()
    quest_reward: int = 0
    reason: str | None = None

    @property
    def points_delta(self) -> int:
        return self.progress.points - self.points_before

    @property
    def leveled_up(self) -> bool:
        return self.progress.level > self.level_before


def _session_context(before: UserProgress, after: UserProgress, minutes: int, completed: bool, now: datetime, base: EventContext) -> EventContext:
    return replace(
        base,
        studied_at=base.studied_at or now,
        session_minutes=minutes,
        session_completed=completed,
        daily_goal_reached=after.daily_goals_met > before.daily_goals_met,
    )


def _feed_quests(
    progress: UserProgress,
    context: EventContext,
    now: datetime,
    catalog: Catalog,
    tuning: dict[str, int] | None,
) -> tuple[UserProgress, tuple[str, ...], int]:
    completed: list[str] = []
    total = 0
    for quest_id, delta in quest_deltas(progress, context, catalog):
        progress, reward = increment_quest_progress(progress, quest_id, delta, now, tuning=tuning)
        quest = progress.find_quest(quest_id)
        if quest is not None and quest.completed:
            completed.append(quest_id)
            total += reward
    return progress, tuple(completed), total


def process_event(
    progress: UserProgress,
    event: Event,
    now: datetime,
    catalog: Catalog,
    tuning: dict[str, int] | None = None,
    context: EventContext | None = None,
) -> EngineResult:
    """Apply one event, then unlock badges, achievements and challenges and feed quests.

    Quests are fed exactly once per event, after the unlock pass.
    """
    cfg = _effective_tuning(tuning)
    validate_event(event, max_coins_per_quiz=int(cfg["max_coins_per_quiz"]))
    today = now.date()
    base = context or EventContext()
    base = replace(base, today=base.today or today)

    def _rejected(reason: str) -> EngineResult:
        return EngineResult(
            progress=progress,
            accepted=False,
            points_before=progress.points,
            level_before=progress.level,
            reason=reason,
        )

    if isinstance(event, SessionCompleted):
        updated = apply_session_completion(progress, event.minutes, False, event.double_points, today, tuning=tuning)
        ctx = _session_context(progress, updated, event.minutes, True, now, base)
    elif isinstance(event, SessionEndedEarly):
        updated = apply_session_completion(progress, event.minutes, True, False, today, tuning=tuning)
        ctx = _session_context(progress, updated, event.minutes, False, now, base)
    elif isinstance(event, QuizAnswered):
        updated = apply_quiz_result(progress, event.correct, event.wrong, event.coins_used, tuning=tuning)
        score = base.quiz_score if base.quiz_score is not None else quiz_score(event.correct, event.wrong)
        ctx = replace(base, quiz_completed=True, quiz_score=score)
    elif isinstance(event, CoinUsed):
        updated = apply_coin(progress, event.coins_used_in_quiz, tuning=tuning)
        ctx = base
    elif isinstance(event, PowerUpPurchased):
        definition = catalog.power_up(event.power_up_id)
        if definition is None:
            raise ValidationError(f"Unknown power-up: {event.power_up_id}")
        if any(p.power_up_id == definition.id for p in progress.active_power_ups(now)):
            return _rejected("already_active")
        updated, ok = purchase_power_up(progress, cost=event.cost, tuning=tuning)
        if not ok:
            return _rejected("insufficient_funds")
        updated = activate_power_up(updated, definition, now)
        ctx = base
    elif isinstance(event, AiQuestionAsked):
        updated = record_ai_question(progress, today)
        ctx = replace(base, ai_questions=1)
    elif isinstance(event, FlashcardsGenerated):
        updated = apply_flashcards_generated(progress, event.count, tuning=tuning)
        ctx = replace(base, flashcards_generated=event.count)
    elif isinstance(event, FlashcardReviewed):
        updated = apply_flashcard_review(progress, event.action, tuning=tuning)
        ctx = replace(
            base,
            flashcards_reviewed=0 if event.action == "saved" else 1,
            flashcards_known=1 if event.action == "known" else 0,
        )
    elif isinstance(event, FlashcardSessionFinished):
        updated = apply_flashcard_session(progress, event.reviewed, event.known, tuning=tuning)
        ctx = base
    elif isinstance(event, QuestIncremented):
        before = progress.find_quest(event.quest_id)
        updated, reward = increment_quest_progress(progress, event.quest_id, event.delta, now, tuning=tuning)
        after = updated.find_quest(event.quest_id)
        newly_completed = before is not None and not before.completed and after is not None and after.completed
        return EngineResult(
            progress=updated,
            accepted=True,
            points_before=progress.points,
            level_before=progress.level,
            quest_ids=(event.quest_id,) if newly_completed else (),
            quest_reward=reward,
        )
    else:
        raise ValidationError(f"Unsupported event: {type(event).__name__}")

    unlocks = evaluate_unlocks(updated, ctx, now, catalog, tuning=tuning)
    challenges = evaluate_challenges(unlocks.progress, ctx, now, catalog, tuning=tuning)
    fed, quest_ids, quest_reward = _feed_quests(challenges.progress, ctx, now, catalog, tuning)
    return EngineResult(
        progress=fed,
        accepted=True,
        points_before=progress.points,
        level_before=progress.level,
        unlocks=unlocks,
        challenges=challenges,
        quest_ids=quest_ids,
        quest_reward=quest_reward,
    )
