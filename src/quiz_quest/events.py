from __future__ import annotations

from dataclasses import dataclass

FLASHCARD_ACTIONS = ("saved", "known", "review")


class ValidationError(ValueError):
    pass


@dataclass(frozen=True)
class SessionCompleted:
    minutes: int
    double_points: bool = False


@dataclass(frozen=True)
class SessionEndedEarly:
    minutes: int


@dataclass(frozen=True)
class QuizAnswered:
    correct: int
    wrong: int
    coins_used: int = 0


@dataclass(frozen=True)
class CoinUsed:
    coins_used_in_quiz: int


@dataclass(frozen=True)
class PowerUpPurchased:
    power_up_id: str
    cost: int = 100


@dataclass(frozen=True)
class QuestIncremented:
    quest_id: str
    delta: int


@dataclass(frozen=True)
class AiQuestionAsked:
    pass


@dataclass(frozen=True)
class FlashcardsGenerated:
    count: int


@dataclass(frozen=True)
class FlashcardReviewed:
    action: str


@dataclass(frozen=True)
class FlashcardSessionFinished:
    reviewed: int
    known: int


Event = (
    SessionCompleted
    | SessionEndedEarly
    | QuizAnswered
    | CoinUsed
    | PowerUpPurchased
    | QuestIncremented
    | AiQuestionAsked
    | FlashcardsGenerated
    | FlashcardReviewed
    | FlashcardSessionFinished
)


def _non_negative(name: str, value: int) -> None:
    if value < 0:
        raise ValidationError(f"{name} must not be negative")


def validate_event(event: Event, max_coins_per_quiz: int = 3) -> None:
    if isinstance(event, (SessionCompleted, SessionEndedEarly)):
        _non_negative("minutes", event.minutes)
        return
    if isinstance(event, QuizAnswered):
        _non_negative("correct", event.correct)
        _non_negative("wrong", event.wrong)
        _non_negative("coins_used", event.coins_used)
        if event.correct + event.wrong == 0:
            raise ValidationError("A quiz result needs at least one answered question")
        if event.coins_used > max_coins_per_quiz:
            raise ValidationError(f"At most {max_coins_per_quiz} coins can be used per quiz")
        return
    if isinstance(event, CoinUsed):
        _non_negative("coins_used_in_quiz", event.coins_used_in_quiz)
        if event.coins_used_in_quiz >= max_coins_per_quiz:
            raise ValidationError(f"At most {max_coins_per_quiz} coins can be used per quiz")
        return
    if isinstance(event, PowerUpPurchased):
        if not event.power_up_id:
            raise ValidationError("power_up_id is required")
        _non_negative("cost", event.cost)
        return
    if isinstance(event, QuestIncremented):
        if not event.quest_id:
            raise ValidationError("quest_id is required")
        _non_negative("delta", event.delta)
        return
    if isinstance(event, AiQuestionAsked):
        return
    if isinstance(event, FlashcardsGenerated):
        if event.count < 1:
            raise ValidationError("count must be at least 1")
        return
    if isinstance(event, FlashcardReviewed):
        if event.action not in FLASHCARD_ACTIONS:
            raise ValidationError(f"action must be one of {', '.join(FLASHCARD_ACTIONS)}")
        return
    if isinstance(event, FlashcardSessionFinished):
        _non_negative("reviewed", event.reviewed)
        _non_negative("known", event.known)
        if event.known > event.reviewed:
            raise ValidationError("known cannot exceed reviewed")
        return
    raise ValidationError(f"Unsupported event: {type(event).__name__}")
