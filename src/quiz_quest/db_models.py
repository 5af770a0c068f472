from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    description: str
    icon: str
    rarity: str
    earned: bool = False
    earned_at: datetime | None = None


@dataclass(frozen=True)
class Quest:
    id: str
    name: str
    description: str
    icon: str
    target: int
    reward: int
    category: str
    progress: int = 0
    completed: bool = False
    completed_at: datetime | None = None


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    icon: str
    points: int
    earned: bool = False
    earned_at: datetime | None = None


@dataclass(frozen=True)
class Challenge:
    id: str
    name: str
    description: str
    icon: str
    reward: int
    difficulty: str
    completed_at: datetime | None = None
    times_completed: int = 0

    def completed_on(self, day: date) -> bool:
        return self.completed_at is not None and self.completed_at.date() == day


@dataclass(frozen=True)
class PowerUpActivation:
    power_up_id: str
    multiplier: float
    activated_at: datetime
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return self.activated_at <= now < self.expires_at


@dataclass(frozen=True)
class UserProgress:
    user_id: int
    points: int = 0
    level: int = 1
    streak: int = 0
    longest_streak: int = 0
    last_study_date: date | None = None
    total_study_time: int = 0
    daily_goal: int = 30
    daily_progress: int = 0
    daily_progress_date: date | None = None
    last_early_end_date: date | None = None
    sessions_completed: int = 0
    quizzes_completed: int = 0
    expert_quizzes: int = 0
    quiz_accuracy: float = 0.0
    daily_goals_met: int = 0
    ai_questions_today: int = 0
    ai_questions_date: date | None = None
    flashcards_generated: int = 0
    flashcards_reviewed: int = 0
    flashcards_known: int = 0
    badges: tuple[Badge, ...] = ()
    quests: tuple[Quest, ...] = ()
    achievements: tuple[Achievement, ...] = ()
    challenges: tuple[Challenge, ...] = ()
    power_ups: tuple[PowerUpActivation, ...] = ()
    version: int = 0
    updated_at: datetime | None = None

    def find_quest(self, quest_id: str) -> Quest | None:
        for quest in self.quests:
            if quest.id == quest_id:
                return quest
        return None

    def find_challenge(self, challenge_id: str) -> Challenge | None:
        for challenge in self.challenges:
            if challenge.id == challenge_id:
                return challenge
        return None

    def active_power_ups(self, now: datetime) -> list[PowerUpActivation]:
        return [p for p in self.power_ups if p.is_active(now)]


@dataclass(frozen=True)
class StudySession:
    id: str
    user_id: int
    task_name: str
    duration: int
    score: int | None
    points: int
    completed_at: datetime
    ended_early: bool = False
    quiz_answers: tuple[dict[str, Any], ...] = field(default_factory=tuple)
