from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from quiz_quest.db_models import Achievement, Badge, Challenge, Quest, UserProgress

logger = logging.getLogger(__name__)

BADGE_RARITIES = ("common", "rare", "epic", "legendary")
CHALLENGE_DIFFICULTIES = ("easy", "medium", "hard")

RULE_TYPES = {
    "points_at_least",
    "streak_at_least",
    "sessions_at_least",
    "quizzes_at_least",
    "expert_quizzes_at_least",
    "session_minutes_at_least",
    "quiz_score_at_least",
    "quiz_under_seconds",
    "studied_before_hour",
    "studied_from_hour",
    "daily_goal_without_early_end",
    "ai_questions_today_at_least",
    "flashcards_generated_at_least",
    "flashcards_known_at_least",
}

QUEST_SOURCES = {
    "study_minutes",
    "quizzes",
    "ai_questions",
    "streak_days",
    "daily_goals",
    "flashcards_generated",
    "flashcards_reviewed",
    "flashcards_known",
}


@dataclass(frozen=True)
class BadgeDef:
    id: str
    name: str
    description: str
    icon: str
    rarity: str
    rule: dict[str, Any]


@dataclass(frozen=True)
class AchievementDef:
    id: str
    name: str
    description: str
    icon: str
    points: int
    rule: dict[str, Any]


@dataclass(frozen=True)
class QuestDef:
    id: str
    name: str
    description: str
    icon: str
    target: int
    reward: int
    category: str
    source: str


@dataclass(frozen=True)
class ChallengeDef:
    id: str
    name: str
    description: str
    icon: str
    reward: int
    difficulty: str
    rule: dict[str, Any]


@dataclass(frozen=True)
class PowerUpDef:
    id: str
    name: str
    description: str
    icon: str
    duration_minutes: int
    multiplier: float
    cost: int | None = None


@dataclass(frozen=True)
class Catalog:
    badges: tuple[BadgeDef, ...]
    achievements: tuple[AchievementDef, ...]
    quests: tuple[QuestDef, ...]
    power_ups: tuple[PowerUpDef, ...]
    challenges: tuple[ChallengeDef, ...] = ()

    def badge(self, badge_id: str) -> BadgeDef | None:
        return next((b for b in self.badges if b.id == badge_id), None)

    def achievement(self, achievement_id: str) -> AchievementDef | None:
        return next((a for a in self.achievements if a.id == achievement_id), None)

    def quest(self, quest_id: str) -> QuestDef | None:
        return next((q for q in self.quests if q.id == quest_id), None)

    def power_up(self, power_up_id: str) -> PowerUpDef | None:
        return next((p for p in self.power_ups if p.id == power_up_id), None)

    def challenge(self, challenge_id: str) -> ChallengeDef | None:
        return next((c for c in self.challenges if c.id == challenge_id), None)


DEFAULT_BADGES: tuple[BadgeDef, ...] = (
    BadgeDef("first-quiz", "First Quiz", "Complete your first quiz", "\U0001f393", "common", {"type": "quizzes_at_least", "value": 1}),
    BadgeDef("streak-7", "Week Streak", "Study for 7 days in a row", "\U0001f525", "rare", {"type": "streak_at_least", "value": 7}),
    BadgeDef("points-100", "Centurion", "Earn 100 points", "\U0001f4af", "common", {"type": "points_at_least", "value": 100}),
    BadgeDef("perfect-score", "Perfect Score", "Get 100% on a quiz", "\U0001f3c6", "rare", {"type": "quiz_score_at_least", "value": 100}),
    BadgeDef("early-bird", "Early Bird", "Study before 8 AM", "\U0001f426", "common", {"type": "studied_before_hour", "value": 8}),
    BadgeDef("night-owl", "Night Owl", "Study after 10 PM", "\U0001f989", "common", {"type": "studied_from_hour", "value": 22}),
    BadgeDef("speed-demon", "Speed Demon", "Finish a quiz in under 5 minutes", "⚡", "epic", {"type": "quiz_under_seconds", "value": 300}),
    BadgeDef("scholar", "Scholar", "Complete 10 study sessions", "\U0001f4da", "epic", {"type": "sessions_at_least", "value": 10}),
)

DEFAULT_ACHIEVEMENTS: tuple[AchievementDef, ...] = (
    AchievementDef("first-session", "First Session", "Complete your first study session", "\U0001f3af", 10, {"type": "sessions_at_least", "value": 1}),
    AchievementDef("marathon-study", "Marathon Study", "Study for 2 hours in one session", "\U0001f3c3", 50, {"type": "session_minutes_at_least", "value": 120}),
    AchievementDef("consistent-week", "Consistent Week", "Study every day for a week", "\U0001f4c5", 75, {"type": "streak_at_least", "value": 7}),
    AchievementDef("quiz-expert", "Quiz Expert", "Score 90% or higher on 5 quizzes", "\U0001f4dd", 100, {"type": "expert_quizzes_at_least", "value": 5}),
    AchievementDef("point-master", "Point Master", "Earn 1000 total points", "⭐", 200, {"type": "points_at_least", "value": 1000}),
)

DEFAULT_QUESTS: tuple[QuestDef, ...] = (
    QuestDef("study-60", "Hour Master", "Study for 60 minutes total", "⏱️", 60, 50, "study", "study_minutes"),
    QuestDef("quiz-5", "Quiz Master", "Complete 5 quizzes", "\U0001f4dd", 5, 75, "quiz", "quizzes"),
    QuestDef("ai-chat-10", "Chat Champion", "Ask 10 questions to AI tutor", "\U0001f4ac", 10, 40, "ai", "ai_questions"),
    QuestDef("streak-30", "Monthly Streak", "Maintain a 30-day study streak", "\U0001f4c5", 30, 150, "consistency", "streak_days"),
    QuestDef("daily-goal-7", "Goal Achiever", "Meet daily goal for 7 days", "\U0001f3af", 7, 100, "consistency", "daily_goals"),
)

DEFAULT_POWER_UPS: tuple[PowerUpDef, ...] = (
    PowerUpDef("double-points", "Double Points", "Earn 2x session points for 30 minutes", "✨", 30, 2.0),
    PowerUpDef("time-extension", "Time Extension", "Add 10 minutes to your study session", "⏰", 0, 1.0),
    PowerUpDef("hint-revealer", "Hint Revealer", "Reveal one correct answer per quiz", "\U0001f4a1", 30, 1.0),
    PowerUpDef("focus-mode", "Focus Mode", "Eliminate distractions for 1 hour", "\U0001f3af", 60, 1.0),
)

DEFAULT_CHALLENGES: tuple[ChallengeDef, ...] = (
    ChallengeDef("speed-quiz", "Speed Quiz", "Complete a quiz in under 3 minutes", "\U0001f3c3", 30, "medium", {"type": "quiz_under_seconds", "value": 180}),
    ChallengeDef("perfect-day", "Perfect Day", "Study for your daily goal without interruptions", "⭐", 45, "hard", {"type": "daily_goal_without_early_end", "value": 0}),
    ChallengeDef("ai-master", "AI Master", "Ask 5 questions in one study day", "\U0001f916", 35, "medium", {"type": "ai_questions_today_at_least", "value": 5}),
    ChallengeDef("early-riser", "Early Riser", "Start studying before 6 AM", "\U0001f305", 25, "easy", {"type": "studied_before_hour", "value": 6}),
)


def default_catalog() -> Catalog:
    return Catalog(
        badges=DEFAULT_BADGES,
        achievements=DEFAULT_ACHIEVEMENTS,
        quests=DEFAULT_QUESTS,
        power_ups=DEFAULT_POWER_UPS,
        challenges=DEFAULT_CHALLENGES,
    )


def _normalize_rule(raw: Any) -> dict[str, Any] | None:
    if not isinstance(raw, dict):
        return None
    rtype = str(raw.get("type", "")).strip().lower()
    if rtype not in RULE_TYPES:
        return None
    try:
        value = int(raw.get("value", 0))
    except (TypeError, ValueError):
        return None
    return {"type": rtype, "value": value}


def _text(item: dict[str, Any], key: str, default: str = "") -> str:
    return str(item.get(key, default)).strip()


def _parse_badges(items: list[Any]) -> tuple[BadgeDef, ...]:
    parsed: list[BadgeDef] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        rule = _normalize_rule(item.get("rule"))
        bid = _text(item, "id")
        if not bid or rule is None:
            logger.warning("skipping badge definition id=%r", bid)
            continue
        rarity = _text(item, "rarity", "common").lower()
        parsed.append(
            BadgeDef(
                id=bid,
                name=_text(item, "name", bid),
                description=_text(item, "description"),
                icon=_text(item, "icon"),
                rarity=rarity if rarity in BADGE_RARITIES else "common",
                rule=rule,
            )
        )
    return tuple(parsed)


def _parse_achievements(items: list[Any]) -> tuple[AchievementDef, ...]:
    parsed: list[AchievementDef] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        rule = _normalize_rule(item.get("rule"))
        aid = _text(item, "id")
        if not aid or rule is None:
            logger.warning("skipping achievement definition id=%r", aid)
            continue
        try:
            points = max(0, int(item.get("points", 0)))
        except (TypeError, ValueError):
            points = 0
        parsed.append(
            AchievementDef(
                id=aid,
                name=_text(item, "name", aid),
                description=_text(item, "description"),
                icon=_text(item, "icon"),
                points=points,
                rule=rule,
            )
        )
    return tuple(parsed)


def _parse_quests(items: list[Any]) -> tuple[QuestDef, ...]:
    parsed: list[QuestDef] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        qid = _text(item, "id")
        source = _text(item, "source").lower()
        try:
            target = int(item.get("target", 0))
            reward = max(0, int(item.get("reward", 0)))
        except (TypeError, ValueError):
            target, reward = 0, 0
        if not qid or source not in QUEST_SOURCES or target < 1:
            logger.warning("skipping quest definition id=%r", qid)
            continue
        parsed.append(
            QuestDef(
                id=qid,
                name=_text(item, "name", qid),
                description=_text(item, "description"),
                icon=_text(item, "icon"),
                target=target,
                reward=reward,
                category=_text(item, "category", "general"),
                source=source,
            )
        )
    return tuple(parsed)


def _parse_power_ups(items: list[Any]) -> tuple[PowerUpDef, ...]:
    parsed: list[PowerUpDef] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        pid = _text(item, "id")
        if not pid:
            continue
        try:
            duration = max(0, int(item.get("duration_minutes", 0)))
            multiplier = float(item.get("multiplier", 1.0))
            cost = max(0, int(item["cost"])) if item.get("cost") is not None else None
        except (TypeError, ValueError):
            logger.warning("skipping power-up definition id=%r", pid)
            continue
        parsed.append(
            PowerUpDef(
                id=pid,
                name=_text(item, "name", pid),
                description=_text(item, "description"),
                icon=_text(item, "icon"),
                duration_minutes=duration,
                multiplier=multiplier,
                cost=cost,
            )
        )
    return tuple(parsed)


def _parse_challenges(items: list[Any]) -> tuple[ChallengeDef, ...]:
    parsed: list[ChallengeDef] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        rule = _normalize_rule(item.get("rule"))
        cid = _text(item, "id")
        try:
            reward = max(0, int(item.get("reward", 0)))
        except (TypeError, ValueError):
            reward = 0
        if not cid or rule is None:
            logger.warning("skipping challenge definition id=%r", cid)
            continue
        difficulty = _text(item, "difficulty", "easy").lower()
        parsed.append(
            ChallengeDef(
                id=cid,
                name=_text(item, "name", cid),
                description=_text(item, "description"),
                icon=_text(item, "icon"),
                reward=reward,
                difficulty=difficulty if difficulty in CHALLENGE_DIFFICULTIES else "easy",
                rule=rule,
            )
        )
    return tuple(parsed)


def load_catalog(path: Path) -> Catalog:
    if not path.exists():
        return default_catalog()

    raw = yaml.safe_load(path.read_text()) or {}
    if not isinstance(raw, dict):
        return default_catalog()

    def _section(key: str) -> list[Any] | None:
        value = raw.get(key)
        return value if isinstance(value, list) else None

    badges = _section("badges")
    achievements = _section("achievements")
    quests = _section("quests")
    power_ups = _section("power_ups")
    challenges = _section("challenges")
    return Catalog(
        badges=_parse_badges(badges) if badges is not None else DEFAULT_BADGES,
        achievements=_parse_achievements(achievements) if achievements is not None else DEFAULT_ACHIEVEMENTS,
        quests=_parse_quests(quests) if quests is not None else DEFAULT_QUESTS,
        power_ups=_parse_power_ups(power_ups) if power_ups is not None else DEFAULT_POWER_UPS,
        challenges=_parse_challenges(challenges) if challenges is not None else DEFAULT_CHALLENGES,
    )


def _badge_state(d: BadgeDef) -> Badge:
    return Badge(id=d.id, name=d.name, description=d.description, icon=d.icon, rarity=d.rarity)


def _achievement_state(d: AchievementDef) -> Achievement:
    return Achievement(id=d.id, name=d.name, description=d.description, icon=d.icon, points=d.points)


def _quest_state(d: QuestDef) -> Quest:
    return Quest(
        id=d.id,
        name=d.name,
        description=d.description,
        icon=d.icon,
        target=d.target,
        reward=d.reward,
        category=d.category,
    )


def _challenge_state(d: ChallengeDef) -> Challenge:
    return Challenge(
        id=d.id,
        name=d.name,
        description=d.description,
        icon=d.icon,
        reward=d.reward,
        difficulty=d.difficulty,
    )


def fresh_progress(user_id: int, catalog: Catalog, daily_goal: int = 30) -> UserProgress:
    return UserProgress(
        user_id=user_id,
        daily_goal=daily_goal,
        badges=tuple(_badge_state(b) for b in catalog.badges),
        quests=tuple(_quest_state(q) for q in catalog.quests),
        achievements=tuple(_achievement_state(a) for a in catalog.achievements),
        challenges=tuple(_challenge_state(c) for c in catalog.challenges),
    )


def sync_catalog(progress: UserProgress, catalog: Catalog) -> UserProgress:
    """Append catalog entries the stored record has not seen yet.

    Existing per-user state is never touched, so earned badges and quest
    progress survive catalog edits.
    """
    badge_ids = {b.id for b in progress.badges}
    quest_ids = {q.id for q in progress.quests}
    achievement_ids = {a.id for a in progress.achievements}
    challenge_ids = {c.id for c in progress.challenges}

    new_badges = [_badge_state(b) for b in catalog.badges if b.id not in badge_ids]
    new_quests = [_quest_state(q) for q in catalog.quests if q.id not in quest_ids]
    new_achievements = [_achievement_state(a) for a in catalog.achievements if a.id not in achievement_ids]
    new_challenges = [_challenge_state(c) for c in catalog.challenges if c.id not in challenge_ids]
    if not (new_badges or new_quests or new_achievements or new_challenges):
        return progress
    return replace(
        progress,
        badges=progress.badges + tuple(new_badges),
        quests=progress.quests + tuple(new_quests),
        achievements=progress.achievements + tuple(new_achievements),
        challenges=progress.challenges + tuple(new_challenges),
    )
