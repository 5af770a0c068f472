from __future__ import annotations

import json
import sqlite3
from datetime import date, datetime
from typing import Any

from quiz_quest.db_models import (
    Achievement,
    Badge,
    Challenge,
    PowerUpActivation,
    Quest,
    StudySession,
    UserProgress,
)


def _dt(value: Any) -> datetime | None:
    return datetime.fromisoformat(str(value)) if value else None


def _d(value: Any) -> date | None:
    return date.fromisoformat(str(value)) if value else None


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def progress_to_document(progress: UserProgress) -> dict[str, Any]:
    return {
        "points": progress.points,
        "level": progress.level,
        "streak": progress.streak,
        "longest_streak": progress.longest_streak,
        "last_study_date": _iso(progress.last_study_date),
        "total_study_time": progress.total_study_time,
        "daily_goal": progress.daily_goal,
        "daily_progress": progress.daily_progress,
        "daily_progress_date": _iso(progress.daily_progress_date),
        "last_early_end_date": _iso(progress.last_early_end_date),
        "sessions_completed": progress.sessions_completed,
        "quizzes_completed": progress.quizzes_completed,
        "expert_quizzes": progress.expert_quizzes,
        "quiz_accuracy": progress.quiz_accuracy,
        "daily_goals_met": progress.daily_goals_met,
        "ai_questions_today": progress.ai_questions_today,
        "ai_questions_date": _iso(progress.ai_questions_date),
        "flashcards_generated": progress.flashcards_generated,
        "flashcards_reviewed": progress.flashcards_reviewed,
        "flashcards_known": progress.flashcards_known,
        "badges": [
            {
                "id": b.id,
                "name": b.name,
                "description": b.description,
                "icon": b.icon,
                "rarity": b.rarity,
                "earned": b.earned,
                "earned_at": _iso(b.earned_at),
            }
            for b in progress.badges
        ],
        "quests": [
            {
                "id": q.id,
                "name": q.name,
                "description": q.description,
                "icon": q.icon,
                "target": q.target,
                "reward": q.reward,
                "category": q.category,
                "progress": q.progress,
                "completed": q.completed,
                "completed_at": _iso(q.completed_at),
            }
            for q in progress.quests
        ],
        "achievements": [
            {
                "id": a.id,
                "name": a.name,
                "description": a.description,
                "icon": a.icon,
                "points": a.points,
                "earned": a.earned,
                "earned_at": _iso(a.earned_at),
            }
            for a in progress.achievements
        ],
        "challenges": [
            {
                "id": c.id,
                "name": c.name,
                "description": c.description,
                "icon": c.icon,
                "reward": c.reward,
                "difficulty": c.difficulty,
                "completed_at": _iso(c.completed_at),
                "times_completed": c.times_completed,
            }
            for c in progress.challenges
        ],
        "power_ups": [
            {
                "power_up_id": p.power_up_id,
                "multiplier": p.multiplier,
                "activated_at": _iso(p.activated_at),
                "expires_at": _iso(p.expires_at),
            }
            for p in progress.power_ups
        ],
    }


def progress_from_document(user_id: int, doc: dict[str, Any], version: int, updated_at: datetime | None) -> UserProgress:
    return UserProgress(
        user_id=user_id,
        points=int(doc.get("points", 0)),
        level=int(doc.get("level", 1)),
        streak=int(doc.get("streak", 0)),
        longest_streak=int(doc.get("longest_streak", 0)),
        last_study_date=_d(doc.get("last_study_date")),
        total_study_time=int(doc.get("total_study_time", 0)),
        daily_goal=int(doc.get("daily_goal", 30)),
        daily_progress=int(doc.get("daily_progress", 0)),
        daily_progress_date=_d(doc.get("daily_progress_date")),
        last_early_end_date=_d(doc.get("last_early_end_date")),
        sessions_completed=int(doc.get("sessions_completed", 0)),
        quizzes_completed=int(doc.get("quizzes_completed", 0)),
        expert_quizzes=int(doc.get("expert_quizzes", 0)),
        quiz_accuracy=float(doc.get("quiz_accuracy", 0.0)),
        daily_goals_met=int(doc.get("daily_goals_met", 0)),
        ai_questions_today=int(doc.get("ai_questions_today", 0)),
        ai_questions_date=_d(doc.get("ai_questions_date")),
        flashcards_generated=int(doc.get("flashcards_generated", 0)),
        flashcards_reviewed=int(doc.get("flashcards_reviewed", 0)),
        flashcards_known=int(doc.get("flashcards_known", 0)),
        badges=tuple(
            Badge(
                id=str(b["id"]),
                name=str(b.get("name", "")),
                description=str(b.get("description", "")),
                icon=str(b.get("icon", "")),
                rarity=str(b.get("rarity", "common")),
                earned=bool(b.get("earned", False)),
                earned_at=_dt(b.get("earned_at")),
            )
            for b in doc.get("badges", [])
        ),
        quests=tuple(
            Quest(
                id=str(q["id"]),
                name=str(q.get("name", "")),
                description=str(q.get("description", "")),
                icon=str(q.get("icon", "")),
                target=int(q.get("target", 1)),
                reward=int(q.get("reward", 0)),
                category=str(q.get("category", "")),
                progress=int(q.get("progress", 0)),
                completed=bool(q.get("completed", False)),
                completed_at=_dt(q.get("completed_at")),
            )
            for q in doc.get("quests", [])
        ),
        achievements=tuple(
            Achievement(
                id=str(a["id"]),
                name=str(a.get("name", "")),
                description=str(a.get("description", "")),
                icon=str(a.get("icon", "")),
                points=int(a.get("points", 0)),
                earned=bool(a.get("earned", False)),
                earned_at=_dt(a.get("earned_at")),
            )
            for a in doc.get("achievements", [])
        ),
        challenges=tuple(
            Challenge(
                id=str(c["id"]),
                name=str(c.get("name", "")),
                description=str(c.get("description", "")),
                icon=str(c.get("icon", "")),
                reward=int(c.get("reward", 0)),
                difficulty=str(c.get("difficulty", "easy")),
                completed_at=_dt(c.get("completed_at")),
                times_completed=int(c.get("times_completed", 0)),
            )
            for c in doc.get("challenges", [])
        ),
        power_ups=tuple(
            PowerUpActivation(
                power_up_id=str(p["power_up_id"]),
                multiplier=float(p.get("multiplier", 1.0)),
                activated_at=datetime.fromisoformat(str(p["activated_at"])),
                expires_at=datetime.fromisoformat(str(p["expires_at"])),
            )
            for p in doc.get("power_ups", [])
        ),
        version=version,
        updated_at=updated_at,
    )


def _row_to_progress(row: sqlite3.Row) -> UserProgress:
    return progress_from_document(
        user_id=int(row["user_id"]),
        doc=json.loads(str(row["progress_json"])),
        version=int(row["version"]),
        updated_at=_dt(row["updated_at"]),
    )


def _row_to_session(row: sqlite3.Row) -> StudySession:
    answers = json.loads(str(row["quiz_answers_json"])) if row["quiz_answers_json"] else []
    return StudySession(
        id=str(row["id"]),
        user_id=int(row["user_id"]),
        task_name=str(row["task_name"]),
        duration=int(row["duration"]),
        score=int(row["score"]) if row["score"] is not None else None,
        points=int(row["points"]),
        completed_at=datetime.fromisoformat(row["completed_at"]),
        ended_early=bool(row["ended_early"]),
        quiz_answers=tuple(a for a in answers if isinstance(a, dict)),
    )
