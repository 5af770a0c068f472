from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import date, datetime
from typing import Any, Protocol

from quiz_quest.db_constants import SESSION_LIST_LIMIT
from quiz_quest.db_converters import _row_to_session
from quiz_quest.db_models import StudySession, UserProgress
from quiz_quest.db_repo.progress import _write_progress


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def list_sessions_between(self, user_id: int, start: datetime, end: datetime) -> list[StudySession]: ...


def _insert_session(
    conn: sqlite3.Connection,
    *,
    user_id: int,
    task_name: str,
    duration: int,
    points: int,
    completed_at: datetime,
    score: int | None,
    ended_early: bool,
    quiz_answers: tuple[dict[str, Any], ...],
) -> StudySession:
    session_id = uuid.uuid4().hex
    conn.execute(
        """
        INSERT INTO study_sessions(
            id, user_id, task_name, duration, score, points, ended_early, quiz_answers_json, completed_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            session_id,
            user_id,
            task_name,
            duration,
            score,
            points,
            1 if ended_early else 0,
            json.dumps(list(quiz_answers)) if quiz_answers else None,
            completed_at.isoformat(),
        ),
    )
    row = conn.execute("SELECT * FROM study_sessions WHERE id = ?", (session_id,)).fetchone()
    return _row_to_session(row)


class SessionMixin:
    def add_study_session(
        self: DbProtocol,
        *,
        user_id: int,
        task_name: str,
        duration: int,
        points: int,
        completed_at: datetime,
        score: int | None = None,
        ended_early: bool = False,
        quiz_answers: tuple[dict[str, Any], ...] = (),
    ) -> StudySession:
        with self._connect() as conn:
            return _insert_session(
                conn,
                user_id=user_id,
                task_name=task_name,
                duration=duration,
                points=points,
                completed_at=completed_at,
                score=score,
                ended_early=ended_early,
                quiz_answers=quiz_answers,
            )

    def save_progress_with_session(
        self: DbProtocol,
        progress: UserProgress,
        *,
        task_name: str,
        duration: int,
        points: int,
        completed_at: datetime,
        score: int | None = None,
        ended_early: bool = False,
        quiz_answers: tuple[dict[str, Any], ...] = (),
    ) -> tuple[UserProgress, StudySession]:
        """Append the session and save ``progress`` in one transaction.

        A version conflict rolls the session insert back with it.
        """
        with self._connect() as conn:
            session = _insert_session(
                conn,
                user_id=progress.user_id,
                task_name=task_name,
                duration=duration,
                points=points,
                completed_at=completed_at,
                score=score,
                ended_early=ended_early,
                quiz_answers=quiz_answers,
            )
            saved = _write_progress(conn, progress, completed_at)
        return saved, session

    def list_study_sessions(self: DbProtocol, user_id: int, limit: int = 10) -> list[StudySession]:
        """Newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM study_sessions
                WHERE user_id = ?
                ORDER BY completed_at DESC, rowid DESC
                LIMIT ?
                """,
                (user_id, min(max(1, limit), SESSION_LIST_LIMIT)),
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def list_sessions_between(self: DbProtocol, user_id: int, start: datetime, end: datetime) -> list[StudySession]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM study_sessions
                WHERE user_id = ? AND completed_at >= ? AND completed_at < ?
                ORDER BY completed_at ASC, rowid ASC
                """,
                (user_id, start.isoformat(), end.isoformat()),
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def sum_minutes_between(self: DbProtocol, user_id: int, start: datetime, end: datetime) -> int:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT COALESCE(SUM(duration), 0) AS total
                FROM study_sessions
                WHERE user_id = ? AND completed_at >= ? AND completed_at < ?
                """,
                (user_id, start.isoformat(), end.isoformat()),
            ).fetchone()
        return int(row["total"])

    def daily_minutes_between(self: DbProtocol, user_id: int, start: datetime, end: datetime) -> dict[date, int]:
        totals: dict[date, int] = {}
        for session in self.list_sessions_between(user_id, start, end):
            day = session.completed_at.date()
            totals[day] = totals.get(day, 0) + session.duration
        return totals

    def session_totals(self: DbProtocol, user_id: int) -> dict[str, Any]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS session_count,
                    COALESCE(SUM(duration), 0) AS total_minutes,
                    COALESCE(SUM(points), 0) AS total_points,
                    SUM(CASE WHEN ended_early = 1 THEN 1 ELSE 0 END) AS ended_early_count,
                    AVG(score) AS average_score,
                    MAX(duration) AS longest_session
                FROM study_sessions
                WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
        return {
            "session_count": int(row["session_count"] or 0),
            "total_minutes": int(row["total_minutes"] or 0),
            "total_points": int(row["total_points"] or 0),
            "ended_early_count": int(row["ended_early_count"] or 0),
            "average_score": round(float(row["average_score"]), 1) if row["average_score"] is not None else None,
            "longest_session": int(row["longest_session"] or 0),
        }
