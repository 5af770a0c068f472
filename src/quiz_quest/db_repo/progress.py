from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import replace
from datetime import datetime
from typing import Protocol

from quiz_quest.db_converters import _row_to_progress, progress_to_document
from quiz_quest.db_models import UserProgress

logger = logging.getLogger(__name__)


class ProgressNotFound(LookupError):
    pass


class ProgressConflict(RuntimeError):
    pass


class ProgressStore(Protocol):
    def load_progress(self, user_id: int) -> UserProgress: ...
    def save_progress(self, progress: UserProgress, now: datetime | None = None) -> UserProgress: ...


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...


def _write_progress(conn: sqlite3.Connection, progress: UserProgress, stamp: datetime) -> UserProgress:
    """Overwrite the stored record if nobody saved since ``progress`` was loaded.

    ``progress.version`` is the version that was read; version 0 means the
    record is new. Returns the progress carrying the bumped version.
    """
    payload = json.dumps(progress_to_document(progress))
    new_version = progress.version + 1
    if progress.version == 0:
        cur = conn.execute(
            """
            INSERT OR IGNORE INTO user_progress(user_id, progress_json, version, updated_at)
            VALUES (?, ?, ?, ?)
            """,
            (progress.user_id, payload, new_version, stamp.isoformat()),
        )
    else:
        cur = conn.execute(
            """
            UPDATE user_progress
            SET progress_json = ?, version = ?, updated_at = ?
            WHERE user_id = ? AND version = ?
            """,
            (payload, new_version, stamp.isoformat(), progress.user_id, progress.version),
        )
    if cur.rowcount != 1:
        logger.warning("progress conflict user_id=%s version=%s", progress.user_id, progress.version)
        raise ProgressConflict(f"Progress for user {progress.user_id} was modified concurrently")
    return replace(progress, version=new_version, updated_at=stamp)


class ProgressMixin:
    def load_progress(self: DbProtocol, user_id: int) -> UserProgress:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT user_id, progress_json, version, updated_at FROM user_progress WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            raise ProgressNotFound(f"No progress for user {user_id}")
        return _row_to_progress(row)

    def save_progress(self: DbProtocol, progress: UserProgress, now: datetime | None = None) -> UserProgress:
        with self._connect() as conn:
            return _write_progress(conn, progress, now or datetime.now())
