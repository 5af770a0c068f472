from __future__ import annotations

from quiz_quest.db_repo import (
    BaseDatabase,
    ProgressConflict,
    ProgressMixin,
    ProgressNotFound,
    SessionMixin,
    SystemMixin,
)


class Database(BaseDatabase, ProgressMixin, SessionMixin, SystemMixin):
    pass


__all__ = ["Database", "ProgressConflict", "ProgressNotFound"]
