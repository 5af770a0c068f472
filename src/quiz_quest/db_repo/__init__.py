from .base import BaseDatabase
from .progress import ProgressConflict, ProgressMixin, ProgressNotFound, ProgressStore
from .sessions import SessionMixin
from .system import SystemMixin

__all__ = [
    "BaseDatabase",
    "ProgressMixin",
    "ProgressStore",
    "ProgressNotFound",
    "ProgressConflict",
    "SessionMixin",
    "SystemMixin",
]
