"""SQLite persistence for chainnotes records."""

from .repository import RecordStore

__all__ = ["RecordStore"]
