"""Persistence: SQLite-backed agent profiles and conversation history."""
from switchboard.storage.database import Database
from switchboard.storage.history import HistoryStore
from switchboard.storage.profiles import ProfileStore

__all__ = ["Database", "HistoryStore", "ProfileStore"]
