"""Storage package providing persistence for discovered tokens and simulated holdings."""

from .sqlite_repository import SQLiteRepository

__all__ = ["SQLiteRepository"]
