"""Store implementations."""

from .base import Store
from .sqlite_store import SQLiteStore

__all__ = ["Store", "SQLiteStore"]
