"""Persistence for the mastery engine: store protocol, in-memory and SQL stores."""

from .database import Database
from .sql_store import SqlStore
from .store import InMemoryStore, Store

__all__ = ["Database", "InMemoryStore", "SqlStore", "Store"]
