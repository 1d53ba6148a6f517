"""Credential store interface and reference implementations."""

from .base import LoginStore, SearchOutcome, StorageError
from .memory import InMemoryLoginStore
from .sqlite import SQLiteLoginStore

__all__ = [
    "InMemoryLoginStore",
    "LoginStore",
    "SQLiteLoginStore",
    "SearchOutcome",
    "StorageError",
]
