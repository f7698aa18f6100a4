# shellcue/storage/__init__.py
"""
Persistence of learned data.
"""
from shellcue.storage.base import StorageBackend
from shellcue.storage.memory import InMemoryBackend
from shellcue.storage.sqlite import SQLiteBackend
from shellcue.storage.manager import PersistenceManager

__all__ = ["StorageBackend", "InMemoryBackend", "SQLiteBackend", "PersistenceManager"]
