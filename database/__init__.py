"""
Storage layer — key/value persistence for dialog and sign-in state.

Backends:
  - In-memory (dict-based, for development/testing)
  - File (JSON documents on disk, for small deployments)
  - SQL (PostgreSQL / MySQL / SQLite via SQLAlchemy async)

Quick start:
  from database import create_storage
  storage = create_storage()
  await storage.write({"k": {"count": 1}})
"""
from database.store_base import ETagConflictError, Storage, StorageError, StoreItem
from database.store_memory import MemoryStorage
from database.store_file import FileStorage
from database.store_sql import SqlStorage
from database.store_factory import create_storage, get_storage, reset_storage

__all__ = [
    # Interface
    "Storage", "StoreItem", "StorageError", "ETagConflictError",
    # Backends
    "MemoryStorage", "FileStorage", "SqlStorage",
    # Factory
    "create_storage", "get_storage", "reset_storage",
]
