"""
Abstract Storage — key/value interface for all storage backends.

Implementations:
  - MemoryStorage  (dict-based, single-process, no persistence)
  - FileStorage    (one JSON document per key, single-process, durable)
  - SqlStorage     (PostgreSQL / MySQL / SQLite via SQLAlchemy)

Records are plain JSON-compatible dicts. A record may carry an "eTag";
writes that supply an eTag other than "*" must match the stored one.
No locking is provided across keys.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

StoreItem = dict[str, Any]


class StorageError(Exception):
    """Base exception for storage operations."""


class ETagConflictError(StorageError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f'Storage: error writing "{key}" due to eTag conflict.')


class Storage(ABC):
    """Interface that all storage backends must implement."""

    @abstractmethod
    async def read(self, keys: list[str]) -> dict[str, StoreItem]:
        """Return the records found for `keys`; missing keys are omitted."""
        ...

    @abstractmethod
    async def write(self, changes: dict[str, StoreItem]) -> None:
        ...

    @abstractmethod
    async def delete(self, keys: list[str]) -> None:
        ...

    # ── Shared checks ─────────────────────────────────────────

    @staticmethod
    def _check_keys(keys: list[str]) -> None:
        if not keys:
            raise StorageError("Keys are required when reading.")

    @staticmethod
    def _check_changes(changes: dict[str, StoreItem]) -> None:
        if not changes:
            raise StorageError("Changes are required when writing.")

    @staticmethod
    def _etag_matches(old_item: Optional[StoreItem], new_item: StoreItem) -> bool:
        new_etag = new_item.get("eTag")
        if old_item is None or not new_etag or new_etag == "*":
            return True
        return old_item.get("eTag") == new_etag
