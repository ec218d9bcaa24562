"""
MemoryStorage — Dict-backed storage for development and testing.

Features:
  - Zero dependencies (no database, no file system)
  - Values are stored as JSON text, so callers never share references
  - Monotonic eTag counter for optimistic writes
  - All data lost on process restart

Best for: local development, unit tests, quick prototyping.
"""
from __future__ import annotations

import json
import structlog
from typing import Optional

from database.store_base import ETagConflictError, Storage, StoreItem

logger = structlog.get_logger()


class MemoryStorage(Storage):

    def __init__(self, memory: Optional[dict[str, str]] = None):
        self._memory: dict[str, str] = memory if memory is not None else {}   # key → JSON text
        self._etag = 1

    async def read(self, keys: list[str]) -> dict[str, StoreItem]:
        self._check_keys(keys)
        data: dict[str, StoreItem] = {}
        for key in keys:
            raw = self._memory.get(key)
            if raw is not None:
                data[key] = json.loads(raw)
        return data

    async def write(self, changes: dict[str, StoreItem]) -> None:
        self._check_changes(changes)
        for key, new_item in changes.items():
            old_raw = self._memory.get(key)
            old_item = json.loads(old_raw) if old_raw is not None else None
            if not self._etag_matches(old_item, new_item):
                raise ETagConflictError(key)
            self._save(key, new_item)
        logger.debug("memory_storage_written", keys=list(changes))

    async def delete(self, keys: list[str]) -> None:
        for key in keys:
            self._memory.pop(key, None)

    def _save(self, key: str, item: StoreItem) -> None:
        clone = dict(item)
        clone["eTag"] = str(self._etag)
        self._etag += 1
        self._memory[key] = json.dumps(clone, default=str)

    def __len__(self) -> int:
        return len(self._memory)
