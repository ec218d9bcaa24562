"""
FileStorage — JSON file-backed storage with persistence across restarts.

Data layout:
  {data_dir}/
    <url-quoted key>.json      one document per key

Features:
  - Survives process restarts (unlike MemoryStorage)
  - No external dependencies (no database server)
  - Writes go to a temp file and are renamed into place
  - Single-process only (no concurrent write safety)

Best for: small deployments, demos, edge devices, air-gapped environments.
"""
from __future__ import annotations

import asyncio
import json
import os
import structlog
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from database.store_base import ETagConflictError, Storage, StorageError, StoreItem

logger = structlog.get_logger()


class FileStorage(Storage):

    def __init__(self, data_dir: str = "./data"):
        self._dir = Path(data_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()
        self._etag = self._initial_etag()
        logger.info("file_storage_initialized", data_dir=str(self._dir))

    def _path(self, key: str) -> Path:
        return self._dir / f"{quote(key, safe='')}.json"

    def _initial_etag(self) -> int:
        highest = 0
        for path in self._dir.glob("*.json"):
            try:
                with open(path) as f:
                    highest = max(highest, int(json.load(f).get("eTag", 0)))
            except (OSError, ValueError, TypeError):
                continue
        return highest + 1

    def _load(self, key: str) -> Optional[StoreItem]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path) as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read storage key {key!r}: {e}") from e

    async def read(self, keys: list[str]) -> dict[str, StoreItem]:
        self._check_keys(keys)
        data: dict[str, StoreItem] = {}
        for key in keys:
            item = self._load(key)
            if item is not None:
                data[key] = item
        return data

    async def write(self, changes: dict[str, StoreItem]) -> None:
        self._check_changes(changes)
        async with self._lock:
            for key, new_item in changes.items():
                if not self._etag_matches(self._load(key), new_item):
                    raise ETagConflictError(key)
                clone = dict(new_item)
                clone["eTag"] = str(self._etag)
                self._etag += 1
                path = self._path(key)
                tmp = path.with_suffix(".tmp")
                with open(tmp, "w") as f:
                    json.dump(clone, f, default=str, ensure_ascii=False)
                os.replace(tmp, path)
        logger.debug("file_storage_written", keys=list(changes))

    async def delete(self, keys: list[str]) -> None:
        async with self._lock:
            for key in keys:
                path = self._path(key)
                if path.exists():
                    path.unlink()
