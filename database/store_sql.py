"""
SqlStorage — Portable key/value storage for PostgreSQL, MySQL, SQLite.

Each key is one row in `storage_items`; the record body lives in a JSON
column and the eTag in its own column so conflict checks need no parsing.
"""
from __future__ import annotations

import json
import uuid
import structlog
from typing import Optional

from sqlalchemy import delete, select

from database.models import Base, StorageItemRow
from database.session import create_engine_for, create_session_factory, session_scope
from database.store_base import ETagConflictError, Storage, StoreItem

logger = structlog.get_logger()


class SqlStorage(Storage):
    """
    Persistent storage backed by any SQLAlchemy-supported database.
    Call `initialize()` once before use to create the table.
    """

    def __init__(self, url: str, echo: bool = False):
        self._engine = create_engine_for(url, echo=echo)
        self._factory = create_session_factory(self._engine)

    async def initialize(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("sql_storage_initialized",
                    dialect=self._engine.dialect.name,
                    tables=list(Base.metadata.tables.keys()))

    async def close(self) -> None:
        await self._engine.dispose()
        logger.info("sql_storage_closed")

    @staticmethod
    def _row_to_item(row: StorageItemRow) -> StoreItem:
        document = row.document
        # SQLite drivers may hand back the JSON column as text
        if isinstance(document, str):
            document = json.loads(document)
        item = dict(document or {})
        item["eTag"] = row.e_tag
        return item

    async def read(self, keys: list[str]) -> dict[str, StoreItem]:
        self._check_keys(keys)
        async with session_scope(self._factory) as db:
            result = await db.execute(select(StorageItemRow).where(StorageItemRow.key.in_(keys)))
            return {row.key: self._row_to_item(row) for row in result.scalars()}

    async def write(self, changes: dict[str, StoreItem]) -> None:
        self._check_changes(changes)
        async with session_scope(self._factory) as db:
            for key, new_item in changes.items():
                row: Optional[StorageItemRow] = await db.get(StorageItemRow, key)
                old_item = self._row_to_item(row) if row else None
                if not self._etag_matches(old_item, new_item):
                    raise ETagConflictError(key)
                document = json.loads(json.dumps(
                    {k: v for k, v in new_item.items() if k != "eTag"}, default=str))
                e_tag = uuid.uuid4().hex
                if row:
                    row.document = document
                    row.e_tag = e_tag
                else:
                    db.add(StorageItemRow(key=key, document=document, e_tag=e_tag))
        logger.debug("sql_storage_written", keys=list(changes))

    async def delete(self, keys: list[str]) -> None:
        if not keys:
            return
        async with session_scope(self._factory) as db:
            await db.execute(delete(StorageItemRow).where(StorageItemRow.key.in_(keys)))
