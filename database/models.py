"""
SQLAlchemy ORM models — Cross-database compatible.

Supports: PostgreSQL, MySQL 8+, SQLite.

  - JSON type instead of PostgreSQL-specific JSONB; on PG the dialect maps
    JSON to jsonb, on MySQL it uses native JSON, on SQLite it is TEXT.
  - Storage keys are the primary key; keys are bounded to 512 characters.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, JSON, String
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all ORM models."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────────────────────
#  Storage items
# ──────────────────────────────────────────────────────────────

class StorageItemRow(Base):
    __tablename__ = "storage_items"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    document: Mapped[Any] = mapped_column(JSON, nullable=False, default=dict)
    e_tag: Mapped[str] = mapped_column(String(64), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
