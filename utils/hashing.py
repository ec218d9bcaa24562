"""
Stable hashes for change detection.

Used by DialogSet versioning and by agent state to skip writes when
nothing changed during a turn.
"""
from __future__ import annotations

import hashlib
import json
from typing import Any

from pydantic import BaseModel


def to_jsonable(value: Any) -> Any:
    """Convert models nested anywhere in dicts/lists to plain JSON data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def hash_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def compute_change_hash(item: Any) -> str:
    """Hash a state record, ignoring its storage eTag."""
    data = to_jsonable(item)
    if isinstance(data, dict):
        data = {k: v for k, v in data.items() if k != "eTag"}
    return hash_text(json.dumps(data, sort_keys=True, default=str))
