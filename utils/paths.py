"""
Dot-notation access into nested dicts, e.g. 'profile.address.city'.
Lookups on missing segments return None; assignments create them.
"""
from __future__ import annotations

from typing import Any


def get_nested_value(data: Any, field: str) -> Any:
    """Get a value from nested dict using dot notation. e.g. 'order.status'"""
    current = data
    if not field:
        return current
    for part in field.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
    return current


def set_nested_value(data: dict, field: str, value: Any) -> None:
    """Set a value in a nested dict, creating intermediate dicts as needed."""
    parts = field.split(".")
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def delete_nested_value(data: dict, field: str) -> bool:
    parts = field.split(".")
    parent = get_nested_value(data, ".".join(parts[:-1])) if len(parts) > 1 else data
    if isinstance(parent, dict) and parts[-1] in parent:
        del parent[parts[-1]]
        return True
    return False
