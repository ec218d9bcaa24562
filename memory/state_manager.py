"""
DialogStateManager — path-based access across memory scopes.

    dc.state.get_value("this.attemptCount", 0)
    dc.state.set_value("turn.lastresult", True)
    dc.state.set_value("turn", {})          # replaces the whole scope

The first path segment names the scope (case-insensitive); the rest is a
dot path inside the scope's record.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from dialogs.errors import DialogContextError
from memory.scopes import get_scope
from utils.paths import delete_nested_value, get_nested_value, set_nested_value

if TYPE_CHECKING:
    from dialogs.dialog_context import DialogContext


def _split(path: str) -> tuple[str, str]:
    if not path or not path.strip():
        raise ValueError("A memory path is required")
    scope, _, rest = path.strip().partition(".")
    return scope, rest


class DialogStateManager:

    def __init__(self, dc: "DialogContext"):
        self._dc = dc

    def get_value(self, path: str, default: Any = None) -> Any:
        scope_name, rest = _split(path)
        memory = get_scope(scope_name).get_memory(self._dc)
        value = get_nested_value(memory, rest) if rest else memory
        return default if value is None else value

    def set_value(self, path: str, value: Any) -> None:
        scope_name, rest = _split(path)
        scope = get_scope(scope_name)
        if not rest:
            scope.set_memory(self._dc, value)
            return
        memory = scope.get_memory(self._dc)
        if not isinstance(memory, dict):
            raise DialogContextError(f"Memory scope '{scope_name}' has no record to write '{rest}' into.", self._dc)
        set_nested_value(memory, rest, value)

    def delete_value(self, path: str) -> bool:
        scope_name, rest = _split(path)
        memory = get_scope(scope_name).get_memory(self._dc)
        if not rest or not isinstance(memory, dict):
            return False
        return delete_nested_value(memory, rest)

    def __getitem__(self, path: str) -> Any:
        return self.get_value(path)

    def __setitem__(self, path: str, value: Any) -> None:
        self.set_value(path, value)
