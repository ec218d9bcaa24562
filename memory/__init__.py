"""Memory scopes and path-based state access for dialog contexts."""
from memory.scopes import BUILTIN_SCOPES, MemoryScope, ScopePath, TurnPath, get_scope
from memory.state_manager import DialogStateManager

__all__ = [
    "BUILTIN_SCOPES", "MemoryScope", "ScopePath", "TurnPath", "get_scope",
    "DialogStateManager",
]
