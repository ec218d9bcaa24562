"""
Error taxonomy for the dialog framework.

  DialogEngineError
  ├── DialogConfigurationError   wiring mistakes, raised before any state changes
  └── DialogContextError         stack consistency failures, with a snapshot of
                                 the stack for diagnostics

Recognizer misses and validator rejections are not errors; prompts turn
them into re-prompts.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dialogs.dialog_context import DialogContext


class DialogEngineError(Exception):
    """Base exception for the dialog engine."""


class DialogConfigurationError(DialogEngineError):
    pass


class DialogContextError(DialogEngineError):
    """
    Raised when a dialog stack cannot be driven any further.

    `dialog_context` holds the ids of the active dialog and of the parent's
    active dialog plus the full stack at the time of failure.
    """

    def __init__(self, message: str, dc: "DialogContext" = None):
        super().__init__(message)
        self.dialog_context: dict[str, Any] = _snapshot(dc) if dc is not None else {}

    def __str__(self) -> str:
        base = super().__str__()
        if not self.dialog_context:
            return base
        return f"{base} (active_dialog={self.dialog_context.get('active_dialog')!r}, " \
               f"parent={self.dialog_context.get('parent')!r})"


def _snapshot(dc: "DialogContext") -> dict[str, Any]:
    active = dc.active_dialog
    parent = dc.parent
    parent_active = parent.active_dialog if parent is not None else None
    return {
        "active_dialog": active.id if active else None,
        "parent": parent_active.id if parent_active else None,
        "stack": [frame.model_dump(by_alias=True) for frame in dc.stack],
    }
