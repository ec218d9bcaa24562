"""
Dialog — the unit of resumable conversational behavior.

A dialog is stateless per instance: everything it needs between turns is
kept in the `state` dict of its stack frame (DialogInstance). The stack is
driven by a DialogContext, which calls:

  begin_dialog     once, when the frame is pushed
  continue_dialog  on each later turn while the frame is on top
  resume_dialog    when a child this dialog started has ended
  reprompt_dialog  when the caller asks for the last prompt again
  end_dialog       cleanup, just before the frame is popped

Events travel through on_dialog_event: pre-bubble hook, then the parent
context's active dialog (when the event bubbles), then post-bubble hook.
Any stage returning True stops propagation.
"""
from __future__ import annotations

import abc
import structlog
from typing import TYPE_CHECKING, Any, Optional

from context.turn import TurnContext
from models.schemas import (
    DialogEvent, DialogInstance, DialogReason, DialogTurnResult, DialogTurnStatus,
)

if TYPE_CHECKING:
    from dialogs.dialog_context import DialogContext

logger = structlog.get_logger()


class Dialog(abc.ABC):

    END_OF_TURN = DialogTurnResult(status=DialogTurnStatus.WAITING)

    def __init__(self, dialog_id: str = None):
        self._id = dialog_id

    @property
    def id(self) -> str:
        if self._id is None:
            self._id = self.on_compute_id()
        return self._id

    @id.setter
    def id(self, value: str) -> None:
        self._id = value

    def get_version(self) -> str:
        """Change-detection token; a new value means persisted frames may be stale."""
        return self.id

    def get_dependencies(self) -> list["Dialog"]:
        """Dialogs that must be registered alongside this one."""
        return []

    # ── Lifecycle ─────────────────────────────────────────────

    @abc.abstractmethod
    async def begin_dialog(self, dc: "DialogContext", options: Any = None) -> DialogTurnResult:
        ...

    async def continue_dialog(self, dc: "DialogContext") -> DialogTurnResult:
        return await dc.end_dialog()

    async def resume_dialog(self, dc: "DialogContext", reason: DialogReason,
                            result: Any = None) -> DialogTurnResult:
        return await dc.end_dialog(result)

    async def reprompt_dialog(self, context: TurnContext, instance: DialogInstance) -> None:
        pass

    async def end_dialog(self, context: TurnContext, instance: DialogInstance,
                         reason: DialogReason) -> None:
        pass

    # ── Events ────────────────────────────────────────────────

    async def on_dialog_event(self, dc: "DialogContext", event: DialogEvent) -> bool:
        handled = await self.on_pre_bubble_event(dc, event)

        if not handled and event.bubble:
            parent = dc.parent
            if parent is not None:
                handled = await parent.emit_event(event.name, event.value, True, False)

        if not handled:
            handled = await self.on_post_bubble_event(dc, event)

        return handled

    async def on_pre_bubble_event(self, dc: "DialogContext", event: DialogEvent) -> bool:
        return False

    async def on_post_bubble_event(self, dc: "DialogContext", event: DialogEvent) -> bool:
        return False

    def on_compute_id(self) -> str:
        raise NotImplementedError(f"{type(self).__name__} has no id and does not compute one")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self._id!r}>"
