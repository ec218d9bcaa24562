"""
DialogContainer — a dialog that runs its own private stack of dialogs.

The container's frame state holds the sub-stack; `create_child_context`
attaches that sub-stack to the current turn's context tree with the outer
context as parent.
"""
from __future__ import annotations

import abc
import structlog
from typing import TYPE_CHECKING, Optional

from dialogs.dialog import Dialog
from dialogs.dialog_set import DialogSet
from dialogs.errors import DialogContextError
from models.schemas import DialogEvent, DialogEvents

if TYPE_CHECKING:
    from dialogs.dialog_context import DialogContext

logger = structlog.get_logger()


class DialogContainer(Dialog):

    def __init__(self, dialog_id: str = None):
        super().__init__(dialog_id)
        self.dialogs = DialogSet()

    @abc.abstractmethod
    def create_child_context(self, dc: "DialogContext") -> Optional["DialogContext"]:
        ...

    def find_dialog(self, dialog_id: str) -> Optional[Dialog]:
        return self.dialogs.find(dialog_id)

    def get_version(self) -> str:
        return f"{self.id}:{self.dialogs.get_version()}"

    async def on_dialog_event(self, dc: "DialogContext", event: DialogEvent) -> bool:
        handled = await super().on_dialog_event(dc, event)
        if not handled and event.name == DialogEvents.VERSION_CHANGED:
            logger.warning("dialog_version_change_unhandled",
                           dialog_id=self.id,
                           active_dialog=dc.active_dialog.id if dc.active_dialog else None)
        return handled

    async def check_for_version_change(self, dc: "DialogContext") -> None:
        """
        Compare the version recorded on this container's frame with the
        current one. A change is announced from the deepest active dialog;
        if nobody handles it the stack is considered unusable.
        """
        instance = dc.active_dialog
        current = instance.version
        instance.version = self.get_version()
        if current != instance.version:
            handled = await dc.emit_event(DialogEvents.VERSION_CHANGED, self.id, True, True)
            if not handled:
                raise DialogContextError("Version change detected.", dc)
