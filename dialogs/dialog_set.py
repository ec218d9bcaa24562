"""
DialogSet — registry of dialogs within one addressable namespace.

Ids are made unique at registration time: a second, different dialog
registered as "confirm" becomes "confirm2", then "confirm3", and so on.
The set version is a hash over every member's version and changes only
when some member's version does.
"""
from __future__ import annotations

import structlog
from typing import TYPE_CHECKING, Optional

from context.turn import TurnContext
from dialogs.dialog import Dialog
from dialogs.errors import DialogConfigurationError
from models.schemas import DialogState
from utils.hashing import hash_text

if TYPE_CHECKING:
    from dialogs.dialog_context import DialogContext
    from state.agent_state import StatePropertyAccessor

logger = structlog.get_logger()


class DialogSet:

    def __init__(self, dialog_state: "StatePropertyAccessor" = None):
        self._dialog_state = dialog_state
        self._dialogs: dict[str, Dialog] = {}
        self._version_source: Optional[str] = None
        self._version: Optional[str] = None

    # ── Registration ──────────────────────────────────────────

    def add(self, dialog: Dialog) -> "DialogSet":
        """Register a dialog and, recursively, everything it depends on."""
        self._add(dialog, set())
        return self

    def _add(self, dialog: Dialog, visited: set[int]) -> None:
        if not isinstance(dialog, Dialog):
            raise DialogConfigurationError("DialogSet.add(): Invalid dialog being added.")
        if id(dialog) in visited:
            return
        visited.add(id(dialog))

        self._version = None
        existing = self._dialogs.get(dialog.id)
        if existing is dialog:
            return
        if existing is not None:
            suffix = 2
            while f"{dialog.id}{suffix}" in self._dialogs:
                suffix += 1
            renamed = f"{dialog.id}{suffix}"
            logger.debug("dialog_id_suffixed", original=dialog.id, assigned=renamed)
            dialog.id = renamed

        self._dialogs[dialog.id] = dialog

        for dependency in dialog.get_dependencies():
            self._add(dependency, visited)

    # ── Lookup ────────────────────────────────────────────────

    def find(self, dialog_id: str) -> Optional[Dialog]:
        return self._dialogs.get(dialog_id)

    def get_dialogs(self) -> list[Dialog]:
        return list(self._dialogs.values())

    def __contains__(self, dialog_id: str) -> bool:
        return dialog_id in self._dialogs

    def __len__(self) -> int:
        return len(self._dialogs)

    # ── Versioning ────────────────────────────────────────────

    def get_version(self) -> str:
        versions = "".join(
            f"|{v}" for v in (d.get_version() for d in self._dialogs.values()) if v
        )
        if self._version is None or versions != self._version_source:
            self._version_source = versions
            self._version = hash_text(versions)
        return self._version

    # ── Context ───────────────────────────────────────────────

    async def create_context(self, context: TurnContext) -> "DialogContext":
        """Load the bound dialog stack and return a context over it."""
        from dialogs.dialog_context import DialogContext

        if self._dialog_state is None:
            raise DialogConfigurationError(
                "DialogSet.create_context(): the dialog set was not bound to a "
                "state property accessor when it was created."
            )
        state = await self._dialog_state.get(context, DialogState)
        if not isinstance(state, DialogState):
            state = DialogState.model_validate(state)
            await self._dialog_state.set(context, state)
        return DialogContext.create(self, context, state)
