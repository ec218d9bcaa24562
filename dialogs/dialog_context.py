"""
DialogContext — a per-turn cursor over one dialog stack.

Stacks nest: a container dialog keeps its own sub-stack inside its frame
state. All levels touched during a turn live in one DialogContextTree, a
flat list of (dialog set, stack, parent index) records. A DialogContext is
only a view (tree, index) into it, so parent and child are looked up by
index and contexts never point at each other.

Stack order: index 0 of `stack` is the active frame.
"""
from __future__ import annotations

import structlog
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Union

from context.turn import TurnContext
from dialogs.dialog import Dialog
from dialogs.errors import DialogConfigurationError, DialogContextError
from models.schemas import (
    Activity, Choice, DialogEvent, DialogEvents, DialogInstance, DialogReason,
    DialogState, DialogTurnResult, DialogTurnStatus, PromptOptions,
)

if TYPE_CHECKING:
    from dialogs.dialog_set import DialogSet
    from memory.state_manager import DialogStateManager

logger = structlog.get_logger()

LAST_RESULT = "lastresult"


@dataclass
class _Level:
    dialogs: "DialogSet"
    state: DialogState
    parent: Optional[int]


class DialogContextTree:
    """Every dialog stack level in use for one turn."""

    def __init__(self, context: TurnContext):
        self.context = context
        self.levels: list[_Level] = []

    def add_level(self, dialogs: "DialogSet", state: DialogState, parent: Optional[int] = None) -> int:
        if parent is not None:
            for index, level in enumerate(self.levels):
                if level.parent == parent and level.state is state and level.dialogs is dialogs:
                    return index
        self.levels.append(_Level(dialogs=dialogs, state=state, parent=parent))
        return len(self.levels) - 1


class DialogContext:

    def __init__(self, tree: DialogContextTree, index: int):
        self._tree = tree
        self._index = index

    @classmethod
    def create(
        cls,
        dialogs: "DialogSet",
        context: TurnContext,
        state: DialogState,
        parent: "DialogContext" = None,
    ) -> "DialogContext":
        if parent is None:
            tree = DialogContextTree(context)
            return cls(tree, tree.add_level(dialogs, state))
        return cls(parent.tree, parent.tree.add_level(dialogs, state, parent.level))

    # ── Views ─────────────────────────────────────────────────

    @property
    def tree(self) -> DialogContextTree:
        return self._tree

    @property
    def level(self) -> int:
        """Position of this stack level in the turn's context tree."""
        return self._index

    @property
    def _level(self) -> _Level:
        return self._tree.levels[self._index]

    @property
    def context(self) -> TurnContext:
        return self._tree.context

    @property
    def dialogs(self) -> "DialogSet":
        return self._level.dialogs

    @property
    def dialog_state(self) -> DialogState:
        return self._level.state

    @property
    def stack(self) -> list[DialogInstance]:
        return self._level.state.dialog_stack

    @property
    def active_dialog(self) -> Optional[DialogInstance]:
        stack = self.stack
        return stack[0] if stack else None

    @property
    def parent(self) -> Optional["DialogContext"]:
        parent_index = self._level.parent
        return DialogContext(self._tree, parent_index) if parent_index is not None else None

    @property
    def child(self) -> Optional["DialogContext"]:
        from dialogs.dialog_container import DialogContainer

        instance = self.active_dialog
        if instance is None:
            return None
        dialog = self.find_dialog(instance.id)
        if isinstance(dialog, DialogContainer):
            return dialog.create_child_context(self)
        return None

    @property
    def state(self) -> "DialogStateManager":
        from memory.state_manager import DialogStateManager
        return DialogStateManager(self)

    def find_dialog(self, dialog_id: str) -> Optional[Dialog]:
        """Search this level's set, then each ancestor's."""
        dialog = self.dialogs.find(dialog_id)
        if dialog is None:
            parent = self.parent
            if parent is not None:
                dialog = parent.find_dialog(dialog_id)
        return dialog

    # ── Memory ────────────────────────────────────────────────

    def get_memory(self, scope_name: str) -> Any:
        from memory.scopes import get_scope
        return get_scope(scope_name).get_memory(self)

    def set_memory(self, scope_name: str, value: Any) -> None:
        from memory.scopes import get_scope
        get_scope(scope_name).set_memory(self, value)

    # ── Stack operations ──────────────────────────────────────

    async def begin_dialog(self, dialog_id: str, options: Any = None) -> DialogTurnResult:
        if not dialog_id:
            raise DialogConfigurationError("DialogContext.begin_dialog(): a dialog id is required.")

        dialog = self.find_dialog(dialog_id)
        if dialog is None:
            raise DialogContextError(
                f"DialogContext.begin_dialog(): A dialog with an id of '{dialog_id}' wasn't found.",
                self,
            )

        instance = DialogInstance(id=dialog_id, state={}, version=dialog.get_version())
        self.stack.insert(0, instance)
        logger.info("dialog_begun", dialog_id=dialog_id, depth=len(self.stack))
        return await dialog.begin_dialog(self, options)

    async def prompt(
        self,
        dialog_id: str,
        prompt_or_options: Union[str, Activity, PromptOptions, dict],
        choices: list[Union[str, Choice]] = None,
    ) -> DialogTurnResult:
        if isinstance(prompt_or_options, PromptOptions):
            options = prompt_or_options.model_copy(deep=True)
        elif isinstance(prompt_or_options, dict):
            options = PromptOptions.model_validate(prompt_or_options)
        else:
            options = PromptOptions(prompt=prompt_or_options)
        if choices:
            options.choices = [c if isinstance(c, Choice) else Choice(value=c) for c in choices]
        return await self.begin_dialog(dialog_id, options)

    async def continue_dialog(self) -> DialogTurnResult:
        instance = self.active_dialog
        if instance is None:
            return DialogTurnResult(status=DialogTurnStatus.EMPTY)

        dialog = self.find_dialog(instance.id)
        if dialog is None:
            raise DialogContextError(
                f"DialogContext.continue_dialog(): Can't continue dialog. "
                f"A dialog with an id of '{instance.id}' wasn't found.",
                self,
            )
        return await dialog.continue_dialog(self)

    async def end_dialog(self, result: Any = None) -> DialogTurnResult:
        await self._end_active_dialog(DialogReason.END_CALLED, result)

        instance = self.active_dialog
        if instance is None:
            return DialogTurnResult(status=DialogTurnStatus.COMPLETE, result=result)

        dialog = self.find_dialog(instance.id)
        if dialog is None:
            raise DialogContextError(
                f"DialogContext.end_dialog(): Can't resume previous dialog. "
                f"A dialog with an id of '{instance.id}' wasn't found.",
                self,
            )
        logger.debug("dialog_resumed", dialog_id=instance.id, depth=len(self.stack))
        return await dialog.resume_dialog(self, DialogReason.END_CALLED, result)

    async def replace_dialog(self, dialog_id: str, options: Any = None) -> DialogTurnResult:
        await self._end_active_dialog(DialogReason.REPLACE_CALLED)
        return await self.begin_dialog(dialog_id, options)

    async def cancel_all_dialogs(
        self,
        cancel_parents: bool = False,
        event_name: str = None,
        event_value: Any = None,
    ) -> DialogTurnResult:
        event_name = event_name or DialogEvents.CANCEL_DIALOG
        if not self.stack and self.parent is None:
            return DialogTurnResult(status=DialogTurnStatus.EMPTY)

        notify = False
        dc: Optional[DialogContext] = self
        while dc is not None:
            if dc.stack:
                if notify:
                    handled = await dc.emit_event(event_name, event_value, False, False)
                    if handled:
                        break
                await dc._end_active_dialog(DialogReason.CANCEL_CALLED)
            else:
                dc = dc.parent if cancel_parents else None
            notify = True

        logger.info("dialogs_cancelled", cancel_parents=cancel_parents)
        return DialogTurnResult(status=DialogTurnStatus.CANCELLED)

    async def reprompt_dialog(self) -> None:
        handled = await self.emit_event(DialogEvents.REPROMPT_DIALOG, None, False, False)
        instance = self.active_dialog
        if not handled and instance is not None:
            dialog = self.find_dialog(instance.id)
            if dialog is None:
                raise DialogContextError(
                    f"DialogContext.reprompt_dialog(): Can't find a dialog with an id of '{instance.id}'.",
                    self,
                )
            await dialog.reprompt_dialog(self.context, instance)

    async def emit_event(
        self,
        name: str,
        value: Any = None,
        bubble: bool = True,
        from_leaf: bool = False,
    ) -> bool:
        event = DialogEvent(name=name, value=value, bubble=bubble)

        dc: DialogContext = self
        if from_leaf:
            while True:
                child = dc.child
                if child is None:
                    break
                dc = child

        instance = dc.active_dialog
        if instance is not None:
            dialog = dc.find_dialog(instance.id)
            if dialog is not None:
                return await dialog.on_dialog_event(dc, event)
        return False

    async def _end_active_dialog(self, reason: DialogReason, result: Any = None) -> None:
        instance = self.active_dialog
        if instance is None:
            return

        dialog = self.find_dialog(instance.id)
        if dialog is not None:
            await dialog.end_dialog(self.context, instance, reason)

        self.stack.pop(0)
        self._turn_memory()[LAST_RESULT] = result
        logger.info("dialog_ended", dialog_id=instance.id, reason=reason.value, depth=len(self.stack))

    def _turn_memory(self) -> dict[str, Any]:
        if self.context.turn_memory is None:
            self.context.turn_memory = {}
        return self.context.turn_memory

    def __repr__(self) -> str:
        active = self.active_dialog
        return f"<DialogContext level={self._index} active={active.id if active else None!r}>"
