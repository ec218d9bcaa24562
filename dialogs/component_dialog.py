"""
ComponentDialog — packages a group of dialogs behind one id.

The inner stack is persisted in the component's own frame state under
"dialogs", so a component can be pushed from any DialogSet without the
outer set knowing about its members.

    class BookingDialog(ComponentDialog):
        def __init__(self):
            super().__init__("booking")
            self.add_dialog(TextPrompt("city"))
            self.add_dialog(WaterfallDialog("main", [self.ask_city, self.finish]))
            self.initial_dialog_id = "main"
"""
from __future__ import annotations

import structlog
from typing import TYPE_CHECKING, Any, Optional

from context.turn import TurnContext
from dialogs.dialog import Dialog
from dialogs.dialog_container import DialogContainer
from models.schemas import (
    DialogInstance, DialogReason, DialogState, DialogTurnResult, DialogTurnStatus,
)

if TYPE_CHECKING:
    from dialogs.dialog_context import DialogContext

logger = structlog.get_logger()

PERSISTED_DIALOG_STATE = "dialogs"


class ComponentDialog(DialogContainer):

    def __init__(self, dialog_id: str = None):
        super().__init__(dialog_id)
        self.initial_dialog_id: Optional[str] = None

    def add_dialog(self, dialog: Dialog) -> "ComponentDialog":
        self.dialogs.add(dialog)
        if self.initial_dialog_id is None:
            self.initial_dialog_id = dialog.id
        return self

    # ── Lifecycle ─────────────────────────────────────────────

    async def begin_dialog(self, outer_dc: "DialogContext", options: Any = None) -> DialogTurnResult:
        await self.check_for_version_change(outer_dc)

        inner_dc = self.create_child_context(outer_dc)
        turn_result = await self.on_begin_dialog(inner_dc, options)
        return await self._after_inner_turn(outer_dc, turn_result)

    async def continue_dialog(self, outer_dc: "DialogContext") -> DialogTurnResult:
        await self.check_for_version_change(outer_dc)

        inner_dc = self.create_child_context(outer_dc)
        turn_result = await self.on_continue_dialog(inner_dc)
        return await self._after_inner_turn(outer_dc, turn_result)

    async def resume_dialog(self, outer_dc: "DialogContext", reason: DialogReason,
                            result: Any = None) -> DialogTurnResult:
        # Something outside the component was pushed on top of it and has
        # now ended; the inner stack is still waiting on its own prompt.
        await self.check_for_version_change(outer_dc)
        await self.reprompt_dialog(outer_dc.context, outer_dc.active_dialog)
        return Dialog.END_OF_TURN

    async def reprompt_dialog(self, context: TurnContext, instance: DialogInstance) -> None:
        inner_dc = self._create_inner_dc(context, instance)
        await inner_dc.reprompt_dialog()
        await self.on_reprompt_dialog(context, instance)

    async def end_dialog(self, context: TurnContext, instance: DialogInstance,
                         reason: DialogReason) -> None:
        if reason == DialogReason.CANCEL_CALLED:
            inner_dc = self._create_inner_dc(context, instance)
            await inner_dc.cancel_all_dialogs()
        await self.on_end_dialog(context, instance, reason)

    # ── Overridable hooks ─────────────────────────────────────

    async def on_begin_dialog(self, inner_dc: "DialogContext", options: Any = None) -> DialogTurnResult:
        return await inner_dc.begin_dialog(self.initial_dialog_id, options)

    async def on_continue_dialog(self, inner_dc: "DialogContext") -> DialogTurnResult:
        return await inner_dc.continue_dialog()

    async def on_end_dialog(self, context: TurnContext, instance: DialogInstance,
                            reason: DialogReason) -> None:
        pass

    async def on_reprompt_dialog(self, context: TurnContext, instance: DialogInstance) -> None:
        pass

    async def end_component(self, outer_dc: "DialogContext", result: Any = None) -> DialogTurnResult:
        return await outer_dc.end_dialog(result)

    # ── Inner stack ───────────────────────────────────────────

    def create_child_context(self, dc: "DialogContext") -> Optional["DialogContext"]:
        from dialogs.dialog_context import DialogContext

        instance = dc.active_dialog
        if instance is None:
            return None
        return DialogContext.create(self.dialogs, dc.context, _inner_state(instance), parent=dc)

    def _create_inner_dc(self, context: TurnContext, instance: DialogInstance) -> "DialogContext":
        from dialogs.dialog_context import DialogContext
        return DialogContext.create(self.dialogs, context, _inner_state(instance))

    async def _after_inner_turn(self, outer_dc: "DialogContext",
                                turn_result: DialogTurnResult) -> DialogTurnResult:
        if turn_result.status == DialogTurnStatus.WAITING:
            return Dialog.END_OF_TURN
        if turn_result.status == DialogTurnStatus.CANCELLED:
            await self.end_component(outer_dc, turn_result.result)
            return DialogTurnResult(status=DialogTurnStatus.CANCELLED, result=turn_result.result)
        logger.debug("component_inner_stack_completed", dialog_id=self.id)
        return await self.end_component(outer_dc, turn_result.result)


def _inner_state(instance: DialogInstance) -> DialogState:
    raw = instance.state.get(PERSISTED_DIALOG_STATE)
    if not isinstance(raw, DialogState):
        raw = DialogState.model_validate(raw or {})
        instance.state[PERSISTED_DIALOG_STATE] = raw
    return raw
