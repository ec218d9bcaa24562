"""
Dialog Engine — runs one root dialog per turn.

Each inbound activity is one turn:
  1. load conversation (and user) state
  2. bind a DialogSet to the persisted dialog stack
  3. continue the active dialog, or begin the root when the stack is empty
  4. save whatever changed

Plugs into any ChannelAdapter as its turn handler:
    await adapter.process_activity(activity, engine.run_turn)
"""
from __future__ import annotations

import structlog
from typing import Any, Optional

from context.turn import TurnContext
from dialogs.dialog import Dialog
from dialogs.dialog_context import DialogContext
from dialogs.dialog_set import DialogSet
from models.schemas import DialogState, DialogTurnResult, DialogTurnStatus
from state.agent_state import ConversationState, UserState

logger = structlog.get_logger()

DIALOG_STATE_PROPERTY = "DialogState"


class DialogEngine:

    def __init__(
        self,
        root_dialog: Dialog,
        conversation_state: ConversationState,
        user_state: Optional[UserState] = None,
    ):
        if root_dialog is None:
            raise ValueError("DialogEngine requires a root dialog")
        if conversation_state is None:
            raise ValueError("DialogEngine requires conversation state")
        self.root_dialog = root_dialog
        self.conversation_state = conversation_state
        self.user_state = user_state

        self.dialog_state = conversation_state.create_property(DIALOG_STATE_PROPERTY, DialogState)
        self.dialogs = DialogSet(self.dialog_state)
        self.dialogs.add(root_dialog)

    async def create_context(self, context: TurnContext) -> DialogContext:
        await self.conversation_state.load(context)
        if self.user_state is not None:
            await self.user_state.load(context)
        return await self.dialogs.create_context(context)

    async def run_turn(self, context: TurnContext, options: Any = None) -> DialogTurnResult:
        dc = await self.create_context(context)
        try:
            result = await dc.continue_dialog()
            if result.status == DialogTurnStatus.EMPTY:
                logger.info("root_dialog_started", dialog_id=self.root_dialog.id,
                            conversation_id=context.conversation_id)
                result = await dc.begin_dialog(self.root_dialog.id, options)
        except Exception as e:
            logger.error("dialog_turn_failed",
                         conversation_id=context.conversation_id, error=str(e))
            raise

        await self.save(context)
        logger.debug("dialog_turn_completed", status=result.status.value,
                     depth=len(dc.stack), conversation_id=context.conversation_id)
        return result

    async def save(self, context: TurnContext) -> None:
        await self.conversation_state.save_changes(context)
        if self.user_state is not None:
            await self.user_state.save_changes(context)
