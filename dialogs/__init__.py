"""
Dialog framework — resumable dialog stacks.

Quick start:
  from dialogs import DialogSet, WaterfallDialog
  dialogs = DialogSet(conversation_state.create_property("DialogState"))
  dialogs.add(WaterfallDialog("main", [step_one, step_two]))
  dc = await dialogs.create_context(turn_context)
  result = await dc.continue_dialog()
  if result.status == DialogTurnStatus.EMPTY:
      await dc.begin_dialog("main")
"""
from dialogs.errors import DialogConfigurationError, DialogContextError, DialogEngineError
from dialogs.dialog import Dialog
from dialogs.dialog_set import DialogSet
from dialogs.dialog_context import DialogContext, DialogContextTree
from dialogs.dialog_container import DialogContainer
from dialogs.component_dialog import ComponentDialog
from dialogs.waterfall_dialog import WaterfallDialog, WaterfallStepContext

__all__ = [
    # Errors
    "DialogEngineError", "DialogConfigurationError", "DialogContextError",
    # Core
    "Dialog", "DialogSet", "DialogContext", "DialogContextTree",
    # Containers
    "DialogContainer", "ComponentDialog",
    "WaterfallDialog", "WaterfallStepContext",
]
