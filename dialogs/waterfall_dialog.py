"""
WaterfallDialog — a fixed sequence of async steps.

Each step receives a WaterfallStepContext and either returns a turn result
(usually from starting a prompt or child dialog) or calls `next()` to run
the following step at once. Whatever a child dialog ends with becomes
`step.result` for the next step; the last step's result ends the waterfall.
"""
from __future__ import annotations

import structlog
import uuid
from typing import Any, Awaitable, Callable

from dialogs.dialog import Dialog
from dialogs.dialog_context import DialogContext
from dialogs.errors import DialogEngineError
from models.schemas import ActivityTypes, DialogReason, DialogTurnResult

logger = structlog.get_logger()

WaterfallStep = Callable[["WaterfallStepContext"], Awaitable[DialogTurnResult]]

_STEP_INDEX = "stepIndex"
_OPTIONS = "options"
_VALUES = "values"
_INSTANCE_ID = "instanceId"


class WaterfallStepContext(DialogContext):
    """A DialogContext over the waterfall's own stack level, plus step data."""

    def __init__(
        self,
        parent: "WaterfallDialog",
        dc: DialogContext,
        options: Any,
        values: dict[str, Any],
        index: int,
        reason: DialogReason,
        result: Any = None,
    ):
        super().__init__(dc.tree, dc.level)
        self._wf = parent
        self._next_called = False
        self.options = options
        self.values = values
        self.index = index
        self.reason = reason
        self.result = result

    async def next(self, result: Any = None) -> DialogTurnResult:
        """Skip to the next step, handing it `result`."""
        if self._next_called:
            raise DialogEngineError(
                f"WaterfallStepContext.next(): method already called for dialog and step "
                f"'{self._wf.id}[{self.index}]'."
            )
        self._next_called = True
        return await self._wf.resume_dialog(self, DialogReason.NEXT_CALLED, result)


class WaterfallDialog(Dialog):

    def __init__(self, dialog_id: str, steps: list[WaterfallStep] = None):
        super().__init__(dialog_id)
        self.steps: list[WaterfallStep] = list(steps or [])

    def add_step(self, step: WaterfallStep) -> "WaterfallDialog":
        self.steps.append(step)
        return self

    def get_version(self) -> str:
        names = ",".join(getattr(s, "__qualname__", repr(s)) for s in self.steps)
        return f"{self.id}:{names}"

    async def begin_dialog(self, dc: DialogContext, options: Any = None) -> DialogTurnResult:
        state = dc.active_dialog.state
        state[_OPTIONS] = options
        state[_VALUES] = {_INSTANCE_ID: uuid.uuid4().hex}
        return await self.run_step(dc, 0, DialogReason.BEGIN_CALLED)

    async def continue_dialog(self, dc: DialogContext) -> DialogTurnResult:
        # Only messages move a waterfall forward by themselves.
        if dc.context.activity.type != ActivityTypes.MESSAGE.value:
            return Dialog.END_OF_TURN
        return await self.resume_dialog(dc, DialogReason.CONTINUE_CALLED, dc.context.activity.text)

    async def resume_dialog(self, dc: DialogContext, reason: DialogReason,
                            result: Any = None) -> DialogTurnResult:
        state = dc.active_dialog.state
        return await self.run_step(dc, state.get(_STEP_INDEX, 0) + 1, reason, result)

    async def on_step(self, step: WaterfallStepContext) -> DialogTurnResult:
        return await self.steps[step.index](step)

    async def run_step(self, dc: DialogContext, index: int, reason: DialogReason,
                       result: Any = None) -> DialogTurnResult:
        if index < len(self.steps):
            state = dc.active_dialog.state
            state[_STEP_INDEX] = index
            step = WaterfallStepContext(
                self, dc, state.get(_OPTIONS), state.setdefault(_VALUES, {}), index, reason, result,
            )
            logger.debug("waterfall_step", dialog_id=self.id, step=index, reason=reason.value)
            return await self.on_step(step)
        return await dc.end_dialog(result)
