"""
Prompt — a dialog that asks, recognizes, validates and retries.

What to send and how to read the reply are strategies handed to the
constructor; the loop itself is shared:

  begin     render the prompt, wait
  continue  recognize the reply
            → validator (if any) decides, else `succeeded` decides
            → valid: end with the value
            → invalid message with end_on_invalid_message: end with None
            → otherwise render the retry prompt (unless something was
              already sent this turn) and keep waiting
  resume    render the prompt again, wait

Frame state layout: {"options": <PromptOptions wire dict>, "state": {...}}.
The inner "state" record is the strategies' scratch space and holds
"attemptCount" once a validator has run.
"""
from __future__ import annotations

import structlog
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Protocol, Union

from context.turn import TurnContext
from dialogs.dialog import Dialog
from dialogs.errors import DialogConfigurationError
from models.schemas import (
    Activity, ActivityTypes, ChoiceFactoryOptions, DialogInstance, DialogReason,
    DialogTurnResult, InputHints, ListStyle, PromptOptions, PromptRecognizerResult,
)
from prompts.choices import ChoiceFactory

if TYPE_CHECKING:
    from dialogs.dialog_context import DialogContext

logger = structlog.get_logger()

ATTEMPT_COUNT_KEY = "attemptCount"
_OPTIONS = "options"
_STATE = "state"


@dataclass
class PromptValidatorContext:
    context: TurnContext
    recognized: PromptRecognizerResult
    state: dict[str, Any]
    options: PromptOptions

    @property
    def attempt_count(self) -> int:
        return self.state.get(ATTEMPT_COUNT_KEY, 0)


PromptValidator = Callable[[PromptValidatorContext], Awaitable[bool]]


class PromptRenderer(Protocol):
    async def render(self, context: TurnContext, state: dict[str, Any],
                     options: PromptOptions, is_retry: bool) -> None:
        ...


class PromptRecognizer(Protocol):
    async def recognize(self, context: TurnContext, state: dict[str, Any],
                        options: PromptOptions) -> PromptRecognizerResult:
        ...


def coerce_options(options: Union[PromptOptions, dict, str, Activity, None]) -> PromptOptions:
    if options is None:
        raise DialogConfigurationError("Prompt options are required for Prompt dialogs.")
    if isinstance(options, PromptOptions):
        return options
    if isinstance(options, dict):
        return PromptOptions.model_validate(options)
    return PromptOptions(prompt=options)


def as_activity(prompt: Union[str, Activity, None], input_hint: InputHints = None) -> Optional[Activity]:
    """Copy a prompt into an outbound Activity, defaulting its input hint."""
    if prompt is None:
        return None
    if isinstance(prompt, str):
        activity = Activity.message(prompt)
    else:
        activity = prompt.model_copy(deep=True)
    if input_hint is not None and not activity.input_hint:
        activity.input_hint = input_hint.value
    return activity


def append_choices(
    prompt: Union[str, Activity, None],
    choices: list,
    style: Optional[ListStyle],
    options: ChoiceFactoryOptions = None,
) -> Activity:
    activity = as_activity(prompt) or Activity.message("")
    activity.text = ChoiceFactory.render(choices, activity.text or "", style, options)
    activity.input_hint = activity.input_hint or InputHints.EXPECTING_INPUT.value
    return activity


class Prompt(Dialog):

    def __init__(
        self,
        dialog_id: str,
        renderer: PromptRenderer,
        recognizer: PromptRecognizer,
        validator: PromptValidator = None,
        end_on_invalid_message: bool = False,
    ):
        super().__init__(dialog_id)
        self._renderer = renderer
        self._recognizer = recognizer
        self._validator = validator
        self.end_on_invalid_message = end_on_invalid_message

    # ── Lifecycle ─────────────────────────────────────────────

    async def begin_dialog(self, dc: "DialogContext", options: Any = None) -> DialogTurnResult:
        opts = coerce_options(options)

        state = dc.active_dialog.state
        state[_OPTIONS] = opts.to_wire()
        state[_STATE] = {}

        await self._renderer.render(dc.context, state[_STATE], opts, False)
        return Dialog.END_OF_TURN

    async def continue_dialog(self, dc: "DialogContext") -> DialogTurnResult:
        activity = dc.context.activity
        if activity.type != ActivityTypes.MESSAGE.value:
            return Dialog.END_OF_TURN

        instance = dc.active_dialog
        state = instance.state.setdefault(_STATE, {})
        options = self._options(instance)

        recognized = await self._recognizer.recognize(dc.context, state, options)

        if self._validator is not None:
            state[ATTEMPT_COUNT_KEY] = state.get(ATTEMPT_COUNT_KEY, 0) + 1
            is_valid = await self._validator(
                PromptValidatorContext(dc.context, recognized, state, options)
            )
        else:
            is_valid = recognized.succeeded

        if is_valid:
            logger.debug("prompt_recognized", dialog_id=self.id)
            return await dc.end_dialog(recognized.value)

        if self.end_on_invalid_message:
            logger.info("prompt_ended_on_invalid_message", dialog_id=self.id)
            return await dc.end_dialog(None)

        if not dc.context.responded:
            logger.debug("prompt_retry", dialog_id=self.id, attempt=state.get(ATTEMPT_COUNT_KEY))
            await self._renderer.render(dc.context, state, options, True)
        return Dialog.END_OF_TURN

    async def resume_dialog(self, dc: "DialogContext", reason: DialogReason,
                            result: Any = None) -> DialogTurnResult:
        # A prompt never starts children; if something was pushed on top
        # of it and has ended, ask the question again.
        await self.reprompt_dialog(dc.context, dc.active_dialog)
        return Dialog.END_OF_TURN

    async def reprompt_dialog(self, context: TurnContext, instance: DialogInstance) -> None:
        state = instance.state.setdefault(_STATE, {})
        await self._renderer.render(context, state, self._options(instance), False)

    @staticmethod
    def _options(instance: DialogInstance) -> PromptOptions:
        return PromptOptions.model_validate(instance.state.get(_OPTIONS) or {})
