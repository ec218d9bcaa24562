"""TextPrompt — asks for free text; any non-empty reply is accepted."""
from __future__ import annotations

from typing import Any

from context.turn import TurnContext
from models.schemas import InputHints, PromptOptions, PromptRecognizerResult
from prompts.prompt import Prompt, PromptValidator, as_activity


class TextRenderer:

    async def render(self, context: TurnContext, state: dict[str, Any],
                     options: PromptOptions, is_retry: bool) -> None:
        prompt = options.retry_prompt if is_retry and options.retry_prompt else options.prompt
        activity = as_activity(prompt, InputHints.EXPECTING_INPUT)
        if activity is not None:
            await context.send_activity(activity)


class TextRecognizer:

    async def recognize(self, context: TurnContext, state: dict[str, Any],
                        options: PromptOptions) -> PromptRecognizerResult:
        value = context.activity.text
        if isinstance(value, str) and len(value) > 0:
            return PromptRecognizerResult(succeeded=True, value=value)
        return PromptRecognizerResult(succeeded=False)


class TextPrompt(Prompt):

    def __init__(self, dialog_id: str, validator: PromptValidator = None,
                 end_on_invalid_message: bool = False):
        super().__init__(dialog_id, TextRenderer(), TextRecognizer(), validator, end_on_invalid_message)
