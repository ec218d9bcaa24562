"""
ConfirmPrompt — asks a yes/no question.

The reply is read with a locale-aware boolean recognizer first. When that
finds nothing and numbered choices are enabled, the reply is matched
against the two confirm choices by text or position; index 0 means True.
"""
from __future__ import annotations

from typing import Any, Optional

from config.settings import get_settings
from context.turn import TurnContext
from models.schemas import (
    Activity, Choice, ChoiceFactoryOptions, ListStyle, PromptOptions, PromptRecognizerResult,
)
from prompts.choices import recognize_choices
from prompts.culture import ENGLISH, SUPPORTED_CULTURES, PromptCultureModel, map_to_nearest_language
from prompts.prompt import Prompt, PromptValidator, append_choices
from prompts.recognizers import (
    BooleanRecognizer, NumberRecognizer, default_boolean_recognizer, default_number_recognizer,
)


class ChoiceDefaults:
    def __init__(self, choices: list[Choice], options: ChoiceFactoryOptions):
        self.choices = choices
        self.options = options


def _defaults_for(culture: PromptCultureModel) -> ChoiceDefaults:
    return ChoiceDefaults(
        choices=[Choice(value=culture.yes_in_language), Choice(value=culture.no_in_language)],
        options=ChoiceFactoryOptions(
            inline_separator=culture.separator,
            inline_or=culture.inline_or,
            inline_or_more=culture.inline_or_more,
            include_numbers=True,
        ),
    )


class ConfirmStrategy:
    """Renders and recognizes confirm prompts for one ConfirmPrompt."""

    def __init__(
        self,
        default_locale: Optional[str] = None,
        choice_defaults: dict[str, ChoiceDefaults] = None,
        boolean_recognizer: BooleanRecognizer = None,
        number_recognizer: NumberRecognizer = None,
    ):
        self.default_locale = default_locale
        self.style: ListStyle = ListStyle.AUTO
        self.choice_options: Optional[ChoiceFactoryOptions] = None
        self.confirm_choices: Optional[list[Choice]] = None
        self.choice_defaults = choice_defaults or {c.locale: _defaults_for(c) for c in SUPPORTED_CULTURES}
        self._boolean = boolean_recognizer or default_boolean_recognizer
        self._numbers = number_recognizer or default_number_recognizer

    def determine_culture(self, activity: Activity) -> str:
        culture = map_to_nearest_language(
            activity.locale or self.default_locale or get_settings().dialogs.default_locale or ENGLISH.locale
        )
        if not (culture and culture in self.choice_defaults):
            culture = ENGLISH.locale
        return culture

    def _settings_for(self, culture: str) -> tuple[list[Choice], ChoiceFactoryOptions]:
        defaults = self.choice_defaults[culture]
        return (self.confirm_choices or defaults.choices,
                self.choice_options or defaults.options)

    async def render(self, context: TurnContext, state: dict[str, Any],
                     options: PromptOptions, is_retry: bool) -> None:
        choices, choice_options = self._settings_for(self.determine_culture(context.activity))
        prompt = options.retry_prompt if is_retry and options.retry_prompt else options.prompt
        await context.send_activity(append_choices(prompt, choices, self.style, choice_options))

    async def recognize(self, context: TurnContext, state: dict[str, Any],
                        options: PromptOptions) -> PromptRecognizerResult:
        utterance = context.activity.text
        if not utterance:
            return PromptRecognizerResult(succeeded=False)

        culture = self.determine_culture(context.activity)
        results = self._boolean.recognize(utterance, culture)
        if results and "value" in results[0].resolution:
            return PromptRecognizerResult(succeeded=True, value=results[0].resolution["value"])

        choices, choice_options = self._settings_for(culture)
        # Numbers are on unless explicitly switched off.
        if choice_options.include_numbers is not False:
            matches = recognize_choices(utterance, [choices[0], choices[1]], culture,
                                        number_recognizer=self._numbers)
            if matches:
                return PromptRecognizerResult(succeeded=True, value=matches[0].resolution["index"] == 0)

        return PromptRecognizerResult(succeeded=False)


class ConfirmPrompt(Prompt):

    def __init__(
        self,
        dialog_id: str,
        validator: PromptValidator = None,
        default_locale: str = None,
        choice_defaults: dict[str, ChoiceDefaults] = None,
        boolean_recognizer: BooleanRecognizer = None,
        number_recognizer: NumberRecognizer = None,
    ):
        self._strategy = ConfirmStrategy(default_locale, choice_defaults,
                                         boolean_recognizer, number_recognizer)
        super().__init__(dialog_id, self._strategy, self._strategy, validator)

    @property
    def style(self) -> ListStyle:
        return self._strategy.style

    @style.setter
    def style(self, value: ListStyle) -> None:
        self._strategy.style = value

    @property
    def default_locale(self) -> Optional[str]:
        return self._strategy.default_locale

    @default_locale.setter
    def default_locale(self, value: Optional[str]) -> None:
        self._strategy.default_locale = value

    @property
    def choice_options(self) -> Optional[ChoiceFactoryOptions]:
        return self._strategy.choice_options

    @choice_options.setter
    def choice_options(self, value: Optional[ChoiceFactoryOptions]) -> None:
        self._strategy.choice_options = value

    @property
    def confirm_choices(self) -> Optional[list[Choice]]:
        return self._strategy.confirm_choices

    @confirm_choices.setter
    def confirm_choices(self, value: list) -> None:
        self._strategy.confirm_choices = [c if isinstance(c, Choice) else Choice(value=c) for c in value] \
            if value else None
