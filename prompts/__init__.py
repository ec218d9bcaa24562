"""Prompt dialogs: free text, yes/no confirmation and OAuth sign-in."""
from prompts.prompt import (
    Prompt, PromptRecognizer, PromptRenderer, PromptValidator, PromptValidatorContext,
)
from prompts.text_prompt import TextPrompt
from prompts.confirm_prompt import ConfirmPrompt
from prompts.oauth_prompt import OAuthPrompt, OAuthPromptSettings
from prompts.choices import ChoiceFactory, find_choices, find_values, recognize_choices

__all__ = [
    "Prompt", "PromptRecognizer", "PromptRenderer", "PromptValidator", "PromptValidatorContext",
    "TextPrompt", "ConfirmPrompt", "OAuthPrompt", "OAuthPromptSettings",
    "ChoiceFactory", "find_choices", "find_values", "recognize_choices",
]
