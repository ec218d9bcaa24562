"""
Prompt culture models — locale-specific words used when rendering and
recognizing yes/no choices.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PromptCultureModel:
    locale: str
    separator: str
    inline_or: str
    inline_or_more: str
    yes_in_language: str
    no_in_language: str


CHINESE = PromptCultureModel("zh-cn", ", ", " 要么 ", "， 要么 ", "是的", "不")
DUTCH = PromptCultureModel("nl-nl", ", ", " of ", ", of ", "Ja", "Nee")
ENGLISH = PromptCultureModel("en-us", ", ", " or ", ", or ", "Yes", "No")
FRENCH = PromptCultureModel("fr-fr", ", ", " ou ", ", ou ", "Oui", "Non")
GERMAN = PromptCultureModel("de-de", ", ", " oder ", ", oder ", "Ja", "Nein")
ITALIAN = PromptCultureModel("it-it", ", ", " o ", " o ", "Si", "No")
JAPANESE = PromptCultureModel("ja-jp", "、 ", " または ", "、 または ", "はい", "いいえ")
PORTUGUESE = PromptCultureModel("pt-br", ", ", " ou ", ", ou ", "Sim", "Não")
SPANISH = PromptCultureModel("es-es", ", ", " o ", ", o ", "Sí", "No")

SUPPORTED_CULTURES: tuple[PromptCultureModel, ...] = (
    CHINESE, DUTCH, ENGLISH, FRENCH, GERMAN, ITALIAN, JAPANESE, PORTUGUESE, SPANISH,
)


def get_supported_culture_codes() -> list[str]:
    return [c.locale for c in SUPPORTED_CULTURES]


def map_to_nearest_language(culture_code: Optional[str]) -> Optional[str]:
    """Lower-case `culture_code` and map it onto a supported culture by language prefix."""
    if not culture_code:
        return culture_code
    culture_code = culture_code.lower()
    supported = get_supported_culture_codes()
    if culture_code not in supported:
        prefix = culture_code.split("-")[0].strip()
        for code in supported:
            if code.startswith(prefix):
                culture_code = code
    return culture_code
