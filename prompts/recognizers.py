"""
Locale-aware recognizers consumed by prompts and choice matching.

Natural-language understanding is a pluggable collaborator: anything with
the BooleanRecognizer or NumberRecognizer shape can be injected. The
default implementations below are keyword and digit based and cover the
cultures listed in prompts.culture.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol


@dataclass
class ModelResult:
    """One match in an utterance. `start`/`end` are inclusive character offsets."""
    text: str
    start: int
    end: int
    type_name: str
    resolution: dict[str, Any] = field(default_factory=dict)


class BooleanRecognizer(Protocol):
    def recognize(self, text: str, locale: str) -> list[ModelResult]:
        ...


class NumberRecognizer(Protocol):
    def recognize_number(self, text: str, locale: str) -> list[ModelResult]:
        ...

    def recognize_ordinal(self, text: str, locale: str) -> list[ModelResult]:
        ...


# ══════════════════════════════════════════════════════════════
#  Boolean
# ══════════════════════════════════════════════════════════════

_BOOLEAN_KEYWORDS: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    "en": (("yes", "y", "yeah", "yep", "yup", "sure", "ok", "okay", "true", "correct",
            "affirmative", "absolutely", "of course"),
           ("no", "n", "nope", "nah", "false", "incorrect", "negative", "not really")),
    "nl": (("ja", "jazeker", "zeker", "klopt", "oké", "prima"),
           ("nee", "neen", "niet", "nooit")),
    "fr": (("oui", "ouais", "d'accord", "bien sûr", "vrai", "ok"),
           ("non", "faux", "pas du tout")),
    "de": (("ja", "jawohl", "klar", "genau", "richtig", "ok"),
           ("nein", "nö", "falsch", "keinesfalls")),
    "it": (("si", "sì", "certo", "vero", "va bene", "ok"),
           ("no", "falso", "per niente")),
    "pt": (("sim", "claro", "certo", "verdadeiro", "ok"),
           ("não", "nao", "falso", "de jeito nenhum")),
    "es": (("sí", "si", "claro", "vale", "verdadero", "ok"),
           ("no", "falso", "para nada")),
    "zh": (("是的", "是", "对", "好的", "好", "可以", "行"),
           ("不是", "不要", "不", "否", "没有")),
    "ja": (("はい", "ええ", "うん", "そうです"),
           ("いいえ", "いや", "ううん")),
}

# Scripts without spaces between words are matched as plain substrings.
_UNSEGMENTED = {"zh", "ja"}


def _language(locale: Optional[str]) -> str:
    return (locale or "en").lower().split("-")[0]


class KeywordBooleanRecognizer:
    """Finds yes/no keywords; earliest (then longest) match wins."""

    def __init__(self, keywords: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = None):
        self._keywords = keywords or _BOOLEAN_KEYWORDS

    def recognize(self, text: str, locale: str) -> list[ModelResult]:
        if not text:
            return []
        language = _language(locale)
        yes_words, no_words = self._keywords.get(language, self._keywords["en"])
        lowered = text.lower()

        matches: list[ModelResult] = []
        for words, value in ((yes_words, True), (no_words, False)):
            for word in words:
                if language in _UNSEGMENTED:
                    pattern = re.escape(word)
                else:
                    pattern = rf"(?<!\w){re.escape(word)}(?!\w)"
                for m in re.finditer(pattern, lowered):
                    matches.append(ModelResult(
                        text=text[m.start():m.end()],
                        start=m.start(),
                        end=m.end() - 1,
                        type_name="boolean",
                        resolution={"value": value, "score": 1.0},
                    ))
        matches.sort(key=lambda r: (r.start, -(r.end - r.start)))
        return matches[:1]


# ══════════════════════════════════════════════════════════════
#  Numbers & ordinals
# ══════════════════════════════════════════════════════════════

_NUMBER_WORDS = {
    "en": ["zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine",
           "ten", "eleven", "twelve"],
    "es": ["cero", "uno", "dos", "tres", "cuatro", "cinco", "seis", "siete", "ocho", "nueve", "diez"],
    "pt": ["zero", "um", "dois", "três", "quatro", "cinco", "seis", "sete", "oito", "nove", "dez"],
    "fr": ["zéro", "un", "deux", "trois", "quatre", "cinq", "six", "sept", "huit", "neuf", "dix"],
    "de": ["null", "eins", "zwei", "drei", "vier", "fünf", "sechs", "sieben", "acht", "neun", "zehn"],
    "it": ["zero", "uno", "due", "tre", "quattro", "cinque", "sei", "sette", "otto", "nove", "dieci"],
    "nl": ["nul", "een", "twee", "drie", "vier", "vijf", "zes", "zeven", "acht", "negen", "tien"],
}

_ORDINAL_WORDS = {
    "en": ["first", "second", "third", "fourth", "fifth", "sixth", "seventh", "eighth",
           "ninth", "tenth"],
    "es": ["primero", "segundo", "tercero", "cuarto", "quinto"],
    "pt": ["primeiro", "segundo", "terceiro", "quarto", "quinto"],
    "fr": ["premier", "deuxième", "troisième", "quatrième", "cinquième"],
    "de": ["erste", "zweite", "dritte", "vierte", "fünfte"],
    "it": ["primo", "secondo", "terzo", "quarto", "quinto"],
    "nl": ["eerste", "tweede", "derde", "vierde", "vijfde"],
}

_DIGITS = re.compile(r"(?<![\w.])-?\d+(?:\.\d+)?(?![\w.])")
_DIGIT_ORDINAL = re.compile(r"(?<!\w)(\d+)(?:st|nd|rd|th|º|ª|e|\.)(?!\w)", re.IGNORECASE)


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


class DefaultNumberRecognizer:
    """Digits in any culture plus small cardinal/ordinal words."""

    def recognize_number(self, text: str, locale: str) -> list[ModelResult]:
        if not text:
            return []
        results = [
            ModelResult(m.group(0), m.start(), m.end() - 1, "number",
                        {"value": _format_number(float(m.group(0)))})
            for m in _DIGITS.finditer(text)
        ]
        results.extend(self._words(text, _NUMBER_WORDS.get(_language(locale), []), 0, "number"))
        return sorted(results, key=lambda r: r.start)

    def recognize_ordinal(self, text: str, locale: str) -> list[ModelResult]:
        if not text:
            return []
        results = [
            ModelResult(m.group(0), m.start(), m.end() - 1, "ordinal", {"value": m.group(1)})
            for m in _DIGIT_ORDINAL.finditer(text)
        ]
        results.extend(self._words(text, _ORDINAL_WORDS.get(_language(locale), []), 1, "ordinal"))
        return sorted(results, key=lambda r: r.start)

    @staticmethod
    def _words(text: str, words: list[str], base: int, type_name: str) -> list[ModelResult]:
        lowered = text.lower()
        results = []
        for offset, word in enumerate(words):
            for m in re.finditer(rf"(?<!\w){re.escape(word)}(?!\w)", lowered):
                results.append(ModelResult(text[m.start():m.end()], m.start(), m.end() - 1,
                                           type_name, {"value": str(offset + base)}))
        return results


default_boolean_recognizer = KeywordBooleanRecognizer()
default_number_recognizer = DefaultNumberRecognizer()
