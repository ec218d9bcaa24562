"""
Choice matching and rendering.

  tokenize            split an utterance into normalized word tokens
  find_values         fuzzy-match a list of values against an utterance
  find_choices        find_values over each choice's value, title and synonyms
  recognize_choices   find_choices, else ordinal ("the second one"), else
                      numeric index ("2"), de-duplicated by choice index
  ChoiceFactory       render choices inline or as a list
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from models.schemas import Choice, ChoiceFactoryOptions, ListStyle
from prompts.recognizers import ModelResult, NumberRecognizer, default_number_recognizer


@dataclass
class Token:
    start: int
    end: int
    text: str
    normalized: str


@dataclass
class SortedValue:
    value: str
    index: int


def _is_cjk(ch: str) -> bool:
    code = ord(ch)
    return (
        0x3040 <= code <= 0x30FF        # hiragana, katakana
        or 0x3400 <= code <= 0x4DBF
        or 0x4E00 <= code <= 0x9FFF
        or 0xF900 <= code <= 0xFAFF
        or 0xAC00 <= code <= 0xD7AF     # hangul
    )


def tokenize(text: str, locale: str = None) -> list[Token]:
    """Words are runs of letters/digits; each CJK character is its own token."""
    tokens: list[Token] = []
    current: Optional[Token] = None

    def close() -> None:
        nonlocal current
        if current is not None:
            current.normalized = current.text.lower()
            tokens.append(current)
            current = None

    for i, ch in enumerate(text or ""):
        if _is_cjk(ch):
            close()
            tokens.append(Token(i, i, ch, ch.lower()))
        elif ch.isalnum():
            if current is None:
                current = Token(i, i, ch, "")
            else:
                current.text += ch
                current.end = i
        else:
            close()
    close()
    return tokens


# ══════════════════════════════════════════════════════════════
#  Matching
# ══════════════════════════════════════════════════════════════

def find_values(
    utterance: str,
    values: list[SortedValue],
    locale: str = None,
    max_token_distance: int = 2,
    allow_partial_matches: bool = False,
) -> list[ModelResult]:
    """
    Match each value's tokens against the utterance's tokens.

    A value matches when its tokens appear in order with at most
    `max_token_distance` tokens between them. Score is completeness
    (share of value tokens found) times accuracy (penalizing gaps).
    Results are de-duplicated by value index and by overlapping tokens
    and returned in utterance order with character offsets.
    """
    utterance = utterance or ""
    normalized_utterance = utterance.strip().lower()

    # An utterance that is exactly one of the values wins outright.
    for entry in values:
        if entry.value.strip().lower() == normalized_utterance and normalized_utterance:
            start = utterance.lower().index(normalized_utterance)
            return [ModelResult(
                text=utterance[start:start + len(normalized_utterance)],
                start=start,
                end=start + len(normalized_utterance) - 1,
                type_name="value",
                resolution={"value": entry.value, "index": entry.index, "score": 1.0},
            )]

    tokens = tokenize(utterance, locale)

    def index_of_token(token: Token, start_pos: int) -> int:
        for i in range(start_pos, len(tokens)):
            if tokens[i].normalized == token.normalized:
                return i
        return -1

    def match_value(index: int, value: str, v_tokens: list[Token], start_pos: int) -> Optional[ModelResult]:
        matched = 0
        total_deviation = 0
        start = -1
        end = -1
        for token in v_tokens:
            pos = index_of_token(token, start_pos)
            if pos >= 0:
                distance = pos - start_pos if matched > 0 else 0
                if distance <= max_token_distance:
                    matched += 1
                    total_deviation += distance
                    start_pos = pos + 1
                    if start < 0:
                        start = pos
                    end = pos

        if matched > 0 and (matched == len(v_tokens) or allow_partial_matches):
            completeness = matched / len(v_tokens)
            accuracy = matched / (matched + total_deviation)
            return ModelResult(
                text="", start=start, end=end, type_name="value",
                resolution={"value": value, "index": index, "score": completeness * accuracy},
            )
        return None

    matches: list[ModelResult] = []
    for entry in sorted(values, key=lambda v: len(v.value), reverse=True):
        searched = tokenize(entry.value.strip(), locale)
        if not searched:
            continue
        start_pos = 0
        while start_pos < len(tokens):
            match = match_value(entry.index, entry.value, searched, start_pos)
            if match is None:
                break
            start_pos = match.end + 1
            matches.append(match)

    matches.sort(key=lambda m: m.resolution["score"], reverse=True)

    results: list[ModelResult] = []
    found_indexes: set[int] = set()
    used_tokens: set[int] = set()
    for match in matches:
        span = range(match.start, match.end + 1)
        if match.resolution["index"] in found_indexes or any(i in used_tokens for i in span):
            continue
        found_indexes.add(match.resolution["index"])
        used_tokens.update(span)
        match.start = tokens[match.start].start
        match.end = tokens[match.end].end
        match.text = utterance[match.start:match.end + 1]
        results.append(match)

    return sorted(results, key=lambda m: m.start)


def find_choices(
    utterance: str,
    choices: list[Union[str, Choice]],
    locale: str = None,
    no_value: bool = False,
    no_action: bool = False,
    **kwargs,
) -> list[ModelResult]:
    choice_list = ChoiceFactory.to_choices(choices)

    synonyms: list[SortedValue] = []
    for index, choice in enumerate(choice_list):
        if not no_value:
            synonyms.append(SortedValue(choice.value, index))
        if choice.action is not None and choice.action.title and not no_action:
            synonyms.append(SortedValue(choice.action.title, index))
        for synonym in choice.synonyms:
            synonyms.append(SortedValue(synonym, index))

    results = []
    for v in find_values(utterance, synonyms, locale, **kwargs):
        choice = choice_list[v.resolution["index"]]
        results.append(ModelResult(
            text=v.text, start=v.start, end=v.end, type_name="choice",
            resolution={
                "value": choice.value,
                "index": v.resolution["index"],
                "score": v.resolution["score"],
                "synonym": v.resolution["value"],
            },
        ))
    return results


def recognize_choices(
    utterance: str,
    choices: list[Union[str, Choice]],
    locale: str = "en-us",
    recognize_ordinals: bool = True,
    recognize_numbers: bool = True,
    number_recognizer: NumberRecognizer = None,
) -> list[ModelResult]:
    """
    Text search first; only when nothing matches fall back to ordinals,
    then numbers. A single strategy is used so "the first red one" does
    not match both by text and by position.
    """
    choice_list = ChoiceFactory.to_choices(choices)
    recognizer = number_recognizer or default_number_recognizer
    locale = locale or "en-us"

    matched = find_choices(utterance, choice_list, locale)
    if not matched:
        def by_index(candidates: list[ModelResult]) -> None:
            for candidate in candidates:
                try:
                    index = int(float(candidate.resolution.get("value"))) - 1
                except (TypeError, ValueError):
                    continue
                if 0 <= index < len(choice_list):
                    matched.append(ModelResult(
                        text=candidate.text, start=candidate.start, end=candidate.end,
                        type_name="choice",
                        resolution={"value": choice_list[index].value, "index": index, "score": 1.0},
                    ))

        if recognize_ordinals:
            by_index(recognizer.recognize_ordinal(utterance, locale))
        if not matched and recognize_numbers:
            by_index(recognizer.recognize_number(utterance, locale))
        matched.sort(key=lambda m: m.start)

    unique: list[ModelResult] = []
    seen: set[int] = set()
    for match in matched:
        if match.resolution["index"] not in seen:
            seen.add(match.resolution["index"])
            unique.append(match)
    return unique


# ══════════════════════════════════════════════════════════════
#  Rendering
# ══════════════════════════════════════════════════════════════

class ChoiceFactory:

    @staticmethod
    def to_choices(choices: list[Union[str, Choice]]) -> list[Choice]:
        return [c if isinstance(c, Choice) else Choice(value=c) for c in (choices or []) if c]

    @staticmethod
    def inline(choices: list[Union[str, Choice]], text: str = None,
               options: ChoiceFactoryOptions = None) -> str:
        opt = options or ChoiceFactoryOptions()
        choice_list = ChoiceFactory.to_choices(choices)

        connector = ""
        txt = (text or "") + " "
        for index, choice in enumerate(choice_list):
            title = choice.action.title if choice.action and choice.action.title else choice.value
            number = f"({index + 1}) " if opt.include_numbers is not False else ""
            txt += f"{connector}{number}{title}"
            if index == len(choice_list) - 2:
                connector = (opt.inline_or if index == 0 else opt.inline_or_more) or ""
            else:
                connector = opt.inline_separator or ""
        return txt

    @staticmethod
    def list_style(choices: list[Union[str, Choice]], text: str = None,
                   include_numbers: bool = True) -> str:
        choice_list = ChoiceFactory.to_choices(choices)
        connector = ""
        txt = (text or "") + "\n\n   "
        for index, choice in enumerate(choice_list):
            title = choice.action.title if choice.action and choice.action.title else choice.value
            txt += connector + (f"{index + 1}. " if include_numbers else "- ") + title
            connector = "\n   "
        return txt

    @staticmethod
    def render(choices: list[Union[str, Choice]], text: str = None,
               style: ListStyle = None, options: ChoiceFactoryOptions = None) -> str:
        style = style or ListStyle.AUTO
        if style == ListStyle.NONE:
            return text or ""
        if style == ListStyle.LIST:
            include = options.include_numbers is not False if options else True
            return ChoiceFactory.list_style(choices, text, include)
        return ChoiceFactory.inline(choices, text, options)
