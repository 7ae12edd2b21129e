"""Submitted answers as a tagged union keyed by question type.

Clients send `{question_id: value}` where the value's shape depends on
the question: an option id, a list of option ids, or free text.  Each
raw value is coerced once, against the question it answers, into one of
the variants below.  Anything that does not fit the question's shape
coerces to None and is graded as incorrect.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class ChoiceAnswer:
    """true_false / single_choice: one option id."""

    option_id: str


@dataclass(frozen=True, slots=True)
class MultiChoiceAnswer:
    """multiple_choice: a set of option ids."""

    option_ids: frozenset[str]


@dataclass(frozen=True, slots=True)
class TextAnswer:
    """fill_blank: free text."""

    text: str


SubmittedAnswer = ChoiceAnswer | MultiChoiceAnswer | TextAnswer


def _scalar_text(value: Any) -> str | None:
    # bool is an int subclass; a JSON true/false is never a valid id or text
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value if value.strip() else None
    if isinstance(value, (int, float)):
        return str(value)
    return None


def coerce_answer(question_type: str, raw: Any) -> SubmittedAnswer | None:
    """Turn a raw JSON value into the variant for `question_type`."""
    if raw is None:
        return None

    if question_type in ("true_false", "single_choice"):
        text = _scalar_text(raw)
        return ChoiceAnswer(option_id=text.strip()) if text is not None else None

    if question_type == "multiple_choice":
        if not isinstance(raw, (list, tuple)) or not raw:
            return None
        ids: set[str] = set()
        for item in raw:
            text = _scalar_text(item)
            if text is None:
                return None
            ids.add(text.strip())
        return MultiChoiceAnswer(option_ids=frozenset(ids))

    if question_type == "fill_blank":
        text = _scalar_text(raw)
        return TextAnswer(text=text) if text is not None else None

    return None
