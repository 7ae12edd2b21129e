"""Per-question-type grading rules.

Pure functions over a question snapshot: no I/O, no clock, no state.
Identical (question, submission) pairs always grade identically.

  true_false / single_choice  submitted id == id of the correct option
  multiple_choice             submitted id set == correct id set
  fill_blank                  submitted text == text of any correct option

All comparisons are case-insensitive.  Unknown question types and
absent or malformed submissions are incorrect and earn nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from app.models.question import Question
from app.models.submission import (
    ChoiceAnswer,
    MultiChoiceAnswer,
    SubmittedAnswer,
    TextAnswer,
    coerce_answer,
)


@dataclass(frozen=True, slots=True)
class GradeResult:
    is_correct: bool
    points_awarded: int = 0


_INCORRECT = GradeResult(is_correct=False, points_awarded=0)


def _fold(value: str) -> str:
    return value.strip().casefold()


def _grade_choice(question: Question, answer: ChoiceAnswer) -> bool:
    submitted = _fold(answer.option_id)
    return any(_fold(opt.id) == submitted for opt in question.correct_options())


def _grade_multi(question: Question, answer: MultiChoiceAnswer) -> bool:
    expected = {_fold(opt.id) for opt in question.correct_options()}
    submitted = {_fold(i) for i in answer.option_ids}
    return bool(expected) and submitted == expected


def _grade_text(question: Question, answer: TextAnswer) -> bool:
    submitted = _fold(answer.text)
    return any(_fold(opt.text) == submitted for opt in question.correct_options())


def grade_answer(question: Question, answer: SubmittedAnswer | None) -> GradeResult:
    """Grade an already-coerced answer against `question`."""
    if answer is None:
        return _INCORRECT

    if question.type in ("true_false", "single_choice"):
        correct = isinstance(answer, ChoiceAnswer) and _grade_choice(question, answer)
    elif question.type == "multiple_choice":
        correct = isinstance(answer, MultiChoiceAnswer) and _grade_multi(
            question, answer
        )
    elif question.type == "fill_blank":
        correct = isinstance(answer, TextAnswer) and _grade_text(question, answer)
    else:
        correct = False

    if not correct:
        return _INCORRECT
    return GradeResult(is_correct=True, points_awarded=question.points)


def grade(question: Question, submitted_value: Any) -> GradeResult:
    """Grade a raw submitted JSON value against `question`."""
    return grade_answer(question, coerce_answer(question.type, submitted_value))
