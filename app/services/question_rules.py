"""Answer-configuration rules per question type.

A question is only gradable when its options match its type:

  true_false       exactly 2 options, exactly 1 correct
  single_choice    2..6 options, exactly 1 correct
  multiple_choice  2..6 options, at least 1 correct
  fill_blank       1..6 options, every option correct
"""

from __future__ import annotations

from collections.abc import Sequence

from app.models.question import DIFFICULTIES, QUESTION_TYPES, AnswerOption

MAX_OPTIONS = 6
MIN_POINTS = 1
MAX_POINTS = 100


def answers_error(question_type: str, answers: Sequence[AnswerOption]) -> str | None:
    """Return why `answers` is invalid for `question_type`, or None if valid."""
    if question_type not in QUESTION_TYPES:
        return f"unknown question type {question_type!r}"

    count = len(answers)
    correct = sum(1 for a in answers if a.is_correct)

    if count > MAX_OPTIONS:
        return f"at most {MAX_OPTIONS} answers allowed"

    if question_type == "true_false":
        if count != 2 or correct != 1:
            return "true_false needs exactly 2 answers with exactly 1 correct"
    elif question_type == "single_choice":
        if count < 2 or correct != 1:
            return "single_choice needs 2-6 answers with exactly 1 correct"
    elif question_type == "multiple_choice":
        if count < 2 or correct < 1:
            return "multiple_choice needs 2-6 answers with at least 1 correct"
    elif question_type == "fill_blank":
        if count < 1 or correct != count:
            return "fill_blank needs at least 1 answer and every answer must be correct"
    return None


def question_errors(
    *,
    question_type: str,
    answers: Sequence[AnswerOption],
    points: int,
    difficulty: str,
    title: str,
) -> dict[str, str]:
    """Field-level problems with a question, keyed like the request body."""
    errors: dict[str, str] = {}
    if not title.strip():
        errors["title"] = "title is required"
    if difficulty not in DIFFICULTIES:
        errors["difficulty"] = "difficulty must be easy, medium, or hard"
    if not MIN_POINTS <= points <= MAX_POINTS:
        errors["points"] = f"points must be between {MIN_POINTS} and {MAX_POINTS}"
    if any(not a.text.strip() for a in answers):
        errors["answers"] = "answer text is required"
    else:
        problem = answers_error(question_type, answers)
        if problem is not None:
            errors["type" if question_type not in QUESTION_TYPES else "answers"] = (
                problem
            )
    return errors
