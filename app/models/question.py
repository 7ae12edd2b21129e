from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from uuid import UUID, uuid4

QuestionType = Literal["true_false", "single_choice", "multiple_choice", "fill_blank"]
Difficulty = Literal["easy", "medium", "hard"]

QUESTION_TYPES: tuple[str, ...] = (
    "true_false",
    "single_choice",
    "multiple_choice",
    "fill_blank",
)
DIFFICULTIES: tuple[str, ...] = ("easy", "medium", "hard")


@dataclass(frozen=True, slots=True)
class AnswerOption:
    id: str
    text: str
    is_correct: bool = False
    explanation: str | None = None

    @staticmethod
    def new(
        *, text: str, is_correct: bool = False, explanation: str | None = None
    ) -> AnswerOption:
        return AnswerOption(
            id=uuid4().hex, text=text, is_correct=is_correct, explanation=explanation
        )


@dataclass(frozen=True, slots=True)
class Question:
    """Shared reference data, read-only while a quiz is being graded."""

    id: UUID
    title: str
    content: str
    type: str  # true_false|single_choice|multiple_choice|fill_blank
    answers: tuple[AnswerOption, ...]
    points: int = 1
    difficulty: str = "medium"  # easy|medium|hard
    explanation: str | None = None
    created_by: UUID | None = None

    @staticmethod
    def new(
        *,
        title: str,
        content: str,
        type: str,
        answers: tuple[AnswerOption, ...],
        points: int = 1,
        difficulty: str = "medium",
        explanation: str | None = None,
        created_by: UUID | None = None,
    ) -> Question:
        return Question(
            id=uuid4(),
            title=title,
            content=content,
            type=type,
            answers=answers,
            points=points,
            difficulty=difficulty,
            explanation=explanation,
            created_by=created_by,
        )

    def correct_options(self) -> tuple[AnswerOption, ...]:
        return tuple(a for a in self.answers if a.is_correct)
