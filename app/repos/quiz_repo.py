from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol
from uuid import UUID

from app.db.engine import async_session_factory
from app.models.question import Question
from app.models.quiz import Quiz


class QuizRepo(Protocol):
    async def get_quiz(self, quiz_id: UUID) -> Quiz | None: ...
    async def get_by_generation_id(self, generation_id: UUID) -> Quiz | None: ...
    async def get_questions(self, question_ids: Sequence[UUID]) -> list[Question]: ...
    async def add_quiz(self, quiz: Quiz, questions: Sequence[Question]) -> Quiz: ...


class InMemoryQuizRepo:
    def __init__(self) -> None:
        self._quizzes: dict[UUID, Quiz] = {}
        self._questions: dict[UUID, Question] = {}

    async def get_quiz(self, quiz_id: UUID) -> Quiz | None:
        return self._quizzes.get(quiz_id)

    async def get_by_generation_id(self, generation_id: UUID) -> Quiz | None:
        for quiz in self._quizzes.values():
            if quiz.generation_id == generation_id:
                return quiz
        return None

    async def get_questions(self, question_ids: Sequence[UUID]) -> list[Question]:
        """Questions in the requested order; unknown ids are skipped."""
        return [self._questions[q] for q in question_ids if q in self._questions]

    async def add_quiz(self, quiz: Quiz, questions: Sequence[Question]) -> Quiz:
        """Persist a quiz with its questions.

        A second quiz for the same generation_id is not stored; the
        existing one is returned instead.
        """
        if quiz.generation_id is not None:
            existing = await self.get_by_generation_id(quiz.generation_id)
            if existing is not None:
                return existing
        for question in questions:
            self._questions[question.id] = question
        self._quizzes[quiz.id] = quiz
        return quiz


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if async_session_factory is not None:
    from app.repos.pg_quiz_repo import PgQuizRepo

    quiz_repo: QuizRepo = PgQuizRepo(async_session_factory)
else:
    quiz_repo = InMemoryQuizRepo()
