"""PostgreSQL implementation of QuizRepo."""

from __future__ import annotations

import json
from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.tables import QuestionRow, QuizQuestionRow, QuizRow
from app.models.question import AnswerOption, Question
from app.models.quiz import Quiz


class PgQuizRepo:
    """Satisfies the QuizRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_quiz(self, quiz_id: UUID) -> Quiz | None:
        async with self._session_factory() as session:
            return await _load_quiz(session, QuizRow.id == quiz_id)

    async def get_by_generation_id(self, generation_id: UUID) -> Quiz | None:
        async with self._session_factory() as session:
            return await _load_quiz(session, QuizRow.generation_id == generation_id)

    async def get_questions(self, question_ids: Sequence[UUID]) -> list[Question]:
        if not question_ids:
            return []
        async with self._session_factory() as session:
            stmt = select(QuestionRow).where(QuestionRow.id.in_(list(question_ids)))
            rows = (await session.execute(stmt)).scalars().all()
        by_id = {r.id: _row_to_question(r) for r in rows}
        return [by_id[q] for q in question_ids if q in by_id]

    async def add_quiz(self, quiz: Quiz, questions: Sequence[Question]) -> Quiz:
        try:
            async with self._session_factory() as session, session.begin():
                session.add_all(_question_to_row(q) for q in questions)
                session.add(
                    QuizRow(
                        id=quiz.id,
                        title=quiz.title,
                        subject=quiz.subject,
                        description=quiz.description,
                        total_points=quiz.total_points,
                        passing_score=quiz.passing_score,
                        max_attempts=quiz.max_attempts,
                        created_by=quiz.created_by,
                        generation_id=quiz.generation_id,
                        created_at=quiz.created_at,
                    )
                )
                # quiz row must exist before the link rows reference it
                await session.flush()
                session.add_all(
                    QuizQuestionRow(quiz_id=quiz.id, question_id=qid, position=i)
                    for i, qid in enumerate(quiz.question_ids)
                )
        except IntegrityError:
            # Unique generation_id: another delivery already saved this quiz.
            if quiz.generation_id is None:
                raise
            existing = await self.get_by_generation_id(quiz.generation_id)
            if existing is None:
                raise
            return existing
        return quiz


async def _load_quiz(session: AsyncSession, condition) -> Quiz | None:
    row = (await session.execute(select(QuizRow).where(condition))).scalar_one_or_none()
    if row is None:
        return None
    stmt = (
        select(QuizQuestionRow.question_id)
        .where(QuizQuestionRow.quiz_id == row.id)
        .order_by(QuizQuestionRow.position)
    )
    question_ids = tuple((await session.execute(stmt)).scalars().all())
    return Quiz(
        id=row.id,
        title=row.title,
        question_ids=question_ids,
        total_points=row.total_points,
        passing_score=row.passing_score,
        max_attempts=row.max_attempts,
        subject=row.subject,
        description=row.description,
        created_by=row.created_by,
        generation_id=row.generation_id,
        created_at=row.created_at,
    )


def _question_to_row(question: Question) -> QuestionRow:
    return QuestionRow(
        id=question.id,
        title=question.title,
        content=question.content,
        type=question.type,
        difficulty=question.difficulty,
        points=question.points,
        answers_json=json.dumps(
            [
                {
                    "id": a.id,
                    "text": a.text,
                    "is_correct": a.is_correct,
                    "explanation": a.explanation,
                }
                for a in question.answers
            ]
        ),
        explanation=question.explanation,
        created_by=question.created_by,
    )


def _row_to_question(row: QuestionRow) -> Question:
    answers = tuple(
        AnswerOption(
            id=a["id"],
            text=a["text"],
            is_correct=bool(a.get("is_correct", False)),
            explanation=a.get("explanation"),
        )
        for a in json.loads(row.answers_json)
    )
    return Question(
        id=row.id,
        title=row.title,
        content=row.content,
        type=row.type,
        answers=answers,
        points=row.points,
        difficulty=row.difficulty,
        explanation=row.explanation,
        created_by=row.created_by,
    )
