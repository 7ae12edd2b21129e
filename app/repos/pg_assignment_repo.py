"""PostgreSQL implementation of AssignmentRepo."""

from __future__ import annotations

import json
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import ConcurrencyConflict, NotFoundError
from app.db.tables import AttemptHistoryRow, QuizAssignmentRow
from app.models.assignment import AttemptHistory, QuizAssignment


class PgAssignmentRepo:
    """Satisfies the AssignmentRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, assignment_id: UUID) -> QuizAssignment | None:
        async with self._session_factory() as session:
            row = await session.get(QuizAssignmentRow, assignment_id)
        return _row_to_assignment(row) if row is not None else None

    async def find(self, student_id: UUID, quiz_id: UUID) -> QuizAssignment | None:
        async with self._session_factory() as session:
            stmt = select(QuizAssignmentRow).where(
                QuizAssignmentRow.student_id == student_id,
                QuizAssignmentRow.quiz_id == quiz_id,
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
        return _row_to_assignment(row) if row is not None else None

    async def add(self, assignment: QuizAssignment) -> QuizAssignment:
        try:
            async with self._session_factory() as session, session.begin():
                session.add(
                    QuizAssignmentRow(
                        id=assignment.id,
                        quiz_id=assignment.quiz_id,
                        student_id=assignment.student_id,
                        attempt_count=assignment.attempt_count,
                        status=assignment.status,
                        last_history_id=assignment.last_history_id,
                    )
                )
        except IntegrityError:
            # unique (student_id, quiz_id): already assigned
            existing = await self.find(assignment.student_id, assignment.quiz_id)
            if existing is None:
                raise
            return existing
        return assignment

    async def list_for_student(self, student_id: UUID) -> list[QuizAssignment]:
        async with self._session_factory() as session:
            stmt = select(QuizAssignmentRow).where(
                QuizAssignmentRow.student_id == student_id
            )
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_assignment(r) for r in rows]

    async def set_status(
        self, assignment_id: UUID, status: str
    ) -> QuizAssignment | None:
        async with self._session_factory() as session, session.begin():
            stmt = (
                update(QuizAssignmentRow)
                .where(QuizAssignmentRow.id == assignment_id)
                .values(status=status)
                .returning(QuizAssignmentRow)
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_assignment(row) if row is not None else None

    async def record_attempt(
        self, history: AttemptHistory, expected_attempt_count: int
    ) -> QuizAssignment:
        try:
            async with self._session_factory() as session, session.begin():
                # Atomic increment guarded by the count the caller scored against.
                stmt = (
                    update(QuizAssignmentRow)
                    .where(
                        QuizAssignmentRow.id == history.assignment_id,
                        QuizAssignmentRow.attempt_count == expected_attempt_count,
                    )
                    .values(
                        attempt_count=QuizAssignmentRow.attempt_count + 1,
                        status="completed",
                        last_history_id=history.id,
                    )
                    .returning(QuizAssignmentRow)
                )
                row = (await session.execute(stmt)).scalar_one_or_none()
                if row is None:
                    if await session.get(QuizAssignmentRow, history.assignment_id):
                        raise ConcurrencyConflict(history.assignment_id)
                    raise NotFoundError("Quiz assignment", history.assignment_id)
                updated = _row_to_assignment(row)
                session.add(_history_to_row(history))
        except IntegrityError:
            # unique (assignment_id, attempt_number) backs up the CAS
            raise ConcurrencyConflict(history.assignment_id) from None
        return updated

    async def get_history(self, history_id: UUID) -> AttemptHistory | None:
        async with self._session_factory() as session:
            row = await session.get(AttemptHistoryRow, history_id)
        return _row_to_history(row) if row is not None else None

    async def list_histories(self, assignment_id: UUID) -> list[AttemptHistory]:
        async with self._session_factory() as session:
            stmt = (
                select(AttemptHistoryRow)
                .where(AttemptHistoryRow.assignment_id == assignment_id)
                .order_by(AttemptHistoryRow.attempt_number)
            )
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_history(r) for r in rows]


def _row_to_assignment(row: QuizAssignmentRow) -> QuizAssignment:
    return QuizAssignment(
        id=row.id,
        quiz_id=row.quiz_id,
        student_id=row.student_id,
        attempt_count=row.attempt_count,
        status=row.status,
        last_history_id=row.last_history_id,
    )


def _history_to_row(history: AttemptHistory) -> AttemptHistoryRow:
    return AttemptHistoryRow(
        id=history.id,
        assignment_id=history.assignment_id,
        student_id=history.student_id,
        attempt_number=history.attempt_number,
        total_score=history.total_score,
        rate_percent=history.rate_percent,
        status=history.status,
        passed_question_ids=list(history.passed_question_ids),
        failed_question_ids=list(history.failed_question_ids),
        student_answers_json=json.dumps(history.student_answers),
        submission_time=history.submission_time,
        feedback=history.feedback,
        created_at=history.created_at,
    )


def _row_to_history(row: AttemptHistoryRow) -> AttemptHistory:
    return AttemptHistory(
        id=row.id,
        assignment_id=row.assignment_id,
        student_id=row.student_id,
        attempt_number=row.attempt_number,
        total_score=row.total_score,
        rate_percent=row.rate_percent,
        status=row.status,
        passed_question_ids=tuple(row.passed_question_ids or ()),
        failed_question_ids=tuple(row.failed_question_ids or ()),
        student_answers=json.loads(row.student_answers_json),
        submission_time=row.submission_time,
        feedback=row.feedback,
        created_at=row.created_at,
    )
