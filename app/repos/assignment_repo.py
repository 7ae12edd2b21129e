"""Quiz assignments and their append-only attempt history.

Both live in one repo because recording an attempt touches both in one
transaction: the history row is inserted and the assignment's
attempt_count / status / last_history_id are updated together, or not
at all.

record_attempt is a compare-and-set on attempt_count.  The caller reads
the assignment, scores with attempt_number = attempt_count + 1, and
passes the count it read.  If another submission got there first the
count no longer matches and ConcurrencyConflict is raised, so two
histories can never share an attempt number.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.core.errors import ConcurrencyConflict, NotFoundError
from app.db.engine import async_session_factory
from app.models.assignment import AttemptHistory, QuizAssignment


class AssignmentRepo(Protocol):
    async def get(self, assignment_id: UUID) -> QuizAssignment | None: ...
    async def find(self, student_id: UUID, quiz_id: UUID) -> QuizAssignment | None: ...
    async def add(self, assignment: QuizAssignment) -> QuizAssignment: ...
    async def list_for_student(self, student_id: UUID) -> list[QuizAssignment]: ...
    async def set_status(
        self, assignment_id: UUID, status: str
    ) -> QuizAssignment | None: ...
    async def record_attempt(
        self, history: AttemptHistory, expected_attempt_count: int
    ) -> QuizAssignment: ...
    async def get_history(self, history_id: UUID) -> AttemptHistory | None: ...
    async def list_histories(self, assignment_id: UUID) -> list[AttemptHistory]: ...


class InMemoryAssignmentRepo:
    """In-memory repo for tests and local dev.

    There is no await between the attempt_count check and the write in
    record_attempt, so the compare-and-set is atomic on the event loop.
    """

    def __init__(self) -> None:
        self._assignments: dict[UUID, QuizAssignment] = {}
        self._histories: dict[UUID, AttemptHistory] = {}

    async def get(self, assignment_id: UUID) -> QuizAssignment | None:
        return self._assignments.get(assignment_id)

    async def find(self, student_id: UUID, quiz_id: UUID) -> QuizAssignment | None:
        for a in self._assignments.values():
            if a.student_id == student_id and a.quiz_id == quiz_id:
                return a
        return None

    async def add(self, assignment: QuizAssignment) -> QuizAssignment:
        """Store the assignment; one per (student, quiz) pair."""
        existing = await self.find(assignment.student_id, assignment.quiz_id)
        if existing is not None:
            return existing
        self._assignments[assignment.id] = assignment
        return assignment

    async def list_for_student(self, student_id: UUID) -> list[QuizAssignment]:
        return [a for a in self._assignments.values() if a.student_id == student_id]

    async def set_status(
        self, assignment_id: UUID, status: str
    ) -> QuizAssignment | None:
        current = self._assignments.get(assignment_id)
        if current is None:
            return None
        updated = replace(current, status=status)
        self._assignments[assignment_id] = updated
        return updated

    async def record_attempt(
        self, history: AttemptHistory, expected_attempt_count: int
    ) -> QuizAssignment:
        current = self._assignments.get(history.assignment_id)
        if current is None:
            raise NotFoundError("Quiz assignment", history.assignment_id)
        if current.attempt_count != expected_attempt_count:
            raise ConcurrencyConflict(history.assignment_id)

        updated = replace(
            current,
            attempt_count=expected_attempt_count + 1,
            status="completed",
            last_history_id=history.id,
        )
        self._histories[history.id] = history
        self._assignments[current.id] = updated
        return updated

    async def get_history(self, history_id: UUID) -> AttemptHistory | None:
        return self._histories.get(history_id)

    async def list_histories(self, assignment_id: UUID) -> list[AttemptHistory]:
        rows = [h for h in self._histories.values() if h.assignment_id == assignment_id]
        return sorted(rows, key=lambda h: h.attempt_number)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if async_session_factory is not None:
    from app.repos.pg_assignment_repo import PgAssignmentRepo

    assignment_repo: AssignmentRepo = PgAssignmentRepo(async_session_factory)
else:
    assignment_repo = InMemoryAssignmentRepo()
