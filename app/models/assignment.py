from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID, uuid4

ASSIGNMENT_STATUSES: tuple[str, ...] = ("not_started", "in_progress", "completed")


@dataclass(frozen=True, slots=True)
class QuizAssignment:
    """One student bound to one quiz; the only row scoring mutates."""

    id: UUID
    quiz_id: UUID
    student_id: UUID
    attempt_count: int = 0
    status: str = "not_started"  # not_started|in_progress|completed
    last_history_id: UUID | None = None

    @staticmethod
    def new(*, quiz_id: UUID, student_id: UUID) -> QuizAssignment:
        return QuizAssignment(id=uuid4(), quiz_id=quiz_id, student_id=student_id)


@dataclass(frozen=True, slots=True)
class AttemptHistory:
    """Append-only record of one scoring run. Never updated after insert."""

    id: UUID
    assignment_id: UUID
    student_id: UUID
    attempt_number: int
    total_score: int
    rate_percent: float
    status: str  # passed|failed
    passed_question_ids: tuple[UUID, ...] = ()
    failed_question_ids: tuple[UUID, ...] = ()
    student_answers: dict[str, Any] = field(default_factory=dict)
    submission_time: int = 0  # seconds the student spent
    feedback: str | None = None
    created_at: int = 0

    @property
    def passed(self) -> bool:
        return self.status == "passed"
