from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Quiz:
    id: UUID
    title: str
    question_ids: tuple[UUID, ...]  # stored order == grading order
    total_points: int
    passing_score: int = 70  # percentage threshold, 0..100
    max_attempts: int = 1
    subject: str = ""
    description: str | None = None
    created_by: UUID | None = None
    generation_id: UUID | None = None  # ledger entry that produced this quiz
    created_at: int = 0

    @staticmethod
    def new(
        *,
        title: str,
        question_ids: tuple[UUID, ...],
        total_points: int,
        passing_score: int = 70,
        max_attempts: int = 1,
        subject: str = "",
        description: str | None = None,
        created_by: UUID | None = None,
        generation_id: UUID | None = None,
        created_at: int = 0,
    ) -> Quiz:
        return Quiz(
            id=uuid4(),
            title=title,
            question_ids=question_ids,
            total_points=total_points,
            passing_score=passing_score,
            max_attempts=max_attempts,
            subject=subject,
            description=description,
            created_by=created_by,
            generation_id=generation_id,
            created_at=created_at,
        )
