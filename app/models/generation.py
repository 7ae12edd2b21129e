from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any
from uuid import UUID, uuid4

GENERATION_STATUSES: tuple[str, ...] = (
    "not_started",
    "in_progress",
    "failed",
    "completed",
)
TERMINAL_STATUSES: frozenset[str] = frozenset({"failed", "completed"})


@dataclass(frozen=True, slots=True)
class GenerationParams:
    """What the model is asked to produce. Validated at the API boundary."""

    topic: str
    total_questions: int
    easy_questions: int
    medium_questions: int
    hard_questions: int
    total_points: int
    passing_score: int = 70
    max_attempts: int = 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> GenerationParams:
        return GenerationParams(
            topic=str(data["topic"]),
            total_questions=int(data["total_questions"]),
            easy_questions=int(data.get("easy_questions", 0)),
            medium_questions=int(data.get("medium_questions", 0)),
            hard_questions=int(data.get("hard_questions", 0)),
            total_points=int(data["total_points"]),
            passing_score=int(data.get("passing_score", 70)),
            max_attempts=int(data.get("max_attempts", 1)),
        )


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """Ledger entry tracking one AI quiz-generation job.

    not_started -> in_progress -> completed | failed.  Terminal states
    are final; a retry is a new entry.
    """

    id: UUID
    user_id: UUID
    provider: str
    model_name: str
    params: GenerationParams
    title: str = "AI quiz"
    status: str = "not_started"  # not_started|in_progress|failed|completed
    data_ai: str | None = None  # raw model output, kept for audit
    data_error: dict[str, Any] | None = None
    quiz_id: UUID | None = None
    created_at: int = 0
    updated_at: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @staticmethod
    def new(
        *,
        user_id: UUID,
        provider: str,
        model_name: str,
        params: GenerationParams,
        title: str = "AI quiz",
        now: int = 0,
    ) -> GenerationRequest:
        return GenerationRequest(
            id=uuid4(),
            user_id=user_id,
            provider=provider,
            model_name=model_name,
            params=params,
            title=title,
            created_at=now,
            updated_at=now,
        )
