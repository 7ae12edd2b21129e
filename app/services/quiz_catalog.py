"""Quiz catalog: creating quizzes, saving generated ones, assigning them.

All writes to quizzes and assignments outside of scoring go through
QuizCatalog.  It validates drafts against the per-type answer rules in
question_rules and turns them into stored Question/Quiz snapshots.

save_generated_quiz is the single path by which an AI generation result
becomes a quiz, whether it arrives from the worker or from a client
calling POST /v1/quizzes/ai-save.  It is idempotent by ledger id.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from uuid import UUID

from app.core.errors import (
    AttemptLimitReached,
    GenerationStateConflict,
    NotFoundError,
    ValidationError,
)
from app.models.assignment import QuizAssignment
from app.models.question import AnswerOption, Question
from app.models.quiz import Quiz
from app.repos.assignment_repo import AssignmentRepo, assignment_repo
from app.repos.generation_repo import GenerationRepo, generation_repo
from app.repos.quiz_repo import QuizRepo, quiz_repo
from app.services.question_rules import question_errors

logger = logging.getLogger(__name__)

MAX_ATTEMPTS_LIMIT = 10


@dataclass(frozen=True, slots=True)
class AnswerDraft:
    text: str
    is_correct: bool = False
    explanation: str | None = None


@dataclass(frozen=True, slots=True)
class QuestionDraft:
    """A question as submitted, before ids are assigned."""

    title: str
    content: str
    type: str
    answers: tuple[AnswerDraft, ...]
    points: int = 1
    difficulty: str = "medium"
    explanation: str | None = None


def build_questions(
    drafts: Sequence[QuestionDraft], *, created_by: UUID | None = None
) -> list[Question]:
    """Validate drafts and give them ids. Raises ValidationError."""
    if not drafts:
        raise ValidationError(
            "A quiz needs at least one question",
            {"questions": "at least one question is required"},
        )

    errors: dict[str, str] = {}
    questions: list[Question] = []
    for i, draft in enumerate(drafts):
        answers = tuple(
            AnswerOption.new(
                text=a.text.strip(), is_correct=a.is_correct, explanation=a.explanation
            )
            for a in draft.answers
        )
        for field_name, message in question_errors(
            question_type=draft.type,
            answers=answers,
            points=draft.points,
            difficulty=draft.difficulty,
            title=draft.title,
        ).items():
            errors[f"questions[{i}].{field_name}"] = message
        questions.append(
            Question.new(
                title=draft.title.strip(),
                content=draft.content,
                type=draft.type,
                answers=answers,
                points=draft.points,
                difficulty=draft.difficulty,
                explanation=draft.explanation,
                created_by=created_by,
            )
        )

    if errors:
        raise ValidationError("Invalid questions", errors)
    return questions


class QuizCatalog:
    def __init__(
        self,
        *,
        quizzes: QuizRepo,
        assignments: AssignmentRepo,
        ledger: GenerationRepo,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._quizzes = quizzes
        self._assignments = assignments
        self._ledger = ledger
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    async def create_quiz(
        self,
        *,
        title: str,
        questions: Sequence[QuestionDraft],
        created_by: UUID | None = None,
        subject: str = "",
        description: str | None = None,
        passing_score: int = 70,
        max_attempts: int = 1,
        generation_id: UUID | None = None,
    ) -> Quiz:
        errors: dict[str, str] = {}
        if not title.strip():
            errors["title"] = "title is required"
        if not 0 <= passing_score <= 100:
            errors["passing_score"] = "passing_score must be between 0 and 100"
        if not 1 <= max_attempts <= MAX_ATTEMPTS_LIMIT:
            errors["max_attempts"] = (
                f"max_attempts must be between 1 and {MAX_ATTEMPTS_LIMIT}"
            )
        if errors:
            raise ValidationError("Invalid quiz", errors)

        built = build_questions(questions, created_by=created_by)
        total_points = sum(q.points for q in built)
        if total_points <= 0:
            # a zero-point quiz has no pass rate
            raise ValidationError(
                "A quiz must be worth more than zero points",
                {"questions": "total points must be greater than zero"},
            )

        quiz = Quiz.new(
            title=title.strip(),
            question_ids=tuple(q.id for q in built),
            total_points=total_points,
            passing_score=passing_score,
            max_attempts=max_attempts,
            subject=subject,
            description=description,
            created_by=created_by,
            generation_id=generation_id,
            created_at=self._now(),
        )
        saved = await self._quizzes.add_quiz(quiz, built)
        logger.info(
            "Quiz created quiz_id=%s questions=%d total_points=%d",
            saved.id,
            len(saved.question_ids),
            saved.total_points,
        )
        return saved

    async def save_generated_quiz(
        self,
        ledger_id: UUID,
        questions: Sequence[QuestionDraft],
        *,
        data_ai: str | None = None,
    ) -> Quiz:
        """Turn a generation result into a quiz and complete its ledger entry.

        completed entry -> the quiz already saved for it
        failed entry    -> GenerationStateConflict
        otherwise       -> quiz created, entry completed
        """
        entry = await self._ledger.get(ledger_id)
        if entry is None:
            raise NotFoundError("Generation request", ledger_id)
        if entry.status == "completed":
            return await self._existing_quiz(ledger_id)
        if entry.status == "failed":
            raise GenerationStateConflict(ledger_id, entry.status)

        target = entry.params.total_points
        actual = sum(q.points for q in questions)
        if questions and actual != target:
            raise ValidationError(
                "Question points do not add up to the requested total",
                {"questions": f"points sum to {actual}, expected {target}"},
            )

        quiz = await self.create_quiz(
            title=entry.title,
            questions=questions,
            created_by=entry.user_id,
            subject=entry.params.topic,
            passing_score=entry.params.passing_score,
            max_attempts=entry.params.max_attempts,
            generation_id=entry.id,
        )
        updated = await self._ledger.complete(
            ledger_id, quiz_id=quiz.id, data_ai=data_ai, now=self._now()
        )
        if updated is None:
            current = await self._ledger.get(ledger_id)
            if current is not None and current.status == "failed":
                logger.warning(
                    "Ledger entry failed while its quiz was saved ledger_id=%s",
                    ledger_id,
                )
                raise GenerationStateConflict(ledger_id, current.status)
        logger.info("Generated quiz saved ledger_id=%s quiz_id=%s", ledger_id, quiz.id)
        return quiz

    async def _existing_quiz(self, ledger_id: UUID) -> Quiz:
        quiz = await self._quizzes.get_by_generation_id(ledger_id)
        if quiz is None:
            raise NotFoundError("Quiz", ledger_id)
        logger.info("Generated quiz already saved ledger_id=%s", ledger_id)
        return quiz

    async def assign_quiz(self, quiz_id: UUID, student_id: UUID) -> QuizAssignment:
        """Assign a quiz to a student; returns the existing assignment if any."""
        if await self._quizzes.get_quiz(quiz_id) is None:
            raise NotFoundError("Quiz", quiz_id)
        return await self._assignments.add(
            QuizAssignment.new(quiz_id=quiz_id, student_id=student_id)
        )

    async def start_attempt(
        self, assignment_id: UUID, student_id: UUID
    ) -> QuizAssignment:
        assignment = await self._assignments.get(assignment_id)
        if assignment is None or assignment.student_id != student_id:
            raise NotFoundError("Quiz assignment", assignment_id)
        quiz = await self._quizzes.get_quiz(assignment.quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz", assignment.quiz_id)
        if assignment.attempt_count + 1 > quiz.max_attempts:
            raise AttemptLimitReached(quiz.max_attempts)

        updated = await self._assignments.set_status(assignment_id, "in_progress")
        if updated is None:
            raise NotFoundError("Quiz assignment", assignment_id)
        return updated

    async def list_assignments(self, student_id: UUID) -> list[QuizAssignment]:
        return await self._assignments.list_for_student(student_id)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

quiz_catalog = QuizCatalog(
    quizzes=quiz_repo, assignments=assignment_repo, ledger=generation_repo
)
