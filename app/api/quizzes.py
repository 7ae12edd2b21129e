"""Quiz endpoints: authoring, assignment, submission, history, AI generation.

  POST /v1/quizzes                         create a quiz (admin)
  POST /v1/quizzes/{quiz_id}/assign        assign to a student (admin, parent)
  POST /v1/quizzes/{assignment_id}/make    submit answers (student)
  GET  /v1/quizzes/history/{history_id}    one attempt with its quiz snapshot
  POST /v1/quizzes/generate_ai             start AI generation -> 202 (admin)
  POST /v1/quizzes/ai-save                 save a generation result (admin)

Submitting answers:
  Client -> POST /v1/quizzes/{assignment_id}/make {answers, submissionTime}
  -> grade every question, record attempt N+1
  -> enqueue guardian notification (best-effort)
  -> 200 attempt summary
"""

from __future__ import annotations

import logging
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from app.api.dependencies import (
    require_any_role,
    require_role,
    require_user,
    user_id_of,
)
from app.core.config import SETTINGS
from app.core.errors import NotFoundError, ValidationError
from app.models.assignment import AttemptHistory, QuizAssignment
from app.models.generation import GenerationParams
from app.models.principal import Principal
from app.models.question import Question
from app.models.quiz import Quiz
from app.repos.assignment_repo import assignment_repo
from app.repos.generation_repo import generation_repo
from app.repos.quiz_repo import quiz_repo
from app.repos.user_repo import user_repo
from app.services.ai_client import build_model_client
from app.services.notifications import NotificationDispatcher
from app.services.question_rules import MAX_POINTS
from app.services.quiz_catalog import AnswerDraft, QuestionDraft, quiz_catalog
from app.services.quiz_generation import request_generation
from app.services.scoring import ScoringService
from app.services.task_queue import task_queue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/quizzes", tags=["quizzes"])

notification_dispatcher = NotificationDispatcher(
    users=user_repo,
    queue=task_queue,
    timeout_seconds=SETTINGS.notify_timeout_seconds,
)

scoring_service = ScoringService(
    quizzes=quiz_repo,
    assignments=assignment_repo,
    notifier=notification_dispatcher,
    feedback_client=(
        build_model_client(SETTINGS) if SETTINGS.ai_feedback_enabled else None
    ),
    feedback_timeout=SETTINGS.ai_timeout_seconds,
)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class AnswerIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    is_correct: bool = Field(default=False, alias="isCorrect")
    explanation: str | None = None


class QuestionIn(BaseModel):
    title: str
    content: str = ""
    type: str
    answers: list[AnswerIn]
    points: int = 1
    difficulty: str = "medium"
    explanation: str | None = None

    def to_draft(self) -> QuestionDraft:
        return QuestionDraft(
            title=self.title,
            content=self.content or self.title,
            type=self.type,
            answers=tuple(
                AnswerDraft(
                    text=a.text, is_correct=a.is_correct, explanation=a.explanation
                )
                for a in self.answers
            ),
            points=self.points,
            difficulty=self.difficulty,
            explanation=self.explanation,
        )


class CreateQuizRequest(BaseModel):
    title: str
    description: str | None = None
    subject: str = ""
    passing_score: int = 70
    max_attempts: int = 1
    questions: list[QuestionIn]


class QuizOut(BaseModel):
    id: str
    title: str
    subject: str
    description: str | None
    total_points: int
    passing_score: int
    max_attempts: int
    question_ids: list[str]
    generation_id: str | None


class AssignRequest(BaseModel):
    student_id: UUID


class AssignmentOut(BaseModel):
    id: str
    quiz_id: str
    student_id: str
    attempt_count: int
    status: str
    last_history_id: str | None


class MakeQuizRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    answers: dict[str, Any]
    submission_time: int = Field(default=0, ge=0, alias="submissionTime")


class AttemptOut(BaseModel):
    id: str
    assignment_id: str
    attempt_number: int
    total_score: int
    rate_percent: float
    status: str
    passed_question_ids: list[str]
    failed_question_ids: list[str]
    submission_time: int
    feedback: str | None


class AnswerOut(BaseModel):
    id: str
    text: str
    is_correct: bool
    explanation: str | None


class QuestionOut(BaseModel):
    id: str
    title: str
    content: str
    type: str
    difficulty: str
    points: int
    answers: list[AnswerOut]


class QuizSnapshotOut(QuizOut):
    questions: list[QuestionOut]


class HistoryOut(AttemptOut):
    student_id: str
    student_answers: dict[str, Any]
    created_at: int
    quiz: QuizSnapshotOut


class GenerateRequest(BaseModel):
    topic: str = Field(min_length=1, max_length=200)
    title: str | None = None
    total_questions: int = Field(ge=1, le=50)
    easy_questions: int = Field(default=0, ge=0)
    medium_questions: int = Field(default=0, ge=0)
    hard_questions: int = Field(default=0, ge=0)
    total_points: int = Field(ge=1)
    passing_score: int = Field(default=70, ge=0, le=100)
    max_attempts: int = Field(default=1, ge=1, le=10)


class GenerateAccepted(BaseModel):
    ledger_id: str
    status: str


class AiSaveRequest(BaseModel):
    ledger_id: UUID
    questions: list[QuestionIn]


class AiSaveOut(BaseModel):
    ledger_id: str
    quiz: QuizOut


# ---------------------------------------------------------------------------
# Converters
# ---------------------------------------------------------------------------


def _quiz_out(quiz: Quiz) -> QuizOut:
    return QuizOut(
        id=str(quiz.id),
        title=quiz.title,
        subject=quiz.subject,
        description=quiz.description,
        total_points=quiz.total_points,
        passing_score=quiz.passing_score,
        max_attempts=quiz.max_attempts,
        question_ids=[str(q) for q in quiz.question_ids],
        generation_id=str(quiz.generation_id) if quiz.generation_id else None,
    )


def _question_out(question: Question) -> QuestionOut:
    return QuestionOut(
        id=str(question.id),
        title=question.title,
        content=question.content,
        type=question.type,
        difficulty=question.difficulty,
        points=question.points,
        answers=[
            AnswerOut(
                id=a.id, text=a.text, is_correct=a.is_correct, explanation=a.explanation
            )
            for a in question.answers
        ],
    )


def _attempt_fields(history: AttemptHistory) -> dict[str, Any]:
    return {
        "id": str(history.id),
        "assignment_id": str(history.assignment_id),
        "attempt_number": history.attempt_number,
        "total_score": history.total_score,
        "rate_percent": history.rate_percent,
        "status": history.status,
        "passed_question_ids": [str(q) for q in history.passed_question_ids],
        "failed_question_ids": [str(q) for q in history.failed_question_ids],
        "submission_time": history.submission_time,
        "feedback": history.feedback,
    }


def assignment_out(assignment: QuizAssignment) -> AssignmentOut:
    return AssignmentOut(
        id=str(assignment.id),
        quiz_id=str(assignment.quiz_id),
        student_id=str(assignment.student_id),
        attempt_count=assignment.attempt_count,
        status=assignment.status,
        last_history_id=(
            str(assignment.last_history_id) if assignment.last_history_id else None
        ),
    )


async def _ensure_guardian(principal: Principal, student_id: UUID) -> None:
    """Parents may only act on their own children; admins on anyone."""
    if principal.is_admin():
        return
    child = await user_repo.get_by_id(student_id)
    if child is None or child.parent_id != principal.user_uuid():
        logger.warning(
            "Access denied: user=%s is not the guardian of student=%s",
            principal.user_id,
            student_id,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not the guardian of this student",
        )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("", response_model=QuizOut, status_code=status.HTTP_201_CREATED)
async def create_quiz(
    body: CreateQuizRequest,
    principal: Annotated[Principal, Depends(require_role("admin"))],
) -> QuizOut:
    quiz = await quiz_catalog.create_quiz(
        title=body.title,
        questions=[q.to_draft() for q in body.questions],
        created_by=principal.user_uuid(),
        subject=body.subject,
        description=body.description,
        passing_score=body.passing_score,
        max_attempts=body.max_attempts,
    )
    return _quiz_out(quiz)


@router.post(
    "/generate_ai",
    response_model=GenerateAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def generate_ai(
    body: GenerateRequest,
    principal: Annotated[Principal, Depends(require_role("admin"))],
) -> GenerateAccepted:
    """Start AI generation.  Poll GET /v1/ai/generate-process/{ledger_id}."""
    by_difficulty = body.easy_questions + body.medium_questions + body.hard_questions
    errors: dict[str, str] = {}
    if by_difficulty != body.total_questions:
        errors["total_questions"] = (
            "easy_questions + medium_questions + hard_questions "
            "must equal total_questions"
        )
    if body.total_points < body.total_questions:
        errors["total_points"] = "every question must be worth at least 1 point"
    elif body.total_points > body.total_questions * MAX_POINTS:
        errors["total_points"] = (
            f"no question may be worth more than {MAX_POINTS} points"
        )
    if errors:
        raise ValidationError("Invalid generation request", errors)

    entry = await request_generation(
        ledger=generation_repo,
        queue=task_queue,
        user_id=user_id_of(principal),
        params=GenerationParams(
            topic=body.topic.strip(),
            total_questions=body.total_questions,
            easy_questions=body.easy_questions,
            medium_questions=body.medium_questions,
            hard_questions=body.hard_questions,
            total_points=body.total_points,
            passing_score=body.passing_score,
            max_attempts=body.max_attempts,
        ),
        provider=SETTINGS.ai_provider,
        model_name=SETTINGS.ai_model,
        title=(body.title or f"AI quiz: {body.topic}").strip()[:200],
    )
    return GenerateAccepted(ledger_id=str(entry.id), status=entry.status)


@router.post("/ai-save", response_model=AiSaveOut)
async def ai_save(
    body: AiSaveRequest,
    _principal: Annotated[Principal, Depends(require_role("admin"))],
) -> AiSaveOut:
    """Save generated questions for a ledger entry. Safe to call twice."""
    quiz = await quiz_catalog.save_generated_quiz(
        body.ledger_id, [q.to_draft() for q in body.questions]
    )
    return AiSaveOut(ledger_id=str(body.ledger_id), quiz=_quiz_out(quiz))


@router.get("/history/{history_id}", response_model=HistoryOut)
async def get_history(
    history_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    child_id: Annotated[UUID | None, Query()] = None,
) -> HistoryOut:
    """One attempt with the quiz it was scored against.

    Students see their own attempts.  Parents pass child_id and see
    their children's attempts.  Admins see everything.
    """
    history = await assignment_repo.get_history(history_id)

    if principal.is_admin():
        owner = None
    elif principal.is_parent():
        if child_id is None:
            raise ValidationError(
                "child_id is required for parents", {"child_id": "required"}
            )
        await _ensure_guardian(principal, child_id)
        owner = child_id
    else:
        owner = principal.user_uuid()

    if history is None or (owner is not None and history.student_id != owner):
        raise NotFoundError("Attempt history", history_id)

    assignment = await assignment_repo.get(history.assignment_id)
    quiz = await quiz_repo.get_quiz(assignment.quiz_id) if assignment else None
    if quiz is None:
        raise NotFoundError("Quiz", history.assignment_id)
    questions = await quiz_repo.get_questions(quiz.question_ids)

    return HistoryOut(
        **_attempt_fields(history),
        student_id=str(history.student_id),
        student_answers=history.student_answers,
        created_at=history.created_at,
        quiz=QuizSnapshotOut(
            **_quiz_out(quiz).model_dump(),
            questions=[_question_out(q) for q in questions],
        ),
    )


@router.post("/{quiz_id}/assign", response_model=AssignmentOut)
async def assign_quiz(
    quiz_id: UUID,
    body: AssignRequest,
    principal: Annotated[Principal, Depends(require_any_role({"admin", "parent"}))],
) -> AssignmentOut:
    await _ensure_guardian(principal, body.student_id)
    assignment = await quiz_catalog.assign_quiz(quiz_id, body.student_id)
    return assignment_out(assignment)


@router.post("/{assignment_id}/make", response_model=AttemptOut)
async def make_quiz(
    assignment_id: UUID,
    body: MakeQuizRequest,
    principal: Annotated[Principal, Depends(require_role("student"))],
) -> AttemptOut:
    history = await scoring_service.submit(
        assignment_id, user_id_of(principal), body.answers, body.submission_time
    )
    return AttemptOut(**_attempt_fields(history))
