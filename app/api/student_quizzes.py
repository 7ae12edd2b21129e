"""A student's own quiz assignments.

  GET   /v1/student-quizzes                          list my assignments
  PATCH /v1/student-quizzes/{assignment_id}/start    begin an attempt
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.dependencies import require_role, user_id_of
from app.api.quizzes import AssignmentOut, assignment_out
from app.models.principal import Principal
from app.repos.quiz_repo import quiz_repo
from app.services.quiz_catalog import quiz_catalog

router = APIRouter(prefix="/v1/student-quizzes", tags=["student-quizzes"])


class StudentQuizOut(AssignmentOut):
    quiz_title: str | None
    max_attempts: int | None


@router.get("", response_model=list[StudentQuizOut])
async def list_my_quizzes(
    principal: Annotated[Principal, Depends(require_role("student"))],
) -> list[StudentQuizOut]:
    student_id = user_id_of(principal)
    out: list[StudentQuizOut] = []
    for assignment in await quiz_catalog.list_assignments(student_id):
        quiz = await quiz_repo.get_quiz(assignment.quiz_id)
        out.append(
            StudentQuizOut(
                **assignment_out(assignment).model_dump(),
                quiz_title=quiz.title if quiz else None,
                max_attempts=quiz.max_attempts if quiz else None,
            )
        )
    return out


@router.patch("/{assignment_id}/start", response_model=AssignmentOut)
async def start_quiz(
    assignment_id: UUID,
    principal: Annotated[Principal, Depends(require_role("student"))],
) -> AssignmentOut:
    student_id = user_id_of(principal)
    assignment = await quiz_catalog.start_attempt(assignment_id, student_id)
    return assignment_out(assignment)
