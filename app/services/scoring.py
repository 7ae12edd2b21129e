"""Quiz scoring: grade a submission, record the attempt, tell the guardian.

score_attempt() is the pure half: quiz snapshot + raw answers in, score
out.  ScoringService.submit() wraps it with persistence.

CONCURRENT SUBMISSIONS
-----------------------
Two submissions for the same assignment may arrive at once (double
click, flaky network retry).  Each reads attempt_count, scores as
attempt_count + 1 and asks the repo to record the attempt only if the
count is still what it read.  The loser gets ConcurrencyConflict, re-reads
and scores again as the next attempt.  After MAX_RECORD_TRIES lost races
the conflict reaches the client as 409.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID, uuid4

from app.core.errors import ConcurrencyConflict, NotFoundError, ValidationError
from app.core.metrics import ATTEMPT_CONFLICTS, QUIZ_SUBMISSIONS
from app.models.assignment import AttemptHistory
from app.models.question import Question
from app.models.quiz import Quiz
from app.repos.assignment_repo import AssignmentRepo
from app.repos.quiz_repo import QuizRepo
from app.services.ai_client import ModelClient
from app.services.grading import grade
from app.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

MAX_RECORD_TRIES = 3
FEEDBACK_MAX_CHARS = 1000


@dataclass(frozen=True, slots=True)
class AttemptScore:
    attempt_number: int
    total_score: int
    rate_percent: float
    status: str  # passed|failed
    passed_question_ids: tuple[UUID, ...]
    failed_question_ids: tuple[UUID, ...]
    submission_time: int


def score_attempt(
    quiz: Quiz,
    questions: Sequence[Question],
    answers: Mapping[str, Any],
    attempt_number: int,
    submission_time: int = 0,
) -> AttemptScore:
    """Grade every question of `quiz` in stored order.

    `answers` maps question id (as a string) to the raw submitted value.
    Questions missing from `questions` count as failed.
    """
    by_id = {q.id: q for q in questions}
    total = 0
    passed: list[UUID] = []
    failed: list[UUID] = []

    for question_id in quiz.question_ids:
        question = by_id.get(question_id)
        if question is None:
            failed.append(question_id)
            continue
        result = grade(question, answers.get(str(question_id)))
        if result.is_correct:
            total += result.points_awarded
            passed.append(question_id)
        else:
            failed.append(question_id)

    # Zero-point legacy quizzes score 0%.
    if quiz.total_points > 0:
        rate = round(total / quiz.total_points * 100, 2)
    else:
        rate = 0.0

    return AttemptScore(
        attempt_number=attempt_number,
        total_score=total,
        rate_percent=rate,
        status="passed" if rate >= quiz.passing_score else "failed",
        passed_question_ids=tuple(passed),
        failed_question_ids=tuple(failed),
        submission_time=submission_time,
    )


class ScoringService:
    def __init__(
        self,
        *,
        quizzes: QuizRepo,
        assignments: AssignmentRepo,
        notifier: NotificationDispatcher,
        feedback_client: ModelClient | None = None,
        feedback_timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._quizzes = quizzes
        self._assignments = assignments
        self._notifier = notifier
        self._feedback_client = feedback_client
        self._feedback_timeout = feedback_timeout
        self._clock = clock

    async def submit(
        self,
        assignment_id: UUID,
        student_id: UUID,
        answers: Any,
        submission_time: Any = 0,
    ) -> AttemptHistory:
        """Score a submission and record it as the assignment's next attempt."""
        if not isinstance(answers, Mapping):
            raise ValidationError(
                "answers must be an object", {"answers": "expected an object"}
            )
        if (
            isinstance(submission_time, bool)
            or not isinstance(submission_time, int)
            or submission_time < 0
        ):
            raise ValidationError(
                "submissionTime must be a non-negative integer",
                {"submissionTime": "expected a non-negative integer"},
            )

        # Feedback is fetched once; a retried record step reuses it.
        feedback: str | None = None
        feedback_done = False
        for _ in range(MAX_RECORD_TRIES):
            assignment = await self._assignments.get(assignment_id)
            if assignment is None or assignment.student_id != student_id:
                raise NotFoundError("Quiz assignment", assignment_id)
            quiz = await self._quizzes.get_quiz(assignment.quiz_id)
            if quiz is None:
                raise NotFoundError("Quiz", assignment.quiz_id)
            questions = await self._quizzes.get_questions(quiz.question_ids)

            score = score_attempt(
                quiz,
                questions,
                answers,
                attempt_number=assignment.attempt_count + 1,
                submission_time=submission_time,
            )
            if not feedback_done:
                feedback = await self._feedback(quiz, score)
                feedback_done = True
            history = AttemptHistory(
                id=uuid4(),
                assignment_id=assignment.id,
                student_id=student_id,
                attempt_number=score.attempt_number,
                total_score=score.total_score,
                rate_percent=score.rate_percent,
                status=score.status,
                passed_question_ids=score.passed_question_ids,
                failed_question_ids=score.failed_question_ids,
                student_answers=dict(answers),
                submission_time=score.submission_time,
                feedback=feedback,
                created_at=int(self._clock()),
            )

            try:
                updated = await self._assignments.record_attempt(
                    history, expected_attempt_count=assignment.attempt_count
                )
            except ConcurrencyConflict:
                ATTEMPT_CONFLICTS.inc()
                logger.info(
                    "Attempt conflict, re-scoring assignment_id=%s", assignment_id
                )
                continue

            QUIZ_SUBMISSIONS.labels(verdict=history.status).inc()
            logger.info(
                "Attempt recorded assignment_id=%s attempt=%d score=%d/%d status=%s",
                assignment_id,
                history.attempt_number,
                history.total_score,
                quiz.total_points,
                history.status,
            )
            await self._notifier.maybe_notify(student_id, updated, quiz, history)
            return history

        raise ConcurrencyConflict(assignment_id)

    async def _feedback(self, quiz: Quiz, score: AttemptScore) -> str | None:
        """Short model-written comment on the result, or None."""
        if self._feedback_client is None:
            return None
        prompt = (
            f'A student scored {score.total_score}/{quiz.total_points} points '
            f'on the quiz "{quiz.title}" and {score.status}. '
            "Write a short, encouraging comment on the result in at most "
            "two sentences."
        )
        try:
            text = await asyncio.wait_for(
                self._feedback_client.complete(prompt), timeout=self._feedback_timeout
            )
        except Exception:
            logger.warning("Feedback generation failed", exc_info=True)
            return None
        return text.strip()[:FEEDBACK_MAX_CHARS] or None
