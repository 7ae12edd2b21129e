"""AI quiz generation: prompt, parse, and the worker-side state machine.

LIFECYCLE OF A LEDGER ENTRY
-----------------------------
  POST /v1/quizzes/generate_ai
      request_generation()  entry created as not_started, job enqueued

  worker, queue quiz_generation
      GenerationWorker.generate()
        not_started  -> in_progress
        model call   -> repair/parse -> validate counts and points
        success      -> quiz saved, entry completed (data_ai = raw output)
        any failure  -> entry failed (data_ai if any, data_error payload)

  worker, periodically
      GenerationWorker.fail_stale()
        in_progress entries older than GENERATION_STALE_SECONDS -> failed

Terminal states are final.  A redelivered job for a terminal entry is a
no-op, which is what makes at-least-once delivery safe here.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any
from uuid import UUID

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from app.core.errors import (
    GenerationStateConflict,
    NotFoundError,
    ParseError,
    ProviderError,
    ValidationError,
)
from app.core.metrics import GENERATION_OUTCOMES
from app.models.generation import GenerationParams, GenerationRequest
from app.repos.generation_repo import GenerationRepo
from app.services.ai_client import ModelClient
from app.services.json_repair import repair_json
from app.services.quiz_catalog import AnswerDraft, QuestionDraft, QuizCatalog
from app.services.task_queue import GENERATION_QUEUE, TaskQueue

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prompt and output contract
# ---------------------------------------------------------------------------

QUESTION_SCHEMA: dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "title": {"type": "string"},
            "difficulty": {"type": "string", "enum": ["easy", "medium", "hard"]},
            "content": {"type": "string"},
            "type": {
                "type": "string",
                "enum": [
                    "true_false",
                    "single_choice",
                    "multiple_choice",
                    "fill_blank",
                ],
            },
            "answers": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "text": {"type": "string"},
                        "isCorrect": {"type": "boolean"},
                        "explanation": {"type": "string"},
                    },
                    "required": ["text", "isCorrect"],
                },
            },
            "points": {"type": "integer"},
        },
        "required": ["title", "difficulty", "content", "type", "answers", "points"],
    },
}


def build_prompt(params: GenerationParams) -> str:
    return f"""You are an experienced teacher writing a quiz.

Topic: {params.topic}
Write exactly {params.total_questions} questions:
  - {params.easy_questions} easy
  - {params.medium_questions} medium
  - {params.hard_questions} hard
The quiz is worth exactly {params.total_points} points in total.
The "points" of all questions MUST sum to exactly {params.total_points}.

Question types:
  - true_false: exactly 2 answers, exactly 1 correct
  - single_choice: 2 to 6 answers, exactly 1 correct
  - multiple_choice: 2 to 6 answers, at least 1 correct
  - fill_blank: 1 to 6 accepted answers, all marked correct

Reply with JSON only, no commentary, in exactly this shape:
[
  {{
    "title": "short question title",
    "difficulty": "easy" | "medium" | "hard",
    "content": "the full question text",
    "type": "true_false" | "single_choice" | "multiple_choice" | "fill_blank",
    "answers": [
      {{"text": "answer text", "isCorrect": true, "explanation": "why"}}
    ],
    "points": 5
  }}
]"""


class GeneratedAnswer(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    is_correct: bool = Field(alias="isCorrect")
    explanation: str | None = None


class GeneratedQuestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    difficulty: str = "medium"
    content: str = ""
    type: str
    answers: list[GeneratedAnswer]
    points: int = Field(ge=1)

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
            difficulty=self.difficulty.lower(),
        )


def parse_generated_questions(
    raw: str, params: GenerationParams
) -> list[GeneratedQuestion]:
    """Repair, parse and check model output against the request.

    Raises ParseError with code parse_error, invalid_question,
    question_count_mismatch or points_mismatch.
    """
    data = repair_json(raw)
    if isinstance(data, dict) and isinstance(data.get("questions"), list):
        data = data["questions"]
    if not isinstance(data, list):
        raise ParseError("Model output is not a list of questions")

    try:
        questions = [GeneratedQuestion.model_validate(item) for item in data]
    except pydantic.ValidationError as e:
        raise ParseError(
            "Model output has malformed questions",
            code="invalid_question",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from None

    if len(questions) != params.total_questions:
        raise ParseError(
            f"Expected {params.total_questions} questions, got {len(questions)}",
            code="question_count_mismatch",
            details={"expected": params.total_questions, "actual": len(questions)},
        )

    actual = sum(q.points for q in questions)
    if actual != params.total_points:
        raise ParseError(
            f"Question points sum to {actual}, expected {params.total_points}",
            code="points_mismatch",
            details={"expected": params.total_points, "actual": actual},
        )
    return questions


# ---------------------------------------------------------------------------
# API side
# ---------------------------------------------------------------------------


async def request_generation(
    *,
    ledger: GenerationRepo,
    queue: TaskQueue,
    user_id: UUID,
    params: GenerationParams,
    provider: str,
    model_name: str,
    title: str = "AI quiz",
    now: int | None = None,
) -> GenerationRequest:
    """Create a ledger entry and enqueue its generation job.

    If the job cannot be enqueued the entry is failed straight away
    (code enqueue_failed) so it never sits in not_started forever.
    """
    stamp = int(time.time()) if now is None else now
    entry = await ledger.add(
        GenerationRequest.new(
            user_id=user_id,
            provider=provider,
            model_name=model_name,
            params=params,
            title=title,
            now=stamp,
        )
    )
    try:
        task = await queue.enqueue(GENERATION_QUEUE, {"ledger_id": str(entry.id)})
    except Exception:
        logger.exception("Could not enqueue generation ledger_id=%s", entry.id)
        failed = await ledger.fail(
            entry.id,
            data_error={
                "code": "enqueue_failed",
                "message": "Generation job could not be queued",
            },
            data_ai=None,
            now=stamp,
        )
        GENERATION_OUTCOMES.labels(status="failed", code="enqueue_failed").inc()
        return failed or entry

    logger.info("Generation requested ledger_id=%s task_id=%s", entry.id, task.id)
    return entry


# ---------------------------------------------------------------------------
# Worker side
# ---------------------------------------------------------------------------


class GenerationWorker:
    """Runs generation jobs.  The model client is constructed by the caller."""

    def __init__(
        self,
        *,
        ledger: GenerationRepo,
        catalog: QuizCatalog,
        client: ModelClient,
        structured_output: bool = True,
        stale_seconds: float = 900.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ledger = ledger
        self._catalog = catalog
        self._client = client
        self._structured_output = structured_output
        self._stale_seconds = stale_seconds
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    async def generate(self, request_id: UUID) -> GenerationRequest:
        entry = await self._ledger.get(request_id)
        if entry is None:
            logger.error("Generation job for unknown ledger_id=%s", request_id)
            raise NotFoundError("Generation request", request_id)
        if entry.is_terminal:
            logger.info(
                "Duplicate generation job ignored ledger_id=%s status=%s",
                request_id,
                entry.status,
            )
            return entry

        if entry.status == "not_started":
            marked = await self._ledger.mark_in_progress(request_id, now=self._now())
            if marked is None:
                # another delivery moved it first
                current = await self._ledger.get(request_id)
                if current is None or current.is_terminal:
                    return current or entry
                entry = current
            else:
                entry = marked

        raw: str | None = None
        try:
            raw = await self._client.complete(
                build_prompt(entry.params),
                response_schema=QUESTION_SCHEMA if self._structured_output else None,
            )
            questions = parse_generated_questions(raw, entry.params)
            await self._catalog.save_generated_quiz(
                request_id, [q.to_draft() for q in questions], data_ai=raw
            )
        except (ProviderError, ParseError) as e:
            return await self._fail(request_id, e.to_payload(), raw)
        except ValidationError as e:
            return await self._fail(
                request_id,
                {"code": "validation_error", "message": e.message, "errors": e.errors},
                raw,
            )
        except GenerationStateConflict:
            logger.info("Ledger entry already terminal ledger_id=%s", request_id)
        except Exception:
            logger.exception("Generation crashed ledger_id=%s", request_id)
            return await self._fail(
                request_id,
                {"code": "internal_error", "message": "Unexpected generation error"},
                raw,
            )

        final = await self._ledger.get(request_id)
        if final is not None and final.status == "completed":
            GENERATION_OUTCOMES.labels(status="completed", code="none").inc()
            logger.info(
                "Generation completed ledger_id=%s quiz_id=%s", request_id, final.quiz_id
            )
        return final or entry

    async def fail_stale(self) -> int:
        """Fail in_progress entries that have not moved for too long."""
        cutoff = self._now() - int(self._stale_seconds)
        failed = 0
        for entry in await self._ledger.list_stale(older_than=cutoff):
            result = await self._fail(
                entry.id,
                {
                    "code": "stale",
                    "message": "Generation did not finish in time",
                    "stale_seconds": int(self._stale_seconds),
                },
                None,
            )
            if result.status == "failed":
                failed += 1
        return failed

    async def _fail(
        self, request_id: UUID, data_error: dict[str, Any], raw: str | None
    ) -> GenerationRequest:
        updated = await self._ledger.fail(
            request_id, data_error=data_error, data_ai=raw, now=self._now()
        )
        if updated is None:
            current = await self._ledger.get(request_id)
            if current is None:
                raise NotFoundError("Generation request", request_id)
            return current
        code = str(data_error.get("code", "unknown"))
        GENERATION_OUTCOMES.labels(status="failed", code=code).inc()
        logger.warning(
            "Generation failed ledger_id=%s code=%s message=%s",
            request_id,
            code,
            data_error.get("message"),
        )
        return updated
