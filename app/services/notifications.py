"""Guardian notifications after a scored quiz attempt.

Two halves, split across processes:

  API side     NotificationDispatcher.maybe_notify() decides whether the
               student's guardian should hear about the attempt, renders
               the message and enqueues it on quiz_result_notification.
  Worker side  deliver_notification() pops the task and hands it to the
               messaging client.

Notifications are best-effort.  maybe_notify() never raises: a missing
guardian is a no-op, and a slow or broken queue is logged and counted
but never fails the submission that triggered it.
"""

from __future__ import annotations

import asyncio
import html
import logging
from typing import Protocol
from uuid import UUID

from app.core.metrics import NOTIFICATIONS
from app.models.assignment import AttemptHistory, QuizAssignment
from app.models.quiz import Quiz
from app.repos.user_repo import UserRepo
from app.services.task_queue import NOTIFICATION_QUEUE, TaskQueue

logger = logging.getLogger(__name__)

DEFAULT_GUARDIAN_NAME = "Parent"


class MessageSender(Protocol):
    async def send(self, chat_id: str, message: str) -> None: ...


def build_result_message(
    *,
    guardian_name: str,
    student_name: str,
    quiz_title: str,
    score: int,
    total_points: int,
    passed: bool,
) -> str:
    """Render the HTML message sent to a guardian."""
    verdict = "Passed" if passed else "Not passed"
    return (
        f"Hello {html.escape(guardian_name)},\n"
        f"<b>{html.escape(student_name)}</b> has completed a quiz.\n"
        f"  + Quiz: <b>{html.escape(quiz_title)}</b>\n"
        f"  + Score: <b>{score}/{total_points}</b>\n"
        f"  + Result: <b>{verdict}</b>"
    )


class NotificationDispatcher:
    def __init__(
        self,
        *,
        users: UserRepo,
        queue: TaskQueue,
        timeout_seconds: float = 2.0,
    ) -> None:
        self._users = users
        self._queue = queue
        self._timeout = timeout_seconds

    async def maybe_notify(
        self,
        student_id: UUID,
        assignment: QuizAssignment,
        quiz: Quiz,
        history: AttemptHistory,
    ) -> bool:
        """Enqueue a result message for the student's guardian.

        Returns True when a message was enqueued.  Never raises.
        """
        try:
            return await asyncio.wait_for(
                self._notify(student_id, quiz, history), timeout=self._timeout
            )
        except TimeoutError:
            logger.warning(
                "Guardian notification timed out assignment_id=%s", assignment.id
            )
        except Exception:
            logger.exception(
                "Guardian notification failed assignment_id=%s", assignment.id
            )
        NOTIFICATIONS.labels(outcome="enqueue_failed").inc()
        return False

    async def _notify(
        self, student_id: UUID, quiz: Quiz, history: AttemptHistory
    ) -> bool:
        student = await self._users.get_by_id(student_id)
        if student is None or student.parent_id is None:
            NOTIFICATIONS.labels(outcome="skipped").inc()
            return False
        guardian = await self._users.get_by_id(student.parent_id)
        if guardian is None or not guardian.telegram_chat_id:
            NOTIFICATIONS.labels(outcome="skipped").inc()
            return False

        message = build_result_message(
            guardian_name=guardian.full_name or DEFAULT_GUARDIAN_NAME,
            student_name=student.full_name or student.email,
            quiz_title=quiz.title,
            score=history.total_score,
            total_points=quiz.total_points,
            passed=history.passed,
        )
        task = await self._queue.enqueue(
            NOTIFICATION_QUEUE,
            {
                "chat_id": guardian.telegram_chat_id,
                "message": message,
                "history_id": str(history.id),
            },
        )
        NOTIFICATIONS.labels(outcome="enqueued").inc()
        logger.info(
            "Guardian notification enqueued task_id=%s history_id=%s",
            task.id,
            history.id,
        )
        return True


async def deliver_notification(sender: MessageSender, payload: dict) -> None:
    """Worker side: send one queued message.

    DeliveryFailure propagates so the worker can log it; there is no
    retry.
    """
    try:
        await sender.send(payload["chat_id"], payload["message"])
    except Exception:
        NOTIFICATIONS.labels(outcome="failed").inc()
        raise
    NOTIFICATIONS.labels(outcome="delivered").inc()
