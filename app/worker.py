"""Background worker process.

RUN:  python -m app.worker

Same image as the API, different command:
  api:    uvicorn app.main:app --host 0.0.0.0 --port 8000
  worker: python -m app.worker

QUEUES
-------
  quiz_generation           GenerationWorker.generate(ledger_id)
  quiz_result_notification  deliver the guardian message via Telegram

THE WORKER LOOP
----------------
  on start   requeue tasks a previous worker took but never acked
  forever    poll every registered queue (round-robin), handle one task,
             ack it, and every STALE_SWEEP_INTERVAL seconds fail ledger
             entries stuck in in_progress

A task is acked after its handler returns or raises.  Handlers record
their own failures (a failed ledger entry, a logged delivery error), so
there is nothing to gain from redelivering a task that raised; only a
worker crash leaves a task unacked.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from app.core.config import SETTINGS, Settings
from app.core.errors import DeliveryFailure
from app.core.logging import job_id_var, setup_logging
from app.db.engine import lifespan_db
from app.db.redis import lifespan_redis
from app.repos.generation_repo import generation_repo
from app.services.ai_client import build_model_client
from app.services.messaging import TelegramClient
from app.services.notifications import MessageSender, deliver_notification
from app.services.quiz_catalog import quiz_catalog
from app.services.quiz_generation import GenerationWorker
from app.services.task_queue import (
    GENERATION_QUEUE,
    NOTIFICATION_QUEUE,
    TaskQueue,
    task_queue,
)

logger = logging.getLogger("worker")

STALE_SWEEP_INTERVAL = 60.0


@dataclass(frozen=True, slots=True)
class WorkerDeps:
    """Everything the handlers need, built once per process."""

    generation: GenerationWorker
    sender: MessageSender | None = None


TaskHandler = Callable[[dict, WorkerDeps], Coroutine[Any, Any, None]]


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


# ---------------------------------------------------------------------------
# Task handlers
# ---------------------------------------------------------------------------


@register_handler(GENERATION_QUEUE)
async def handle_generation(payload: dict, deps: WorkerDeps) -> None:
    entry = await deps.generation.generate(UUID(payload["ledger_id"]))
    logger.info(
        "Generation job finished ledger_id=%s status=%s",
        entry.id,
        entry.status,
        extra={"ledger_id": str(entry.id)},
    )


@register_handler(NOTIFICATION_QUEUE)
async def handle_notification(payload: dict, deps: WorkerDeps) -> None:
    if deps.sender is None:
        logger.warning(
            "TELEGRAM_BOT_TOKEN not set, dropping notification history_id=%s",
            payload.get("history_id"),
        )
        return
    try:
        await deliver_notification(deps.sender, payload)
    except DeliveryFailure as e:
        logger.warning(
            "Notification not delivered history_id=%s: %s",
            payload.get("history_id"),
            e,
        )


# ---------------------------------------------------------------------------
# Main worker loop
# ---------------------------------------------------------------------------


async def process_next(
    queue_name: str,
    deps: WorkerDeps,
    *,
    queue: TaskQueue = task_queue,
    timeout: int = 1,
) -> bool:
    """Handle one task from `queue_name`. Returns False if none was waiting."""
    task = await queue.dequeue(queue_name, timeout=timeout)
    if task is None:
        return False

    token = job_id_var.set(task.id)
    try:
        await HANDLERS[queue_name](task.payload, deps)
        logger.info("Task %s on [%s] completed", task.id, queue_name)
    except Exception:
        logger.exception("Task %s on [%s] failed", task.id, queue_name)
    finally:
        await queue.ack(task)
        job_id_var.reset(token)
    return True


async def drain(deps: WorkerDeps, *, queue: TaskQueue = task_queue) -> int:
    """Handle everything currently queued, without blocking. Returns the count."""
    handled = 0
    for queue_name in HANDLERS:
        while await process_next(queue_name, deps, queue=queue, timeout=0):
            handled += 1
    return handled


async def run_worker(deps: WorkerDeps, *, queue: TaskQueue = task_queue) -> None:
    """Poll all registered queues and dispatch tasks to handlers."""
    queues = list(HANDLERS.keys())
    for queue_name in queues:
        requeued = await queue.requeue_unacked(queue_name)
        if requeued:
            logger.warning("Requeued %d unacked task(s) on [%s]", requeued, queue_name)
    logger.info("Worker started, listening on queues: %s", queues)

    next_sweep = 0.0
    while True:
        if time.monotonic() >= next_sweep:
            failed = await deps.generation.fail_stale()
            if failed:
                logger.warning("Failed %d stale generation request(s)", failed)
            next_sweep = time.monotonic() + STALE_SWEEP_INTERVAL

        for queue_name in queues:
            await process_next(queue_name, deps, queue=queue)


def build_deps(settings: Settings) -> WorkerDeps:
    """Construct the model and messaging clients for this process."""
    generation = GenerationWorker(
        ledger=generation_repo,
        catalog=quiz_catalog,
        client=build_model_client(settings),
        structured_output=settings.ai_structured_output,
        stale_seconds=settings.generation_stale_seconds,
    )
    sender = (
        TelegramClient(
            settings.telegram_bot_token, timeout=settings.notify_timeout_seconds
        )
        if settings.telegram_bot_token
        else None
    )
    return WorkerDeps(generation=generation, sender=sender)


async def main() -> None:
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    async with lifespan_db():
        async with lifespan_redis():
            await run_worker(build_deps(SETTINGS))


if __name__ == "__main__":
    asyncio.run(main())
