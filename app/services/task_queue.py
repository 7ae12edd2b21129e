"""Background work queue using Redis lists.

Two queues feed the worker process:

  quiz_generation           one task per ledger entry; payload {"ledger_id"}
  quiz_result_notification  one task per guardian message;
                            payload {"chat_id", "message", "history_id"}

THE PRODUCER/CONSUMER PATTERN
-------------------------------
  Producer (API):    LPUSH task onto tasks:<queue>  -> returns immediately
  Consumer (Worker): BLMOVE tasks:<queue> -> tasks:<queue>:processing
                     handle the task
                     LREM the task from tasks:<queue>:processing (ack)

  HEAD-in, TAIL-out = FIFO: tasks are handled in the order they were
  enqueued.

DELIVERY GUARANTEE
-------------------
  AT-LEAST-ONCE.  BLMOVE (the successor of BRPOPLPUSH) atomically moves
  the task into a per-queue processing list instead of deleting it.  If
  the worker dies mid-task the task is still sitting in the processing
  list, and requeue_unacked() puts it back on the main list when the
  next worker starts.

  The price is that a task can be handled twice, so every handler must
  be idempotent.  Generation jobs check the ledger status before doing
  anything; saving a generated quiz is keyed by the ledger id.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from app.db.redis import redis_pool

GENERATION_QUEUE = "quiz_generation"
NOTIFICATION_QUEUE = "quiz_result_notification"


@dataclass(frozen=True, slots=True)
class Task:
    """A unit of background work.

    id:      Unique identifier for tracking and logging.
    queue:   Which queue this task belongs to.
    payload: Arbitrary data the handler needs (JSON-serializable).
    raw:     The exact serialized form, needed to ack it in Redis.
    """

    id: str
    queue: str
    payload: dict
    raw: str = field(default="", repr=False, compare=False)


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(self, queue: str, payload: dict) -> Task: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None: ...
    async def ack(self, task: Task) -> None: ...
    async def requeue_unacked(self, queue: str) -> int: ...
    async def queue_length(self, queue: str) -> int: ...


def _serialize(task_id: str, queue: str, payload: dict) -> str:
    return json.dumps({"id": task_id, "queue": queue, "payload": payload})


class InMemoryTaskQueue:
    """In-memory task queue for tests, no Redis needed."""

    def __init__(self) -> None:
        self._queues: dict[str, list[Task]] = {}
        self._processing: dict[str, list[Task]] = {}

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task_id = str(uuid.uuid4())
        task = Task(
            id=task_id,
            queue=queue,
            payload=payload,
            raw=_serialize(task_id, queue, payload),
        )
        self._queues.setdefault(queue, []).append(task)
        return task

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        tasks = self._queues.get(queue, [])
        if not tasks:
            return None
        task = tasks.pop(0)  # FIFO: remove from front
        self._processing.setdefault(queue, []).append(task)
        return task

    async def ack(self, task: Task) -> None:
        pending = self._processing.get(task.queue, [])
        for i, candidate in enumerate(pending):
            if candidate.id == task.id:
                del pending[i]
                return

    async def requeue_unacked(self, queue: str) -> int:
        pending = self._processing.pop(queue, [])
        # unacked tasks go back to the front, oldest first
        self._queues[queue] = pending + self._queues.get(queue, [])
        return len(pending)

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, []))


class RedisTaskQueue:
    """Redis-backed task queue using LPUSH / BLMOVE / LREM."""

    _PREFIX = "tasks:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    def _key(self, queue: str) -> str:
        return f"{self._PREFIX}{queue}"

    def _processing_key(self, queue: str) -> str:
        return f"{self._PREFIX}{queue}:processing"

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task_id = str(uuid.uuid4())
        raw = _serialize(task_id, queue, payload)
        await self._redis.lpush(self._key(queue), raw)
        return Task(id=task_id, queue=queue, payload=payload, raw=raw)

    async def dequeue(self, queue: str, timeout: int = 5) -> Task | None:
        # Pop the tail of the main list and push it onto the head of the
        # processing list in one atomic step.  None on timeout.
        # timeout <= 0 polls without blocking (BLMOVE 0 would block forever).
        if timeout <= 0:
            raw = await self._redis.lmove(
                self._key(queue), self._processing_key(queue), "RIGHT", "LEFT"
            )
        else:
            raw = await self._redis.blmove(
                self._key(queue),
                self._processing_key(queue),
                timeout,
                "RIGHT",
                "LEFT",
            )
        if raw is None:
            return None
        data = json.loads(raw)
        return Task(id=data["id"], queue=data["queue"], payload=data["payload"], raw=raw)

    async def ack(self, task: Task) -> None:
        await self._redis.lrem(self._processing_key(task.queue), 1, task.raw)

    async def requeue_unacked(self, queue: str) -> int:
        """Move everything left in the processing list back onto the queue.

        Taken from the head (newest) and pushed onto the tail, so the
        oldest unacked task ends up next in line.
        """
        moved = 0
        while True:
            raw = await self._redis.lmove(
                self._processing_key(queue), self._key(queue), "LEFT", "RIGHT"
            )
            if raw is None:
                return moved
            moved += 1

    async def queue_length(self, queue: str) -> int:
        return await self._redis.llen(self._key(queue))


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    task_queue: TaskQueue = RedisTaskQueue(redis_pool)
else:
    task_queue = InMemoryTaskQueue()
