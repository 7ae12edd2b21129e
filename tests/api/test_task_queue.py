"""Background task queue tests (in-memory backend).

Verifies:
1. FIFO order and payload round trip
2. A dequeued task stays pending until acked
3. requeue_unacked() puts pending tasks back at the front, oldest first
"""

from __future__ import annotations

import asyncio

from app.services.task_queue import InMemoryTaskQueue, TaskQueue


def test_in_memory_queue_satisfies_protocol() -> None:
    assert isinstance(InMemoryTaskQueue(), TaskQueue)


def test_tasks_come_out_in_enqueue_order() -> None:
    queue = InMemoryTaskQueue()

    async def run():
        for i in range(3):
            await queue.enqueue("q", {"n": i})
        return [(await queue.dequeue("q")).payload["n"] for _ in range(3)]

    assert asyncio.run(run()) == [0, 1, 2]


def test_empty_queue_returns_none() -> None:
    assert asyncio.run(InMemoryTaskQueue().dequeue("q")) is None


def test_ack_removes_task_from_processing() -> None:
    queue = InMemoryTaskQueue()

    async def run():
        await queue.enqueue("q", {"n": 1})
        task = await queue.dequeue("q")
        await queue.ack(task)
        return await queue.requeue_unacked("q"), await queue.queue_length("q")

    assert asyncio.run(run()) == (0, 0)


def test_unacked_tasks_are_requeued_first() -> None:
    queue = InMemoryTaskQueue()

    async def run():
        for i in range(3):
            await queue.enqueue("q", {"n": i})
        await queue.dequeue("q")
        await queue.dequeue("q")
        # worker crashes here: tasks 0 and 1 were never acked
        moved = await queue.requeue_unacked("q")
        order = []
        while (task := await queue.dequeue("q")) is not None:
            order.append(task.payload["n"])
        return moved, order

    moved, order = asyncio.run(run())
    assert moved == 2
    assert order == [0, 1, 2]


def test_queues_are_independent() -> None:
    queue = InMemoryTaskQueue()

    async def run():
        await queue.enqueue("a", {})
        return await queue.queue_length("a"), await queue.queue_length("b")

    assert asyncio.run(run()) == (1, 0)
