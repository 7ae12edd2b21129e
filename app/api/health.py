"""Health and readiness endpoints.

LIVENESS vs READINESS
----------------------
  /health (liveness):
    "Is this process alive?"  Always 200; the body reports each
    dependency so dashboards can show a degraded state.  Returning 503
    here would make an orchestrator restart a process that is merely
    waiting for Redis to come back.

  /ready (readiness):
    "Can this instance take traffic right now?"  503 when the database
    is configured but unreachable: without it no quiz can be read or
    scored.  Redis is not critical; a failed enqueue is recorded on the
    ledger entry and notifications are best-effort.

The health check also refreshes the task_queue_depth gauge, so queue
backlog shows up in /metrics without the worker having to export it.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response
from sqlalchemy import text

from app.core.metrics import QUEUE_DEPTH
from app.db.engine import engine
from app.db.redis import redis_pool
from app.services.task_queue import GENERATION_QUEUE, NOTIFICATION_QUEUE, task_queue

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _database_ok() -> bool:
    if engine is None:
        return True
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.warning("Database health check failed", exc_info=True)
        return False


@router.get("/health")
async def health() -> dict:
    checks: dict[str, str] = {}
    overall = "ok"

    if engine is not None:
        checks["database"] = "ok" if await _database_ok() else "degraded"
    else:
        checks["database"] = "not_configured"

    if redis_pool is not None:
        try:
            await redis_pool.ping()  # type: ignore[misc]
            checks["redis"] = "ok"
        except Exception:
            checks["redis"] = "degraded"
    else:
        checks["redis"] = "not_configured"

    if "degraded" in checks.values():
        overall = "degraded"

    queues: dict[str, int] = {}
    if checks["redis"] != "degraded":
        for name in (GENERATION_QUEUE, NOTIFICATION_QUEUE):
            depth = await task_queue.queue_length(name)
            QUEUE_DEPTH.labels(queue_name=name).set(depth)
            queues[name] = depth

    return {"status": overall, "checks": checks, "queues": queues}


@router.get("/ready")
async def ready() -> Response:
    if not await _database_ok():
        return Response(status_code=503)
    return Response(status_code=200)
