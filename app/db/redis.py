"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured we create a connection
pool; when it's None (local dev, tests) the work queue falls back to an
in-memory implementation and no Redis server is needed.

Redis carries the two background queues of the service:
  - quiz_generation            (API → worker, one job per ledger entry)
  - quiz_result_notification   (API → worker, one job per guardian message)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis — mirrors lifespan_db()."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured — work queue is in-memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    except Exception:
        # Start anyway: /health reports the queue as degraded and
        # enqueue failures are recorded on the ledger entry.
        logger.exception("Redis connection failed on startup")
        yield
        return

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
