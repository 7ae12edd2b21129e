"""Prometheus scrape endpoint.

Returns every metric in app/core/metrics.py in the text exposition
format, e.g.:

  quiz_submissions_total{verdict="passed"} 42.0
  quiz_generation_outcomes_total{status="failed",code="points_mismatch"} 3.0

The worker runs in its own process and keeps its own registry; its
generation and delivery counters are only visible here for work done
in-process (tests, local dev).

Restrict access to /metrics in production (network policy or an
internal-only port).
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
