"""Ledger of AI quiz-generation requests.

Every transition is conditional on the current status so that redelivered
queue messages and a save racing the worker cannot move an entry
backwards:

    mark_in_progress   only from not_started
    complete / fail    only from a non-terminal status

Each returns the updated entry, or None when the condition did not hold
(the caller then re-reads to see what state won).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Protocol
from uuid import UUID

from app.db.engine import async_session_factory
from app.models.generation import GenerationRequest


class GenerationRepo(Protocol):
    async def add(self, request: GenerationRequest) -> GenerationRequest: ...
    async def get(self, request_id: UUID) -> GenerationRequest | None: ...
    async def mark_in_progress(
        self, request_id: UUID, *, now: int
    ) -> GenerationRequest | None: ...
    async def complete(
        self,
        request_id: UUID,
        *,
        quiz_id: UUID,
        data_ai: str | None,
        now: int,
    ) -> GenerationRequest | None: ...
    async def fail(
        self,
        request_id: UUID,
        *,
        data_error: dict[str, Any],
        data_ai: str | None,
        now: int,
    ) -> GenerationRequest | None: ...
    async def list_requests(
        self,
        *,
        status: str | None = None,
        user_id: UUID | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[GenerationRequest], int]: ...
    async def list_stale(self, *, older_than: int) -> list[GenerationRequest]: ...


class InMemoryGenerationRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, GenerationRequest] = {}

    async def add(self, request: GenerationRequest) -> GenerationRequest:
        self._by_id[request.id] = request
        return request

    async def get(self, request_id: UUID) -> GenerationRequest | None:
        return self._by_id.get(request_id)

    async def mark_in_progress(
        self, request_id: UUID, *, now: int
    ) -> GenerationRequest | None:
        current = self._by_id.get(request_id)
        if current is None or current.status != "not_started":
            return None
        return self._put(replace(current, status="in_progress", updated_at=now))

    async def complete(
        self,
        request_id: UUID,
        *,
        quiz_id: UUID,
        data_ai: str | None,
        now: int,
    ) -> GenerationRequest | None:
        current = self._by_id.get(request_id)
        if current is None or current.is_terminal:
            return None
        return self._put(
            replace(
                current,
                status="completed",
                quiz_id=quiz_id,
                data_ai=data_ai if data_ai is not None else current.data_ai,
                updated_at=now,
            )
        )

    async def fail(
        self,
        request_id: UUID,
        *,
        data_error: dict[str, Any],
        data_ai: str | None,
        now: int,
    ) -> GenerationRequest | None:
        current = self._by_id.get(request_id)
        if current is None or current.is_terminal:
            return None
        return self._put(
            replace(
                current,
                status="failed",
                data_error=data_error,
                data_ai=data_ai if data_ai is not None else current.data_ai,
                updated_at=now,
            )
        )

    async def list_requests(
        self,
        *,
        status: str | None = None,
        user_id: UUID | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[GenerationRequest], int]:
        """Newest first, paginated. Returns (page items, total matching)."""
        rows = [
            r
            for r in self._by_id.values()
            if (status is None or r.status == status)
            and (user_id is None or r.user_id == user_id)
        ]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        offset = (page - 1) * limit
        return rows[offset : offset + limit], len(rows)

    async def list_stale(self, *, older_than: int) -> list[GenerationRequest]:
        """in_progress entries not touched since `older_than` (epoch seconds)."""
        return [
            r
            for r in self._by_id.values()
            if r.status == "in_progress" and r.updated_at < older_than
        ]

    def _put(self, request: GenerationRequest) -> GenerationRequest:
        self._by_id[request.id] = request
        return request


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if async_session_factory is not None:
    from app.repos.pg_generation_repo import PgGenerationRepo

    generation_repo: GenerationRepo = PgGenerationRepo(async_session_factory)
else:
    generation_repo = InMemoryGenerationRepo()
