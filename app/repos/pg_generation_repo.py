"""PostgreSQL implementation of GenerationRepo.

Status transitions are single conditional UPDATEs, so two workers (or a
worker and a manual save) racing on the same entry cannot both win.
"""

from __future__ import annotations

import json
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.tables import GenerationRequestRow
from app.models.generation import (
    TERMINAL_STATUSES,
    GenerationParams,
    GenerationRequest,
)


class PgGenerationRepo:
    """Satisfies the GenerationRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, request: GenerationRequest) -> GenerationRequest:
        async with self._session_factory() as session, session.begin():
            session.add(
                GenerationRequestRow(
                    id=request.id,
                    user_id=request.user_id,
                    title=request.title,
                    provider=request.provider,
                    model_name=request.model_name,
                    params_json=json.dumps(request.params.to_dict()),
                    status=request.status,
                    data_ai=request.data_ai,
                    data_error_json=_dump_error(request.data_error),
                    quiz_id=request.quiz_id,
                    created_at=request.created_at,
                    updated_at=request.updated_at,
                )
            )
        return request

    async def get(self, request_id: UUID) -> GenerationRequest | None:
        async with self._session_factory() as session:
            row = await session.get(GenerationRequestRow, request_id)
        return _row_to_request(row) if row is not None else None

    async def mark_in_progress(
        self, request_id: UUID, *, now: int
    ) -> GenerationRequest | None:
        return await self._transition(
            request_id,
            GenerationRequestRow.status == "not_started",
            status="in_progress",
            updated_at=now,
        )

    async def complete(
        self,
        request_id: UUID,
        *,
        quiz_id: UUID,
        data_ai: str | None,
        now: int,
    ) -> GenerationRequest | None:
        values: dict[str, Any] = {
            "status": "completed",
            "quiz_id": quiz_id,
            "updated_at": now,
        }
        if data_ai is not None:
            values["data_ai"] = data_ai
        return await self._transition(
            request_id,
            GenerationRequestRow.status.not_in(TERMINAL_STATUSES),
            **values,
        )

    async def fail(
        self,
        request_id: UUID,
        *,
        data_error: dict[str, Any],
        data_ai: str | None,
        now: int,
    ) -> GenerationRequest | None:
        values: dict[str, Any] = {
            "status": "failed",
            "data_error_json": _dump_error(data_error),
            "updated_at": now,
        }
        if data_ai is not None:
            values["data_ai"] = data_ai
        return await self._transition(
            request_id,
            GenerationRequestRow.status.not_in(TERMINAL_STATUSES),
            **values,
        )

    async def list_requests(
        self,
        *,
        status: str | None = None,
        user_id: UUID | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[GenerationRequest], int]:
        conditions = []
        if status is not None:
            conditions.append(GenerationRequestRow.status == status)
        if user_id is not None:
            conditions.append(GenerationRequestRow.user_id == user_id)

        async with self._session_factory() as session:
            total = (
                await session.execute(
                    select(func.count())
                    .select_from(GenerationRequestRow)
                    .where(*conditions)
                )
            ).scalar_one()
            stmt = (
                select(GenerationRequestRow)
                .where(*conditions)
                .order_by(GenerationRequestRow.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_request(r) for r in rows], total

    async def list_stale(self, *, older_than: int) -> list[GenerationRequest]:
        async with self._session_factory() as session:
            stmt = select(GenerationRequestRow).where(
                GenerationRequestRow.status == "in_progress",
                GenerationRequestRow.updated_at < older_than,
            )
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_request(r) for r in rows]

    async def _transition(
        self, request_id: UUID, condition, **values: Any
    ) -> GenerationRequest | None:
        async with self._session_factory() as session, session.begin():
            stmt = (
                update(GenerationRequestRow)
                .where(GenerationRequestRow.id == request_id, condition)
                .values(**values)
                .returning(GenerationRequestRow)
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_request(row) if row is not None else None


def _dump_error(data_error: dict[str, Any] | None) -> str | None:
    return json.dumps(data_error) if data_error is not None else None


def _row_to_request(row: GenerationRequestRow) -> GenerationRequest:
    return GenerationRequest(
        id=row.id,
        user_id=row.user_id,
        provider=row.provider,
        model_name=row.model_name,
        params=GenerationParams.from_dict(json.loads(row.params_json)),
        title=row.title,
        status=row.status,
        data_ai=row.data_ai,
        data_error=json.loads(row.data_error_json) if row.data_error_json else None,
        quiz_id=row.quiz_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
