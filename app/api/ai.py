"""AI generation ledger: list and poll generation requests.

  GET /v1/ai/generate-process               paginated, optional status filter
  GET /v1/ai/generate-process/{ledger_id}   one entry (poll after generate_ai)

Admins see every entry.  Any other caller only sees entries they
requested.
"""

from __future__ import annotations

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.api.dependencies import require_user
from app.core.errors import NotFoundError
from app.models.generation import GENERATION_STATUSES, GenerationRequest
from app.models.principal import Principal
from app.repos.generation_repo import generation_repo

router = APIRouter(prefix="/v1/ai", tags=["ai"])

_STATUS_PATTERN = "^(" + "|".join(GENERATION_STATUSES) + ")$"


class GenerationOut(BaseModel):
    id: str
    user_id: str
    title: str
    provider: str
    model_name: str
    params: dict[str, Any]
    status: str
    data_ai: str | None
    data_error: dict[str, Any] | None
    quiz_id: str | None
    created_at: int
    updated_at: int


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class GenerationPage(BaseModel):
    data: list[GenerationOut]
    pagination: Pagination


def _generation_out(entry: GenerationRequest) -> GenerationOut:
    return GenerationOut(
        id=str(entry.id),
        user_id=str(entry.user_id),
        title=entry.title,
        provider=entry.provider,
        model_name=entry.model_name,
        params=entry.params.to_dict(),
        status=entry.status,
        data_ai=entry.data_ai,
        data_error=entry.data_error,
        quiz_id=str(entry.quiz_id) if entry.quiz_id else None,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )


@router.get("/generate-process", response_model=GenerationPage)
async def list_generation_process(
    principal: Annotated[Principal, Depends(require_user)],
    status: Annotated[str | None, Query(pattern=_STATUS_PATTERN)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> GenerationPage:
    user_id = None if principal.is_admin() else principal.user_uuid()
    items, total = await generation_repo.list_requests(
        status=status, user_id=user_id, page=page, limit=limit
    )
    return GenerationPage(
        data=[_generation_out(e) for e in items],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=(total + limit - 1) // limit,
        ),
    )


@router.get("/generate-process/{ledger_id}", response_model=GenerationOut)
async def get_generation_process(
    ledger_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
) -> GenerationOut:
    entry = await generation_repo.get(ledger_id)
    if entry is None or (
        not principal.is_admin() and entry.user_id != principal.user_uuid()
    ):
        raise NotFoundError("Generation request", ledger_id)
    return _generation_out(entry)
