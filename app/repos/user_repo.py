from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.db.engine import async_session_factory
from app.models.user import User


class UserRepo(Protocol):
    async def get_by_id(self, user_id: UUID) -> User | None: ...
    async def add(self, user: User) -> None: ...
    async def list_children(self, parent_id: UUID) -> list[User]: ...


class InMemoryUserRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, User] = {}

    async def get_by_id(self, user_id: UUID) -> User | None:
        return self._by_id.get(user_id)

    async def add(self, user: User) -> None:
        if any(u.email == user.email for u in self._by_id.values()):
            raise ValueError("email already exists")
        self._by_id[user.id] = user

    async def list_children(self, parent_id: UUID) -> list[User]:
        return [u for u in self._by_id.values() if u.parent_id == parent_id]


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if async_session_factory is not None:
    from app.repos.pg_user_repo import PgUserRepo

    user_repo: UserRepo = PgUserRepo(async_session_factory)
else:
    user_repo = InMemoryUserRepo()
