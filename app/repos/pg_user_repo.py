"""PostgreSQL implementation of UserRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.tables import UserRow
from app.models.user import User


class PgUserRepo:
    """Satisfies the UserRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_by_id(self, user_id: UUID) -> User | None:
        async with self._session_factory() as session:
            stmt = select(UserRow).where(UserRow.id == user_id)
            row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_user(row)

    async def add(self, user: User) -> None:
        async with self._session_factory() as session, session.begin():
            session.add(
                UserRow(
                    id=user.id,
                    email=user.email,
                    full_name=user.full_name,
                    role=user.role,
                    parent_id=user.parent_id,
                    telegram_chat_id=user.telegram_chat_id,
                )
            )

    async def list_children(self, parent_id: UUID) -> list[User]:
        async with self._session_factory() as session:
            stmt = select(UserRow).where(UserRow.parent_id == parent_id)
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_user(r) for r in rows]


def _row_to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        full_name=row.full_name or "",
        role=row.role,
        parent_id=row.parent_id,
        telegram_chat_id=row.telegram_chat_id,
    )
