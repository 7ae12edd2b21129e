from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

USER_ROLES: tuple[str, ...] = ("admin", "parent", "student")


@dataclass(frozen=True, slots=True)
class User:
    """Account data this service reads: identity, role and guardian linkage.

    Accounts are provisioned by the identity service; here they are
    reference data for notifications and parent access checks.
    """

    id: UUID
    email: str
    full_name: str = ""
    role: str = "student"  # admin|parent|student
    parent_id: UUID | None = None  # guardian of a student
    telegram_chat_id: str | None = None  # guardian's chat destination

    @staticmethod
    def new(
        *,
        email: str,
        full_name: str = "",
        role: str = "student",
        parent_id: UUID | None = None,
        telegram_chat_id: str | None = None,
    ) -> User:
        return User(
            id=uuid4(),
            email=email.strip().lower(),
            full_name=full_name,
            role=role,
            parent_id=parent_id,
            telegram_chat_id=telegram_chat_id,
        )
