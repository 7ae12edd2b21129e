from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a validated JWT.

    user_id: subject from JWT (the user's UUID as a string)
    roles:   platform roles (admin, parent, student)
    """

    user_id: str
    roles: frozenset[str]

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str]) -> bool:
        return bool(self.roles & roles)

    def is_admin(self) -> bool:
        return "admin" in self.roles

    def is_parent(self) -> bool:
        return "parent" in self.roles

    def user_uuid(self) -> UUID | None:
        """The subject as a UUID, or None for non-UUID subjects."""
        try:
            return UUID(self.user_id)
        except ValueError:
            return None
