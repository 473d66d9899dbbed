from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a validated JWT.

    user_id: subject from JWT (a user UUID as a string)
    roles: platform roles ("admin" or "learner")
    """

    user_id: str
    roles: frozenset[str]

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def is_platform_admin(self) -> bool:
        return "admin" in self.roles

    def can_view_user(self, user_id: object) -> bool:
        """Admins see everyone; learners only themselves."""
        return self.is_platform_admin() or str(user_id) == self.user_id
