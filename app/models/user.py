from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class User:
    """Read-only view of a platform user.

    Credentials and profile management belong to the identity service;
    the enrollment core only looks users up by id or email.
    """

    id: UUID
    email: str
    first_name: str = ""
    last_name: str = ""
    phone: str | None = None
    roles: tuple[str, ...] = ()  # immutable
    is_active: bool = True

    @staticmethod
    def new(
        *,
        email: str,
        first_name: str = "",
        last_name: str = "",
        roles: tuple[str, ...] = (),
    ) -> User:
        return User(
            id=uuid4(),
            email=email.strip().lower(),
            first_name=first_name,
            last_name=last_name,
            roles=roles,
        )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
