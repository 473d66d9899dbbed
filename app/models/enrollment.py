from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from uuid import UUID, uuid4


class EnrollmentStatus(StrEnum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True, slots=True)
class Enrollment:
    """One learner bound to one course.

    A freshly created enrollment is ACTIVE with payment_confirmed=False
    until an administrator confirms payment.  expires_at=None means the
    enrollment never lapses.
    """

    id: UUID
    user_id: UUID
    course_id: UUID
    enrolled_by_id: UUID
    status: EnrollmentStatus
    payment_confirmed: bool
    enrolled_at: datetime
    expires_at: datetime | None = None

    @staticmethod
    def new(
        *,
        user_id: UUID,
        course_id: UUID,
        enrolled_by_id: UUID,
        enrolled_at: datetime,
        payment_confirmed: bool = False,
        expires_at: datetime | None = None,
    ) -> Enrollment:
        return Enrollment(
            id=uuid4(),
            user_id=user_id,
            course_id=course_id,
            enrolled_by_id=enrolled_by_id,
            status=EnrollmentStatus.ACTIVE,
            payment_confirmed=payment_confirmed,
            enrolled_at=enrolled_at,
            expires_at=expires_at,
        )

    def is_lapsed(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now


@dataclass(frozen=True, slots=True)
class EnrollmentPatch:
    """Partial update restricted to lifecycle fields.

    None leaves a field untouched.  clear_expiration removes expires_at
    (the enrollment never lapses) and wins over expires_at.
    """

    status: EnrollmentStatus | None = None
    payment_confirmed: bool | None = None
    expires_at: datetime | None = None
    clear_expiration: bool = False

    def is_empty(self) -> bool:
        return (
            self.status is None
            and self.payment_confirmed is None
            and self.expires_at is None
            and not self.clear_expiration
        )


@dataclass(frozen=True, slots=True)
class EnrollmentFilter:
    """Query filter for enrollment listings and counts.

    Groups compose with AND.  `search` matches learner first name, last
    name, email or course title (case-insensitive substring).  `expired`
    is evaluated against `as_of`: True keeps expires_at < as_of, False
    keeps expires_at is None or expires_at >= as_of.
    """

    user_id: UUID | None = None
    course_id: UUID | None = None
    status: EnrollmentStatus | None = None
    payment_confirmed: bool | None = None
    expired: bool | None = None
    search: str | None = None
    expires_from: datetime | None = None
    expires_until: datetime | None = None
    enrolled_since: datetime | None = None
    as_of: datetime | None = None


SORTABLE_FIELDS = ("enrolled_at", "expires_at", "status", "payment_confirmed")


@dataclass(frozen=True, slots=True)
class PageRequest:
    page: int = 1
    limit: int = 10
    sort_by: str = "enrolled_at"
    sort_order: str = "desc"  # asc|desc

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True, slots=True)
class ProgressSummary:
    """Derived, never persisted.  Recomputed from the completion ledger."""

    completed_lessons: int = 0
    total_lessons: int = 0
    completion_percentage: int = 0


@dataclass(frozen=True, slots=True)
class ExpiredSnapshot:
    id: UUID
    user_id: UUID
    course_id: UUID
    expired_at: datetime | None
