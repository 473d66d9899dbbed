"""Read side of the enrollment core: enriched lookups, listings, stats.

Every enrollment returned from here carries a freshly computed progress
summary, one aggregation per row.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from uuid import UUID

from app.core.errors import EnrollmentValidationError, NotFoundError
from app.models.course import Course
from app.models.enrollment import (
    SORTABLE_FIELDS,
    Enrollment,
    EnrollmentFilter,
    EnrollmentStatus,
    PageRequest,
    ProgressSummary,
)
from app.models.user import User
from app.repos.course_repo import CourseRepo
from app.repos.enrollment_repo import EnrollmentRepo
from app.repos.user_repo import UserRepo
from app.services.enrollment_service import enrollment_not_found
from app.services.progress_service import ProgressService

MAX_PAGE_SIZE = 100
RECENT_WINDOW = timedelta(days=30)


@dataclass(frozen=True, slots=True)
class EnrollmentView:
    enrollment: Enrollment
    user: User | None
    course: Course | None
    enrolled_by: User | None
    progress: ProgressSummary


@dataclass(frozen=True, slots=True)
class EnrollmentPage:
    data: list[EnrollmentView]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass(frozen=True, slots=True)
class EnrollmentStats:
    total: int
    active: int
    suspended: int
    completed: int
    expired: int  # expires_at has passed, whatever the status
    pending_payment: int
    confirmed_payment: int
    last_30_days: int | None = None
    course: Course | None = None


class EnrollmentQueries:
    def __init__(
        self,
        *,
        enrollments: EnrollmentRepo,
        users: UserRepo,
        courses: CourseRepo,
        progress: ProgressService,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._enrollments = enrollments
        self._users = users
        self._courses = courses
        self._progress = progress
        self._clock = clock

    async def get(self, enrollment_id: UUID) -> EnrollmentView:
        enrollment = await self._enrollments.get_by_id(enrollment_id)
        if enrollment is None:
            raise enrollment_not_found(enrollment_id)
        return await self._enrich(enrollment)

    async def get_progress(self, enrollment_id: UUID) -> ProgressSummary:
        enrollment = await self._enrollments.get_by_id(enrollment_id)
        if enrollment is None:
            raise enrollment_not_found(enrollment_id)
        return await self._progress.compute(enrollment.user_id, enrollment.course_id)

    async def list_enrollments(
        self, flt: EnrollmentFilter, page: PageRequest
    ) -> EnrollmentPage:
        _validate_page(page)
        if flt.expired is not None and flt.as_of is None:
            flt = replace(flt, as_of=self._clock())
        rows = await self._enrollments.find_many(
            flt,
            sort_by=page.sort_by,
            sort_order=page.sort_order,
            offset=page.offset,
            limit=page.limit,
        )
        total = await self._enrollments.count(flt)
        return EnrollmentPage(
            data=[await self._enrich(e) for e in rows],
            page=page.page,
            limit=page.limit,
            total=total,
        )

    async def list_pending_payment(
        self, flt: EnrollmentFilter, page: PageRequest
    ) -> EnrollmentPage:
        return await self.list_enrollments(
            replace(flt, payment_confirmed=False, status=EnrollmentStatus.ACTIVE),
            page,
        )

    async def list_expired(
        self, flt: EnrollmentFilter, page: PageRequest
    ) -> EnrollmentPage:
        return await self.list_enrollments(replace(flt, expired=True), page)

    async def list_expiring_soon(self, days: int) -> list[EnrollmentView]:
        if days < 1:
            raise EnrollmentValidationError("days must be a positive integer")
        now = self._clock()
        rows = await self._enrollments.find_many(
            EnrollmentFilter(
                status=EnrollmentStatus.ACTIVE,
                expires_from=now,
                expires_until=now + timedelta(days=days),
            ),
            sort_by="expires_at",
            sort_order="asc",
        )
        return [await self._enrich(e) for e in rows]

    async def list_for_user(
        self, user_id: UUID, flt: EnrollmentFilter, page: PageRequest
    ) -> EnrollmentPage:
        if await self._users.get_by_id(user_id) is None:
            raise NotFoundError("User not found")
        return await self.list_enrollments(replace(flt, user_id=user_id), page)

    async def list_for_course(
        self, course_id: UUID, flt: EnrollmentFilter, page: PageRequest
    ) -> EnrollmentPage:
        if await self._courses.get_by_id(course_id) is None:
            raise NotFoundError("Course not found")
        return await self.list_enrollments(replace(flt, course_id=course_id), page)

    async def stats(self) -> EnrollmentStats:
        now = self._clock()
        counts = await self._status_counts(EnrollmentFilter(), now)
        pending = await self._enrollments.count(
            EnrollmentFilter(payment_confirmed=False)
        )
        recent = await self._enrollments.count(
            EnrollmentFilter(enrolled_since=now - RECENT_WINDOW)
        )
        return EnrollmentStats(
            **counts,
            pending_payment=pending,
            confirmed_payment=counts["total"] - pending,
            last_30_days=recent,
        )

    async def course_stats(self, course_id: UUID) -> EnrollmentStats:
        course = await self._courses.get_by_id(course_id)
        if course is None:
            raise NotFoundError("Course not found")
        base = EnrollmentFilter(course_id=course_id)
        counts = await self._status_counts(base, self._clock())
        pending = await self._enrollments.count(replace(base, payment_confirmed=False))
        confirmed = await self._enrollments.count(
            replace(base, payment_confirmed=True)
        )
        return EnrollmentStats(
            **counts,
            pending_payment=pending,
            confirmed_payment=confirmed,
            course=course,
        )

    async def _status_counts(
        self, base: EnrollmentFilter, now: datetime
    ) -> dict[str, int]:
        count = self._enrollments.count
        return {
            "total": await count(base),
            "active": await count(replace(base, status=EnrollmentStatus.ACTIVE)),
            "suspended": await count(replace(base, status=EnrollmentStatus.SUSPENDED)),
            "completed": await count(replace(base, status=EnrollmentStatus.COMPLETED)),
            "expired": await count(replace(base, expired=True, as_of=now)),
        }

    async def _enrich(self, enrollment: Enrollment) -> EnrollmentView:
        return EnrollmentView(
            enrollment=enrollment,
            user=await self._users.get_by_id(enrollment.user_id),
            course=await self._courses.get_by_id(enrollment.course_id),
            enrolled_by=await self._users.get_by_id(enrollment.enrolled_by_id),
            progress=await self._progress.compute_for(enrollment),
        )


def _validate_page(page: PageRequest) -> None:
    if page.page < 1:
        raise EnrollmentValidationError("page must be >= 1")
    if not 1 <= page.limit <= MAX_PAGE_SIZE:
        raise EnrollmentValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if page.sort_by not in SORTABLE_FIELDS:
        raise EnrollmentValidationError(
            f"sort_by must be one of {', '.join(SORTABLE_FIELDS)}"
        )
    if page.sort_order not in ("asc", "desc"):
        raise EnrollmentValidationError("sort_order must be asc or desc")
