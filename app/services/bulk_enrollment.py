"""Bulk enrollment by email with per-item failure isolation.

The course is checked once before the loop; a missing course fails the
whole batch.  After that, each email is enrolled sequentially and a
failure becomes an entry in `failed` instead of an exception.  Store
writes run in a savepoint, so a persistence failure on one email leaves
the enrollments already made in the batch intact.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from app.core.errors import EnrollmentError, NotFoundError, PersistenceError
from app.core.metrics import BULK_ITEMS
from app.models.enrollment import Enrollment
from app.repos.course_repo import CourseRepo
from app.services.enrollment_service import EnrollmentService

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BulkFailure:
    email: str
    error: str


@dataclass(slots=True)
class BulkResult:
    successful: list[Enrollment] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)

    @property
    def summary(self) -> dict[str, int]:
        return {
            "total": len(self.successful) + len(self.failed),
            "successful": len(self.successful),
            "failed": len(self.failed),
        }


class BulkEnrollmentService:
    def __init__(self, *, lifecycle: EnrollmentService, courses: CourseRepo) -> None:
        self._lifecycle = lifecycle
        self._courses = courses

    async def enroll(
        self,
        *,
        course_id: UUID,
        emails: list[str],
        enrolled_by_id: UUID,
        payment_confirmed: bool = False,
        expires_at: datetime | None = None,
    ) -> BulkResult:
        if await self._courses.get_by_id(course_id) is None:
            raise NotFoundError("Course not found")

        result = BulkResult()
        for email in emails:
            try:
                enrollment = await self._lifecycle.create_by_email(
                    email=email,
                    course_id=course_id,
                    enrolled_by_id=enrolled_by_id,
                    payment_confirmed=payment_confirmed,
                    expires_at=expires_at,
                )
            except EnrollmentError as exc:
                logger.warning(
                    "Bulk enrollment failed for email=%s course=%s: %s",
                    email,
                    course_id,
                    exc.message,
                )
                BULK_ITEMS.labels(result="failed").inc()
                result.failed.append(BulkFailure(email=email, error=exc.message))
                continue
            except PersistenceError:
                logger.exception(
                    "Bulk enrollment could not be stored for email=%s course=%s",
                    email,
                    course_id,
                )
                BULK_ITEMS.labels(result="failed").inc()
                result.failed.append(
                    BulkFailure(email=email, error="Failed to create enrollment")
                )
                continue
            BULK_ITEMS.labels(result="successful").inc()
            result.successful.append(enrollment)

        logger.info(
            "Bulk enrollment course=%s total=%d successful=%d failed=%d",
            course_id,
            len(emails),
            len(result.successful),
            len(result.failed),
            extra={"course_id": str(course_id)},
        )
        return result
