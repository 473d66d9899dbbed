"""Progress aggregation: completed / total lessons for a learner in a course.

Never cached.  Listing N enrollments costs N aggregations; callers that
need bulk efficiency should batch at the catalog layer.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from app.models.enrollment import Enrollment, ProgressSummary
from app.repos.completion_repo import CompletionRepo
from app.repos.course_repo import CourseRepo
from app.repos.enrollment_repo import EnrollmentRepo

logger = logging.getLogger(__name__)


def completion_percentage(completed: int, total: int) -> int:
    """Percentage rounded half-up to an integer; 0 for an empty course."""
    if total <= 0:
        return 0
    percentage = Decimal(completed) * 100 / Decimal(total)
    return int(percentage.quantize(Decimal("1."), rounding=ROUND_HALF_UP))


class ProgressService:
    def __init__(
        self,
        enrollments: EnrollmentRepo,
        courses: CourseRepo,
        completions: CompletionRepo,
    ) -> None:
        self._enrollments = enrollments
        self._courses = courses
        self._completions = completions

    async def compute(self, user_id: UUID, course_id: UUID) -> ProgressSummary:
        """Progress for a (user, course) pair; zero value when not enrolled."""
        enrollment = await self._enrollments.get_by_user_and_course(
            user_id, course_id
        )
        if enrollment is None:
            return ProgressSummary()
        return await self.compute_for(enrollment)

    async def compute_for(self, enrollment: Enrollment) -> ProgressSummary:
        total = await self._courses.count_lessons(enrollment.course_id)
        completed = await self._completions.count_completed(enrollment.id)
        if total > 0 and completed > total:
            # Ledger rows for lessons since removed from the catalog.
            logger.warning(
                "Completion ledger exceeds catalog for enrollment=%s (%d > %d)",
                enrollment.id,
                completed,
                total,
            )
            completed = total
        return ProgressSummary(
            completed_lessons=completed,
            total_lessons=total,
            completion_percentage=completion_percentage(completed, total),
        )
