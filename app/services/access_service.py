"""Content access decisions.

Denial is a normal outcome, not an error: every check returns an
AccessDecision.  Course checks run in a fixed order and stop at the
first failure, so the reported reason is deterministic:

  1. no enrollment              -> not_enrolled
  2. status != ACTIVE           -> status name, lower-cased
  3. expires_at in the past     -> expired (even while status is ACTIVE)
  4. course not published       -> course_not_published
  5. otherwise                  -> granted

Payment confirmation is deliberately not a gate.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID

from app.core.metrics import ACCESS_DECISIONS
from app.models.course import LessonLocation
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.repos.course_repo import CourseRepo
from app.repos.enrollment_repo import EnrollmentRepo

logger = logging.getLogger(__name__)


class AccessReason(StrEnum):
    GRANTED = "granted"
    NOT_ENROLLED = "not_enrolled"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    EXPIRED = "expired"
    COURSE_NOT_PUBLISHED = "course_not_published"
    LESSON_NOT_FOUND = "lesson_not_found"


_MESSAGES = {
    AccessReason.NOT_ENROLLED: "Not enrolled in this course",
    AccessReason.SUSPENDED: "Enrollment is suspended",
    AccessReason.COMPLETED: "Enrollment is completed",
    AccessReason.EXPIRED: "Enrollment has expired",
    AccessReason.COURSE_NOT_PUBLISHED: "Course is not published",
    AccessReason.LESSON_NOT_FOUND: "Lesson not found in this course",
}


@dataclass(frozen=True, slots=True)
class AccessDecision:
    has_access: bool
    reason: AccessReason
    message: str
    enrollment: Enrollment | None = None
    lesson: LessonLocation | None = None


def _denied(reason: AccessReason, enrollment: Enrollment | None) -> AccessDecision:
    return AccessDecision(
        has_access=False,
        reason=reason,
        message=_MESSAGES[reason],
        enrollment=enrollment,
    )


class AccessService:
    def __init__(
        self,
        enrollments: EnrollmentRepo,
        courses: CourseRepo,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._enrollments = enrollments
        self._courses = courses
        self._clock = clock

    async def check_course_access(
        self, course_id: UUID, user_id: UUID
    ) -> AccessDecision:
        decision = await self._evaluate_course(course_id, user_id)
        ACCESS_DECISIONS.labels(scope="course", reason=decision.reason.value).inc()
        return decision

    async def check_lesson_access(
        self, course_id: UUID, lesson_id: UUID, user_id: UUID
    ) -> AccessDecision:
        course_decision = await self._evaluate_course(course_id, user_id)
        if not course_decision.has_access:
            decision = course_decision
        else:
            location = await self._courses.find_lesson(course_id, lesson_id)
            if location is None:
                decision = _denied(
                    AccessReason.LESSON_NOT_FOUND, course_decision.enrollment
                )
            else:
                decision = AccessDecision(
                    has_access=True,
                    reason=AccessReason.GRANTED,
                    message="Access granted to lesson",
                    enrollment=course_decision.enrollment,
                    lesson=location,
                )
        ACCESS_DECISIONS.labels(scope="lesson", reason=decision.reason.value).inc()
        return decision

    async def _evaluate_course(
        self, course_id: UUID, user_id: UUID
    ) -> AccessDecision:
        enrollment = await self._enrollments.get_by_user_and_course(
            user_id, course_id
        )
        if enrollment is None:
            return _denied(AccessReason.NOT_ENROLLED, None)

        if enrollment.status != EnrollmentStatus.ACTIVE:
            return _denied(AccessReason(enrollment.status.value.lower()), enrollment)

        if enrollment.is_lapsed(self._clock()):
            return _denied(AccessReason.EXPIRED, enrollment)

        course = await self._courses.get_by_id(course_id)
        if course is None or not course.is_published:
            return _denied(AccessReason.COURSE_NOT_PUBLISHED, enrollment)

        logger.debug("Access granted user=%s course=%s", user_id, course_id)
        return AccessDecision(
            has_access=True,
            reason=AccessReason.GRANTED,
            message="Access granted",
            enrollment=enrollment,
        )
