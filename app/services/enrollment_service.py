"""Enrollment lifecycle: creation and state transitions.

States: ACTIVE, SUSPENDED, COMPLETED, EXPIRED.  A new enrollment is
ACTIVE with payment_confirmed=False until payment is confirmed.

activate/suspend/complete are unconditional: they may move between any
two states, and complete does not look at progress (administrative
override).  Every mutator re-reads the enrollment first and raises
NotFoundError if it is gone; nothing is cached between calls.

The enrollment notification on create is best-effort.  Its failure is
logged and counted, never raised, and never undoes the enrollment.
"""

from __future__ import annotations

import calendar
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import UUID

from app.core.errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    PersistenceError,
)
from app.core.metrics import ENROLLMENT_TRANSITIONS, NOTIFICATION_FAILURES
from app.models.course import Course
from app.models.enrollment import Enrollment, EnrollmentPatch, EnrollmentStatus
from app.repos.completion_repo import CompletionRepo
from app.repos.course_repo import CourseRepo
from app.repos.enrollment_repo import EnrollmentRepo
from app.repos.owned_records_repo import CertificateRepo, PaymentReceiptRepo
from app.repos.user_repo import UserRepo
from app.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


def add_months(value: datetime, months: int) -> datetime:
    """Calendar-month addition; a day past the end of the month is clamped.

    2024-01-31 + 1 month -> 2024-02-29.  Time of day and tzinfo are kept.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def enrollment_not_found(enrollment_id: UUID) -> NotFoundError:
    return NotFoundError(f"Enrollment with ID {enrollment_id} not found")


class EnrollmentService:
    def __init__(
        self,
        *,
        enrollments: EnrollmentRepo,
        users: UserRepo,
        courses: CourseRepo,
        completions: CompletionRepo,
        certificates: CertificateRepo,
        receipts: PaymentReceiptRepo,
        notifier: NotificationDispatcher,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._enrollments = enrollments
        self._users = users
        self._courses = courses
        self._completions = completions
        self._certificates = certificates
        self._receipts = receipts
        self._notifier = notifier
        self._clock = clock

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        *,
        user_id: UUID,
        course_id: UUID,
        enrolled_by_id: UUID,
        payment_confirmed: bool = False,
        expires_at: datetime | None = None,
    ) -> Enrollment:
        if await self._users.get_by_id(user_id) is None:
            raise NotFoundError("User not found")
        course = await self._courses.get_by_id(course_id)
        if course is None:
            raise NotFoundError("Course not found")
        if await self._users.get_by_id(enrolled_by_id) is None:
            raise NotFoundError("Enrolling user not found")

        if await self._enrollments.get_by_user_and_course(user_id, course_id):
            raise ConflictError("User is already enrolled in this course")

        enrollment = Enrollment.new(
            user_id=user_id,
            course_id=course_id,
            enrolled_by_id=enrolled_by_id,
            enrolled_at=self._clock(),
            payment_confirmed=payment_confirmed,
            expires_at=expires_at,
        )
        # The store re-checks the pair atomically; a racing create that
        # passed the read above fails here with DuplicateEnrollmentError.
        await self._enrollments.add(enrollment)
        self._record("create", enrollment)

        await self._notify(enrollment, course)
        return enrollment

    async def create_by_email(
        self,
        *,
        email: str,
        course_id: UUID,
        enrolled_by_id: UUID,
        payment_confirmed: bool = False,
        expires_at: datetime | None = None,
    ) -> Enrollment:
        user = await self._users.get_by_email(email)
        if user is None:
            raise NotFoundError(f"User with email {email} not found")
        return await self.create(
            user_id=user.id,
            course_id=course_id,
            enrolled_by_id=enrolled_by_id,
            payment_confirmed=payment_confirmed,
            expires_at=expires_at,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def get(self, enrollment_id: UUID) -> Enrollment:
        enrollment = await self._enrollments.get_by_id(enrollment_id)
        if enrollment is None:
            raise enrollment_not_found(enrollment_id)
        return enrollment

    async def confirm_payment(self, enrollment_id: UUID) -> Enrollment:
        current = await self.get(enrollment_id)
        if current.payment_confirmed:
            raise BadRequestError("Payment is already confirmed")

        updated = await self._enrollments.confirm_payment(enrollment_id)
        if updated is None:
            # Lost a race: confirmed or removed since the read above.
            if await self._enrollments.get_by_id(enrollment_id) is None:
                raise enrollment_not_found(enrollment_id)
            raise BadRequestError("Payment is already confirmed")
        self._record("confirm_payment", updated)
        return updated

    async def activate(self, enrollment_id: UUID) -> Enrollment:
        return await self._set_status(
            enrollment_id, EnrollmentStatus.ACTIVE, "activate"
        )

    async def suspend(self, enrollment_id: UUID) -> Enrollment:
        return await self._set_status(
            enrollment_id, EnrollmentStatus.SUSPENDED, "suspend"
        )

    async def complete(self, enrollment_id: UUID) -> Enrollment:
        return await self._set_status(
            enrollment_id, EnrollmentStatus.COMPLETED, "complete"
        )

    async def extend(self, enrollment_id: UUID, months: int) -> Enrollment:
        """Push expires_at forward by `months` from its current value.

        A never-expiring enrollment is extended from now.  The 1-12 bound
        on months is enforced by the API schema.
        """
        current = await self.get(enrollment_id)
        base = current.expires_at or self._clock()
        new_expiry = add_months(base, months)
        updated = await self._enrollments.update(
            enrollment_id, EnrollmentPatch(expires_at=new_expiry)
        )
        if updated is None:
            raise enrollment_not_found(enrollment_id)
        self._record("extend", updated)
        return updated

    async def update(self, enrollment_id: UUID, patch: EnrollmentPatch) -> Enrollment:
        await self.get(enrollment_id)
        try:
            updated = await self._enrollments.update(enrollment_id, patch)
        except PersistenceError:
            logger.exception("Update failed for enrollment=%s", enrollment_id)
            raise BadRequestError("Failed to update enrollment") from None
        if updated is None:
            raise enrollment_not_found(enrollment_id)
        self._record("update", updated)
        return updated

    async def remove(self, enrollment_id: UUID) -> Enrollment:
        """Delete an enrollment and every record it owns.

        Owned records go first (completions, certificates, receipts) so
        no orphan survives a failure part-way through.
        """
        enrollment = await self.get(enrollment_id)
        completions = await self._completions.delete_for_enrollment(enrollment_id)
        certificates = await self._certificates.delete_for_enrollment(enrollment_id)
        receipts = await self._receipts.delete_for_enrollment(enrollment_id)
        if not await self._enrollments.delete(enrollment_id):
            raise enrollment_not_found(enrollment_id)

        logger.info(
            "Removed enrollment=%s (completions=%d certificates=%d receipts=%d)",
            enrollment_id,
            completions,
            certificates,
            receipts,
            extra={"enrollment_id": str(enrollment_id), "transition": "remove"},
        )
        ENROLLMENT_TRANSITIONS.labels(transition="remove").inc()
        return enrollment

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _set_status(
        self, enrollment_id: UUID, status: EnrollmentStatus, transition: str
    ) -> Enrollment:
        await self.get(enrollment_id)
        updated = await self._enrollments.update(
            enrollment_id, EnrollmentPatch(status=status)
        )
        if updated is None:
            raise enrollment_not_found(enrollment_id)
        self._record(transition, updated)
        return updated

    def _record(self, transition: str, enrollment: Enrollment) -> None:
        ENROLLMENT_TRANSITIONS.labels(transition=transition).inc()
        logger.info(
            "Enrollment %s: id=%s status=%s payment_confirmed=%s",
            transition,
            enrollment.id,
            enrollment.status.value,
            enrollment.payment_confirmed,
            extra={
                "enrollment_id": str(enrollment.id),
                "course_id": str(enrollment.course_id),
                "transition": transition,
            },
        )

    async def _notify(self, enrollment: Enrollment, course: Course) -> None:
        try:
            await self._notifier.notify_enrollment(
                enrollment.user_id, course_id=course.id, course_title=course.title
            )
        except Exception:
            NOTIFICATION_FAILURES.inc()
            logger.exception(
                "Enrollment notification failed for user=%s course=%s",
                enrollment.user_id,
                course.id,
            )
