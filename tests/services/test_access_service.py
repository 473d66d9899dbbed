"""Access decision tests.

The checks are ordered; the reported reason is the first failing rule,
so several tests deliberately break more than one rule at once.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import timedelta
from uuid import uuid4

import pytest
from prometheus_client import REGISTRY

from app.db.stores import MemoryStores
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.services.access_service import AccessReason
from app.services.wiring import Services
from tests.conftest import NOW, seed_course, seed_user


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def _enroll(stores: MemoryStores, course_id, **changes) -> Enrollment:
    learner = seed_user(stores, f"{uuid4().hex[:8]}@example.com")
    enrollment = Enrollment.new(
        user_id=learner.id,
        course_id=course_id,
        enrolled_by_id=learner.id,
        enrolled_at=NOW - timedelta(days=10),
    )
    enrollment = replace(enrollment, **changes)
    asyncio.run(stores.enrollments.add(enrollment))
    return enrollment


def test_active_enrollment_is_granted(services: Services, stores: MemoryStores) -> None:
    course, _ = seed_course(stores)
    enrollment = _enroll(stores, course.id)

    decision = asyncio.run(
        services.access.check_course_access(course.id, enrollment.user_id)
    )
    assert decision.has_access is True
    assert decision.reason == AccessReason.GRANTED
    assert decision.message == "Access granted"
    assert decision.enrollment == enrollment


def test_not_enrolled(services: Services, stores: MemoryStores) -> None:
    course, _ = seed_course(stores)
    decision = asyncio.run(services.access.check_course_access(course.id, uuid4()))
    assert decision.has_access is False
    assert decision.reason == AccessReason.NOT_ENROLLED
    assert decision.message == "Not enrolled in this course"
    assert decision.enrollment is None


def test_payment_is_not_a_gate(services: Services, stores: MemoryStores) -> None:
    course, _ = seed_course(stores)
    enrollment = _enroll(stores, course.id, payment_confirmed=False)

    decision = asyncio.run(
        services.access.check_course_access(course.id, enrollment.user_id)
    )
    assert decision.has_access is True


@pytest.mark.parametrize(
    "status,reason",
    [
        (EnrollmentStatus.SUSPENDED, AccessReason.SUSPENDED),
        (EnrollmentStatus.COMPLETED, AccessReason.COMPLETED),
        (EnrollmentStatus.EXPIRED, AccessReason.EXPIRED),
    ],
)
def test_inactive_status_is_denied(
    services: Services,
    stores: MemoryStores,
    status: EnrollmentStatus,
    reason: AccessReason,
) -> None:
    course, _ = seed_course(stores)
    enrollment = _enroll(stores, course.id, status=status)

    decision = asyncio.run(
        services.access.check_course_access(course.id, enrollment.user_id)
    )
    assert decision.has_access is False
    assert decision.reason == reason
    assert decision.enrollment == enrollment


def test_status_is_checked_before_expiry(
    services: Services, stores: MemoryStores
) -> None:
    course, _ = seed_course(stores)
    enrollment = _enroll(
        stores,
        course.id,
        status=EnrollmentStatus.SUSPENDED,
        expires_at=NOW - timedelta(days=1),
    )

    decision = asyncio.run(
        services.access.check_course_access(course.id, enrollment.user_id)
    )
    assert decision.reason == AccessReason.SUSPENDED
    assert decision.message == "Enrollment is suspended"


def test_lapsed_active_enrollment_is_expired(
    services: Services, stores: MemoryStores
) -> None:
    # The sweep has not run yet; the lapse is still caught.
    course, _ = seed_course(stores)
    enrollment = _enroll(stores, course.id, expires_at=NOW - timedelta(seconds=1))

    decision = asyncio.run(
        services.access.check_course_access(course.id, enrollment.user_id)
    )
    assert decision.has_access is False
    assert decision.reason == AccessReason.EXPIRED
    assert decision.message == "Enrollment has expired"


def test_future_expiry_is_granted(services: Services, stores: MemoryStores) -> None:
    course, _ = seed_course(stores)
    enrollment = _enroll(stores, course.id, expires_at=NOW + timedelta(days=1))

    decision = asyncio.run(
        services.access.check_course_access(course.id, enrollment.user_id)
    )
    assert decision.has_access is True


def test_expiry_is_checked_before_publication(
    services: Services, stores: MemoryStores
) -> None:
    course, _ = seed_course(stores, status="draft")
    enrollment = _enroll(stores, course.id, expires_at=NOW - timedelta(days=1))

    decision = asyncio.run(
        services.access.check_course_access(course.id, enrollment.user_id)
    )
    assert decision.reason == AccessReason.EXPIRED


@pytest.mark.parametrize("course_status", ["draft", "archived"])
def test_unpublished_course_is_denied(
    services: Services, stores: MemoryStores, course_status: str
) -> None:
    course, _ = seed_course(stores, status=course_status)
    enrollment = _enroll(stores, course.id)

    decision = asyncio.run(
        services.access.check_course_access(course.id, enrollment.user_id)
    )
    assert decision.has_access is False
    assert decision.reason == AccessReason.COURSE_NOT_PUBLISHED
    assert decision.message == "Course is not published"


# ---- lesson access ----


def test_lesson_access_granted_with_location(
    services: Services, stores: MemoryStores
) -> None:
    course, lessons = seed_course(stores)
    enrollment = _enroll(stores, course.id)
    lesson = lessons[2]

    decision = asyncio.run(
        services.access.check_lesson_access(course.id, lesson.id, enrollment.user_id)
    )
    assert decision.has_access is True
    assert decision.reason == AccessReason.GRANTED
    assert decision.message == "Access granted to lesson"
    assert decision.lesson is not None
    assert decision.lesson.lesson == lesson
    assert decision.lesson.module.title == "Module 2"


def test_lesson_of_another_course_is_not_found(
    services: Services, stores: MemoryStores
) -> None:
    course, _ = seed_course(stores)
    _, foreign_lessons = seed_course(stores, "Advanced Python")
    enrollment = _enroll(stores, course.id)

    decision = asyncio.run(
        services.access.check_lesson_access(
            course.id, foreign_lessons[0].id, enrollment.user_id
        )
    )
    assert decision.has_access is False
    assert decision.reason == AccessReason.LESSON_NOT_FOUND
    assert decision.enrollment == enrollment
    assert decision.lesson is None


def test_lesson_check_reports_course_denial_first(
    services: Services, stores: MemoryStores
) -> None:
    course, _ = seed_course(stores)
    enrollment = _enroll(stores, course.id, status=EnrollmentStatus.SUSPENDED)

    decision = asyncio.run(
        services.access.check_lesson_access(course.id, uuid4(), enrollment.user_id)
    )
    assert decision.reason == AccessReason.SUSPENDED


def test_decisions_are_counted(services: Services, stores: MemoryStores) -> None:
    course, _ = seed_course(stores)
    labels = {"scope": "course", "reason": "not_enrolled"}
    before = _get_sample("enrollment_access_decisions_total", labels)

    asyncio.run(services.access.check_course_access(course.id, uuid4()))

    assert _get_sample("enrollment_access_decisions_total", labels) - before == 1
