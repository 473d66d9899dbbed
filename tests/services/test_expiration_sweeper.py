from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import timedelta

from app.db.stores import MemoryStores
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.services.wiring import Services
from tests.conftest import NOW, FixedClock, seed_course, seed_user


def _add(stores: MemoryStores, email: str, course, **changes) -> Enrollment:
    user = seed_user(stores, email)
    enrollment = Enrollment.new(
        user_id=user.id,
        course_id=course.id,
        enrolled_by_id=user.id,
        enrolled_at=NOW - timedelta(days=90),
    )
    enrollment = replace(enrollment, **changes)
    asyncio.run(stores.enrollments.add(enrollment))
    return enrollment


def test_sweep_expires_lapsed_enrollments(
    services: Services, stores: MemoryStores
) -> None:
    course, _ = seed_course(stores)
    lapsed = _add(stores, "a@example.com", course, expires_at=NOW - timedelta(days=1))
    suspended = _add(
        stores,
        "b@example.com",
        course,
        status=EnrollmentStatus.SUSPENDED,
        expires_at=NOW - timedelta(days=3),
    )
    current = _add(stores, "c@example.com", course, expires_at=NOW + timedelta(days=1))
    never = _add(stores, "d@example.com", course)

    result = asyncio.run(services.sweeper.sweep())

    assert result.updated == 2
    assert result.message == "Updated 2 expired enrollments"
    assert {d.id for d in result.details} == {lapsed.id, suspended.id}
    detail = next(d for d in result.details if d.id == lapsed.id)
    assert detail.expired_at == lapsed.expires_at
    assert detail.user_id == lapsed.user_id

    by_id = stores.enrollments._by_id
    assert by_id[lapsed.id].status == EnrollmentStatus.EXPIRED
    assert by_id[suspended.id].status == EnrollmentStatus.EXPIRED
    assert by_id[current.id].status == EnrollmentStatus.ACTIVE
    assert by_id[never.id].status == EnrollmentStatus.ACTIVE


def test_sweep_is_idempotent(services: Services, stores: MemoryStores) -> None:
    course, _ = seed_course(stores)
    _add(stores, "a@example.com", course, expires_at=NOW - timedelta(days=1))

    assert asyncio.run(services.sweeper.sweep()).updated == 1
    second = asyncio.run(services.sweeper.sweep())
    assert second.updated == 0
    assert second.details == []
    assert second.message == "No expired enrollments found"


def test_sweep_follows_the_clock(
    services: Services, stores: MemoryStores, clock: FixedClock
) -> None:
    course, _ = seed_course(stores)
    _add(stores, "a@example.com", course, expires_at=NOW + timedelta(hours=1))

    assert asyncio.run(services.sweeper.sweep()).updated == 0
    clock.now = NOW + timedelta(hours=2)
    assert asyncio.run(services.sweeper.sweep()).updated == 1
