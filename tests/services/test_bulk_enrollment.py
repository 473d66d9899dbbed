from __future__ import annotations

import asyncio
from dataclasses import replace
from uuid import UUID, uuid4

import pytest
from prometheus_client import REGISTRY

from app.core.errors import NotFoundError, PersistenceError
from app.db.stores import MemoryStores
from app.models.enrollment import Enrollment
from app.repos.enrollment_repo import InMemoryEnrollmentRepo
from app.services.notifications import QueueNotificationDispatcher
from app.services.task_queue import InMemoryTaskQueue
from app.services.wiring import Services, build_services
from tests.conftest import FixedClock, seed_course, seed_user


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def test_bulk_isolates_failures(services: Services, stores: MemoryStores) -> None:
    admin = seed_user(stores, "admin@example.com", roles=("admin",))
    course, _ = seed_course(stores)
    seed_user(stores, "a@example.com")
    seed_user(stores, "b@example.com")
    failed_before = _get_sample("enrollment_bulk_items_total", {"result": "failed"})

    result = asyncio.run(
        services.bulk.enroll(
            course_id=course.id,
            emails=["a@example.com", "ghost@example.com", "b@example.com"],
            enrolled_by_id=admin.id,
        )
    )

    assert result.summary == {"total": 3, "successful": 2, "failed": 1}
    assert result.failed[0].email == "ghost@example.com"
    assert result.failed[0].error == "User with email ghost@example.com not found"
    assert {e.course_id for e in result.successful} == {course.id}
    assert (
        _get_sample("enrollment_bulk_items_total", {"result": "failed"})
        - failed_before
        == 1
    )


def test_bulk_reports_existing_enrollment(
    services: Services, stores: MemoryStores
) -> None:
    admin = seed_user(stores, "admin@example.com", roles=("admin",))
    course, _ = seed_course(stores)
    seed_user(stores, "a@example.com")

    result = asyncio.run(
        services.bulk.enroll(
            course_id=course.id,
            emails=["a@example.com", "a@example.com"],
            enrolled_by_id=admin.id,
            payment_confirmed=True,
        )
    )

    assert result.summary == {"total": 2, "successful": 1, "failed": 1}
    assert result.successful[0].payment_confirmed is True
    assert result.failed[0].error == "User is already enrolled in this course"


def test_bulk_unknown_course_fails_whole_batch(
    services: Services, stores: MemoryStores
) -> None:
    admin = seed_user(stores, "admin@example.com", roles=("admin",))
    seed_user(stores, "a@example.com")

    with pytest.raises(NotFoundError, match="Course not found"):
        asyncio.run(
            services.bulk.enroll(
                course_id=uuid4(),
                emails=["a@example.com"],
                enrolled_by_id=admin.id,
            )
        )
    assert stores.enrollments._by_id == {}


class _FlakyRepo(InMemoryEnrollmentRepo):
    """Rejects inserts for one learner the way a failed database write would."""

    def __init__(self, broken_user_id: UUID) -> None:
        super().__init__()
        self._broken_user_id = broken_user_id

    async def add(self, enrollment: Enrollment) -> None:
        if enrollment.user_id == self._broken_user_id:
            raise PersistenceError("deadlock detected")
        await super().add(enrollment)


def test_bulk_store_failure_is_isolated(
    stores: MemoryStores, queue: InMemoryTaskQueue, clock: FixedClock
) -> None:
    admin = seed_user(stores, "admin@example.com", roles=("admin",))
    course, _ = seed_course(stores)
    seed_user(stores, "a@example.com")
    broken = seed_user(stores, "b@example.com")
    seed_user(stores, "c@example.com")
    repo = _FlakyRepo(broken.id)
    services = build_services(
        replace(stores, enrollments=repo), QueueNotificationDispatcher(queue), clock
    )

    result = asyncio.run(
        services.bulk.enroll(
            course_id=course.id,
            emails=["a@example.com", "b@example.com", "c@example.com"],
            enrolled_by_id=admin.id,
        )
    )

    assert result.summary == {"total": 3, "successful": 2, "failed": 1}
    assert result.failed[0].email == "b@example.com"
    assert result.failed[0].error == "Failed to create enrollment"
    assert len(repo._by_id) == 2
