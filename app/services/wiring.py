"""Builds the enrollment services over one bundle of repositories."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from app.db.stores import Stores
from app.services.access_service import AccessService
from app.services.bulk_enrollment import BulkEnrollmentService
from app.services.enrollment_queries import EnrollmentQueries
from app.services.enrollment_service import EnrollmentService
from app.services.expiration_sweeper import ExpirationSweeper
from app.services.notifications import NotificationDispatcher
from app.services.progress_service import ProgressService


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Services:
    lifecycle: EnrollmentService
    queries: EnrollmentQueries
    progress: ProgressService
    access: AccessService
    bulk: BulkEnrollmentService
    sweeper: ExpirationSweeper


def build_services(
    stores: Stores,
    notifier: NotificationDispatcher,
    clock: Callable[[], datetime] = utc_now,
) -> Services:
    progress = ProgressService(stores.enrollments, stores.courses, stores.completions)
    lifecycle = EnrollmentService(
        enrollments=stores.enrollments,
        users=stores.users,
        courses=stores.courses,
        completions=stores.completions,
        certificates=stores.certificates,
        receipts=stores.receipts,
        notifier=notifier,
        clock=clock,
    )
    return Services(
        lifecycle=lifecycle,
        queries=EnrollmentQueries(
            enrollments=stores.enrollments,
            users=stores.users,
            courses=stores.courses,
            progress=progress,
            clock=clock,
        ),
        progress=progress,
        access=AccessService(stores.enrollments, stores.courses, clock),
        bulk=BulkEnrollmentService(lifecycle=lifecycle, courses=stores.courses),
        sweeper=ExpirationSweeper(stores.enrollments, clock),
    )
