"""Repository bundles.

memory_stores is the process-wide in-memory bundle used when
DATABASE_URL is unset.  pg_stores() builds a bundle bound to one
session, so everything a request does commits or rolls back together.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enrollment import Enrollment
from app.repos.completion_repo import CompletionRepo, InMemoryCompletionRepo
from app.repos.course_repo import CourseRepo, InMemoryCourseRepo
from app.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from app.repos.owned_records_repo import (
    CertificateRepo,
    InMemoryCertificateRepo,
    InMemoryPaymentReceiptRepo,
    PaymentReceiptRepo,
)
from app.repos.pg_course_repo import PgCourseRepo
from app.repos.pg_enrollment_repo import PgEnrollmentRepo
from app.repos.pg_records_repo import (
    PgCertificateRepo,
    PgCompletionRepo,
    PgPaymentReceiptRepo,
)
from app.repos.pg_user_repo import PgUserRepo
from app.repos.user_repo import InMemoryUserRepo, UserRepo


@dataclass(frozen=True)
class Stores:
    users: UserRepo
    courses: CourseRepo
    enrollments: EnrollmentRepo
    completions: CompletionRepo
    certificates: CertificateRepo
    receipts: PaymentReceiptRepo


@dataclass(frozen=True)
class MemoryStores(Stores):
    # Narrowed for seeding helpers (add, add_module, record ...).
    users: InMemoryUserRepo
    courses: InMemoryCourseRepo
    enrollments: InMemoryEnrollmentRepo
    completions: InMemoryCompletionRepo
    certificates: InMemoryCertificateRepo
    receipts: InMemoryPaymentReceiptRepo


def build_memory_stores() -> MemoryStores:
    users = InMemoryUserRepo()
    courses = InMemoryCourseRepo()

    def search_fields(enrollment: Enrollment) -> list[str]:
        fields: list[str] = []
        user = users.lookup(enrollment.user_id)
        if user is not None:
            fields += [user.first_name, user.last_name, user.email]
        course = courses.lookup(enrollment.course_id)
        if course is not None:
            fields.append(course.title)
        return fields

    return MemoryStores(
        users=users,
        courses=courses,
        enrollments=InMemoryEnrollmentRepo(search_fields=search_fields),
        completions=InMemoryCompletionRepo(),
        certificates=InMemoryCertificateRepo(),
        receipts=InMemoryPaymentReceiptRepo(),
    )


def pg_stores(session: AsyncSession) -> Stores:
    return Stores(
        users=PgUserRepo(session),
        courses=PgCourseRepo(session),
        enrollments=PgEnrollmentRepo(session),
        completions=PgCompletionRepo(session),
        certificates=PgCertificateRepo(session),
        receipts=PgPaymentReceiptRepo(session),
    )


memory_stores = build_memory_stores()
