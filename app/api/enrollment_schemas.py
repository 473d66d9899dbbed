"""Request and response models for /v1/enrollments."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, Field, field_validator

from app.models.course import Course
from app.models.enrollment import (
    Enrollment,
    EnrollmentFilter,
    EnrollmentPatch,
    EnrollmentStatus,
    PageRequest,
    ProgressSummary,
)
from app.models.user import User
from app.services.access_service import AccessDecision
from app.services.bulk_enrollment import BulkResult
from app.services.enrollment_queries import (
    MAX_PAGE_SIZE,
    EnrollmentPage,
    EnrollmentStats,
    EnrollmentView,
)
from app.services.expiration_sweeper import SweepResult


def _normalize_email(value: str) -> str:
    email = value.strip().lower()
    local, _, domain = email.partition("@")
    if not local or "." not in domain:
        raise ValueError("must be a valid email address")
    return email


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class EnrollmentCreateIn(BaseModel):
    user_id: UUID
    course_id: UUID
    enrolled_by_id: UUID | None = None  # defaults to the caller
    payment_confirmed: bool = False
    expires_at: AwareDatetime | None = None


class ManualEnrollmentIn(BaseModel):
    user_email: str
    course_id: UUID
    payment_confirmed: bool = False
    expires_at: AwareDatetime | None = None

    @field_validator("user_email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class BulkUserIn(BaseModel):
    user_email: str

    @field_validator("user_email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class BulkEnrollmentIn(BaseModel):
    course_id: UUID
    users: list[BulkUserIn] = Field(min_length=1, max_length=500)
    payment_confirmed: bool = False
    expires_at: AwareDatetime | None = None


class EnrollmentUpdateIn(BaseModel):
    status: EnrollmentStatus | None = None
    payment_confirmed: bool | None = None
    expires_at: AwareDatetime | None = None

    def to_patch(self) -> EnrollmentPatch:
        # An explicit "expires_at": null removes the expiration.
        clear = "expires_at" in self.model_fields_set and self.expires_at is None
        return EnrollmentPatch(
            status=self.status,
            payment_confirmed=self.payment_confirmed,
            expires_at=self.expires_at,
            clear_expiration=clear,
        )


class ExtendIn(BaseModel):
    months: int = Field(ge=1, le=12)


class EnrollmentQuery(BaseModel):
    """Query-string filters shared by the list endpoints."""

    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=MAX_PAGE_SIZE)
    user_id: UUID | None = None
    course_id: UUID | None = None
    status: EnrollmentStatus | None = None
    payment_confirmed: bool | None = None
    expired: bool | None = None
    search: str | None = Field(None, max_length=100)
    sort_by: Literal["enrolled_at", "expires_at", "status", "payment_confirmed"] = (
        "enrolled_at"
    )
    sort_order: Literal["asc", "desc"] = "desc"

    def to_filter(self) -> EnrollmentFilter:
        return EnrollmentFilter(
            user_id=self.user_id,
            course_id=self.course_id,
            status=self.status,
            payment_confirmed=self.payment_confirmed,
            expired=self.expired,
            search=self.search.strip() if self.search else None,
        )

    def to_page(self) -> PageRequest:
        return PageRequest(
            page=self.page,
            limit=self.limit,
            sort_by=self.sort_by,
            sort_order=self.sort_order,
        )


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class EnrollmentOut(BaseModel):
    id: UUID
    user_id: UUID
    course_id: UUID
    enrolled_by_id: UUID
    status: EnrollmentStatus
    payment_confirmed: bool
    enrolled_at: datetime
    expires_at: datetime | None

    @classmethod
    def from_domain(cls, e: Enrollment) -> EnrollmentOut:
        return cls(
            id=e.id,
            user_id=e.user_id,
            course_id=e.course_id,
            enrolled_by_id=e.enrolled_by_id,
            status=e.status,
            payment_confirmed=e.payment_confirmed,
            enrolled_at=e.enrolled_at,
            expires_at=e.expires_at,
        )


class ProgressOut(BaseModel):
    completed_lessons: int
    total_lessons: int
    completion_percentage: int

    @classmethod
    def from_domain(cls, p: ProgressSummary) -> ProgressOut:
        return cls(
            completed_lessons=p.completed_lessons,
            total_lessons=p.total_lessons,
            completion_percentage=p.completion_percentage,
        )


class UserSummaryOut(BaseModel):
    id: UUID
    email: str
    first_name: str
    last_name: str

    @classmethod
    def from_domain(cls, u: User | None) -> UserSummaryOut | None:
        if u is None:
            return None
        return cls(
            id=u.id, email=u.email, first_name=u.first_name, last_name=u.last_name
        )


class CourseSummaryOut(BaseModel):
    id: UUID
    title: str
    slug: str
    status: str

    @classmethod
    def from_domain(cls, c: Course | None) -> CourseSummaryOut | None:
        if c is None:
            return None
        return cls(id=c.id, title=c.title, slug=c.slug, status=c.status)


class EnrollmentDetailOut(EnrollmentOut):
    user: UserSummaryOut | None
    course: CourseSummaryOut | None
    enrolled_by: UserSummaryOut | None
    progress: ProgressOut

    @classmethod
    def from_view(cls, v: EnrollmentView) -> EnrollmentDetailOut:
        base = EnrollmentOut.from_domain(v.enrollment)
        return cls(
            **base.model_dump(),
            user=UserSummaryOut.from_domain(v.user),
            course=CourseSummaryOut.from_domain(v.course),
            enrolled_by=UserSummaryOut.from_domain(v.enrolled_by),
            progress=ProgressOut.from_domain(v.progress),
        )


class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class EnrollmentPageOut(BaseModel):
    data: list[EnrollmentDetailOut]
    pagination: PaginationOut

    @classmethod
    def from_page(cls, p: EnrollmentPage) -> EnrollmentPageOut:
        return cls(
            data=[EnrollmentDetailOut.from_view(v) for v in p.data],
            pagination=PaginationOut(
                page=p.page, limit=p.limit, total=p.total, total_pages=p.total_pages
            ),
        )


class BulkFailureOut(BaseModel):
    email: str
    error: str


class BulkSummaryOut(BaseModel):
    total: int
    successful: int
    failed: int


class BulkResultOut(BaseModel):
    successful: list[EnrollmentOut]
    failed: list[BulkFailureOut]
    summary: BulkSummaryOut

    @classmethod
    def from_result(cls, r: BulkResult) -> BulkResultOut:
        return cls(
            successful=[EnrollmentOut.from_domain(e) for e in r.successful],
            failed=[BulkFailureOut(email=f.email, error=f.error) for f in r.failed],
            summary=BulkSummaryOut(**r.summary),
        )


class LessonOut(BaseModel):
    id: UUID
    title: str
    module_id: UUID
    module_title: str


class AccessOut(BaseModel):
    has_access: bool
    reason: str
    message: str
    enrollment: EnrollmentOut | None
    lesson: LessonOut | None = None

    @classmethod
    def from_decision(cls, d: AccessDecision) -> AccessOut:
        lesson = None
        if d.lesson is not None:
            lesson = LessonOut(
                id=d.lesson.lesson.id,
                title=d.lesson.lesson.title,
                module_id=d.lesson.module.id,
                module_title=d.lesson.module.title,
            )
        return cls(
            has_access=d.has_access,
            reason=d.reason.value,
            message=d.message,
            enrollment=(
                EnrollmentOut.from_domain(d.enrollment) if d.enrollment else None
            ),
            lesson=lesson,
        )


class StatusCountsOut(BaseModel):
    active: int
    suspended: int
    completed: int
    expired: int


class PaymentCountsOut(BaseModel):
    pending: int
    confirmed: int


class RecentOut(BaseModel):
    last_30_days: int


class CourseRefOut(BaseModel):
    id: UUID
    title: str


class StatsOut(BaseModel):
    total: int
    by_status: StatusCountsOut
    by_payment: PaymentCountsOut
    recent: RecentOut | None = None
    course: CourseRefOut | None = None

    @classmethod
    def from_stats(cls, s: EnrollmentStats) -> StatsOut:
        return cls(
            total=s.total,
            by_status=StatusCountsOut(
                active=s.active,
                suspended=s.suspended,
                completed=s.completed,
                expired=s.expired,
            ),
            by_payment=PaymentCountsOut(
                pending=s.pending_payment, confirmed=s.confirmed_payment
            ),
            recent=(
                RecentOut(last_30_days=s.last_30_days)
                if s.last_30_days is not None
                else None
            ),
            course=(
                CourseRefOut(id=s.course.id, title=s.course.title)
                if s.course is not None
                else None
            ),
        )


class ExpiredDetailOut(BaseModel):
    id: UUID
    user_id: UUID
    course_id: UUID
    expired_at: datetime | None


class SweepOut(BaseModel):
    message: str
    updated: int
    details: list[ExpiredDetailOut]

    @classmethod
    def from_result(cls, r: SweepResult) -> SweepOut:
        return cls(
            message=r.message,
            updated=r.updated,
            details=[
                ExpiredDetailOut(
                    id=d.id,
                    user_id=d.user_id,
                    course_id=d.course_id,
                    expired_at=d.expired_at,
                )
                for d in r.details
            ],
        )
