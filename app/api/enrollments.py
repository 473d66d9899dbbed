"""Enrollment endpoints.

Administrative routes (create, transitions, listings, stats, sweeps)
require the admin role.  Learners can read their own enrollments,
their own progress and their own access decisions.

Domain errors propagate to the EnrollmentError handler in app.main.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.dependencies import (
    ensure_can_view,
    get_services,
    principal_user_id,
    require_role,
    require_user,
)
from app.api.enrollment_schemas import (
    AccessOut,
    BulkEnrollmentIn,
    BulkResultOut,
    EnrollmentCreateIn,
    EnrollmentDetailOut,
    EnrollmentOut,
    EnrollmentPageOut,
    EnrollmentQuery,
    EnrollmentUpdateIn,
    ExtendIn,
    ManualEnrollmentIn,
    ProgressOut,
    StatsOut,
    SweepOut,
)
from app.core.config import SETTINGS
from app.models.principal import Principal
from app.services.wiring import Services

router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])

AdminPrincipal = Annotated[Principal, Depends(require_role("admin"))]
UserPrincipal = Annotated[Principal, Depends(require_user)]
Svc = Annotated[Services, Depends(get_services)]
ListQuery = Annotated[EnrollmentQuery, Query()]


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


@router.post(
    "", response_model=EnrollmentDetailOut, status_code=status.HTTP_201_CREATED
)
async def create_enrollment(
    body: EnrollmentCreateIn, principal: AdminPrincipal, svc: Svc
) -> EnrollmentDetailOut:
    enrollment = await svc.lifecycle.create(
        user_id=body.user_id,
        course_id=body.course_id,
        enrolled_by_id=body.enrolled_by_id or principal_user_id(principal),
        payment_confirmed=body.payment_confirmed,
        expires_at=body.expires_at,
    )
    return EnrollmentDetailOut.from_view(await svc.queries.get(enrollment.id))


@router.post(
    "/manual", response_model=EnrollmentDetailOut, status_code=status.HTTP_201_CREATED
)
async def create_manual_enrollment(
    body: ManualEnrollmentIn, principal: AdminPrincipal, svc: Svc
) -> EnrollmentDetailOut:
    enrollment = await svc.lifecycle.create_by_email(
        email=body.user_email,
        course_id=body.course_id,
        enrolled_by_id=principal_user_id(principal),
        payment_confirmed=body.payment_confirmed,
        expires_at=body.expires_at,
    )
    return EnrollmentDetailOut.from_view(await svc.queries.get(enrollment.id))


@router.post("/bulk", response_model=BulkResultOut)
async def bulk_enroll(
    body: BulkEnrollmentIn, principal: AdminPrincipal, svc: Svc
) -> BulkResultOut:
    result = await svc.bulk.enroll(
        course_id=body.course_id,
        emails=[u.user_email for u in body.users],
        enrolled_by_id=principal_user_id(principal),
        payment_confirmed=body.payment_confirmed,
        expires_at=body.expires_at,
    )
    return BulkResultOut.from_result(result)


# ---------------------------------------------------------------------------
# Listings and stats
# ---------------------------------------------------------------------------


@router.get("", response_model=EnrollmentPageOut)
async def list_enrollments(
    query: ListQuery, _admin: AdminPrincipal, svc: Svc
) -> EnrollmentPageOut:
    page = await svc.queries.list_enrollments(query.to_filter(), query.to_page())
    return EnrollmentPageOut.from_page(page)


@router.get("/stats", response_model=StatsOut, response_model_exclude_none=True)
async def enrollment_stats(_admin: AdminPrincipal, svc: Svc) -> StatsOut:
    return StatsOut.from_stats(await svc.queries.stats())


@router.get("/pending-payment", response_model=EnrollmentPageOut)
async def list_pending_payment(
    query: ListQuery, _admin: AdminPrincipal, svc: Svc
) -> EnrollmentPageOut:
    page = await svc.queries.list_pending_payment(query.to_filter(), query.to_page())
    return EnrollmentPageOut.from_page(page)


@router.get("/expired", response_model=EnrollmentPageOut)
async def list_expired(
    query: ListQuery, _admin: AdminPrincipal, svc: Svc
) -> EnrollmentPageOut:
    page = await svc.queries.list_expired(query.to_filter(), query.to_page())
    return EnrollmentPageOut.from_page(page)


@router.get("/expiring-soon", response_model=list[EnrollmentDetailOut])
async def list_expiring_soon(
    _admin: AdminPrincipal,
    svc: Svc,
    days: Annotated[int, Query(ge=1, le=365)] = SETTINGS.expiring_soon_days,
) -> list[EnrollmentDetailOut]:
    views = await svc.queries.list_expiring_soon(days)
    return [EnrollmentDetailOut.from_view(v) for v in views]


@router.get("/my-courses", response_model=EnrollmentPageOut)
async def list_my_enrollments(
    query: ListQuery, principal: UserPrincipal, svc: Svc
) -> EnrollmentPageOut:
    page = await svc.queries.list_for_user(
        principal_user_id(principal), query.to_filter(), query.to_page()
    )
    return EnrollmentPageOut.from_page(page)


@router.get("/user/{user_id}", response_model=EnrollmentPageOut)
async def list_user_enrollments(
    user_id: UUID, query: ListQuery, principal: UserPrincipal, svc: Svc
) -> EnrollmentPageOut:
    ensure_can_view(principal, user_id)
    page = await svc.queries.list_for_user(user_id, query.to_filter(), query.to_page())
    return EnrollmentPageOut.from_page(page)


@router.get("/course/{course_id}", response_model=EnrollmentPageOut)
async def list_course_enrollments(
    course_id: UUID, query: ListQuery, _admin: AdminPrincipal, svc: Svc
) -> EnrollmentPageOut:
    page = await svc.queries.list_for_course(
        course_id, query.to_filter(), query.to_page()
    )
    return EnrollmentPageOut.from_page(page)


@router.get(
    "/course/{course_id}/stats",
    response_model=StatsOut,
    response_model_exclude_none=True,
)
async def course_enrollment_stats(
    course_id: UUID, _admin: AdminPrincipal, svc: Svc
) -> StatsOut:
    return StatsOut.from_stats(await svc.queries.course_stats(course_id))


# ---------------------------------------------------------------------------
# Access checks
# ---------------------------------------------------------------------------


def _subject(principal: Principal, user_id: UUID | None) -> UUID:
    """Whose access to check: the caller, or (admins only) someone else."""
    if user_id is None:
        return principal_user_id(principal)
    ensure_can_view(principal, user_id)
    return user_id


@router.get("/check-access/{course_id}", response_model=AccessOut)
async def check_course_access(
    course_id: UUID,
    principal: UserPrincipal,
    svc: Svc,
    user_id: UUID | None = None,
) -> AccessOut:
    decision = await svc.access.check_course_access(
        course_id, _subject(principal, user_id)
    )
    return AccessOut.from_decision(decision)


@router.get("/check-access/{course_id}/lesson/{lesson_id}", response_model=AccessOut)
async def check_lesson_access(
    course_id: UUID,
    lesson_id: UUID,
    principal: UserPrincipal,
    svc: Svc,
    user_id: UUID | None = None,
) -> AccessOut:
    decision = await svc.access.check_lesson_access(
        course_id, lesson_id, _subject(principal, user_id)
    )
    return AccessOut.from_decision(decision)


# ---------------------------------------------------------------------------
# Housekeeping
# ---------------------------------------------------------------------------


@router.post("/cleanup-expired", response_model=SweepOut)
async def cleanup_expired(_admin: AdminPrincipal, svc: Svc) -> SweepOut:
    return SweepOut.from_result(await svc.sweeper.sweep())


# ---------------------------------------------------------------------------
# Single enrollment
# ---------------------------------------------------------------------------


@router.get("/{enrollment_id}", response_model=EnrollmentDetailOut)
async def get_enrollment(
    enrollment_id: UUID, principal: UserPrincipal, svc: Svc
) -> EnrollmentDetailOut:
    view = await svc.queries.get(enrollment_id)
    ensure_can_view(principal, view.enrollment.user_id)
    return EnrollmentDetailOut.from_view(view)


@router.get("/{enrollment_id}/progress", response_model=ProgressOut)
async def get_enrollment_progress(
    enrollment_id: UUID, principal: UserPrincipal, svc: Svc
) -> ProgressOut:
    enrollment = await svc.lifecycle.get(enrollment_id)
    ensure_can_view(principal, enrollment.user_id)
    return ProgressOut.from_domain(await svc.queries.get_progress(enrollment_id))


@router.patch("/{enrollment_id}", response_model=EnrollmentOut)
async def update_enrollment(
    enrollment_id: UUID, body: EnrollmentUpdateIn, _admin: AdminPrincipal, svc: Svc
) -> EnrollmentOut:
    updated = await svc.lifecycle.update(enrollment_id, body.to_patch())
    return EnrollmentOut.from_domain(updated)


@router.patch("/{enrollment_id}/confirm-payment", response_model=EnrollmentOut)
async def confirm_payment(
    enrollment_id: UUID, _admin: AdminPrincipal, svc: Svc
) -> EnrollmentOut:
    return EnrollmentOut.from_domain(await svc.lifecycle.confirm_payment(enrollment_id))


@router.patch("/{enrollment_id}/activate", response_model=EnrollmentOut)
async def activate_enrollment(
    enrollment_id: UUID, _admin: AdminPrincipal, svc: Svc
) -> EnrollmentOut:
    return EnrollmentOut.from_domain(await svc.lifecycle.activate(enrollment_id))


@router.patch("/{enrollment_id}/suspend", response_model=EnrollmentOut)
async def suspend_enrollment(
    enrollment_id: UUID, _admin: AdminPrincipal, svc: Svc
) -> EnrollmentOut:
    return EnrollmentOut.from_domain(await svc.lifecycle.suspend(enrollment_id))


@router.patch("/{enrollment_id}/complete", response_model=EnrollmentOut)
async def complete_enrollment(
    enrollment_id: UUID, _admin: AdminPrincipal, svc: Svc
) -> EnrollmentOut:
    return EnrollmentOut.from_domain(await svc.lifecycle.complete(enrollment_id))


@router.patch("/{enrollment_id}/extend", response_model=EnrollmentOut)
async def extend_enrollment(
    enrollment_id: UUID, body: ExtendIn, _admin: AdminPrincipal, svc: Svc
) -> EnrollmentOut:
    return EnrollmentOut.from_domain(
        await svc.lifecycle.extend(enrollment_id, body.months)
    )


@router.delete("/{enrollment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_enrollment(
    enrollment_id: UUID, _admin: AdminPrincipal, svc: Svc
) -> None:
    await svc.lifecycle.remove(enrollment_id)
