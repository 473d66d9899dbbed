"""PostgreSQL implementation of EnrollmentRepo.

Uniqueness of (user_id, course_id) is enforced by the
uq_enrollments_user_course constraint; the insert runs inside a
SAVEPOINT so a violation leaves the outer transaction usable.

Mutations are single UPDATE ... RETURNING statements, so each one is
atomic at the row level.  expire_lapsed() re-checks its WHERE clause
after acquiring row locks, which makes concurrent sweeps skip rows the
other sweep already transitioned instead of failing.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import ColumnElement, and_, delete, func, or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import DuplicateEnrollmentError, PersistenceError
from app.db.tables import CourseRow, EnrollmentRow, UserRow
from app.models.enrollment import (
    Enrollment,
    EnrollmentFilter,
    EnrollmentPatch,
    EnrollmentStatus,
)

_UNIQUE_PAIR = "uq_enrollments_user_course"

_COLUMNS = (
    EnrollmentRow.id,
    EnrollmentRow.user_id,
    EnrollmentRow.course_id,
    EnrollmentRow.enrolled_by_id,
    EnrollmentRow.status,
    EnrollmentRow.payment_confirmed,
    EnrollmentRow.enrolled_at,
    EnrollmentRow.expires_at,
)


class PgEnrollmentRepo:
    """Satisfies the EnrollmentRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, enrollment: Enrollment) -> None:
        row = EnrollmentRow(
            id=enrollment.id,
            user_id=enrollment.user_id,
            course_id=enrollment.course_id,
            enrolled_by_id=enrollment.enrolled_by_id,
            status=enrollment.status.value,
            payment_confirmed=enrollment.payment_confirmed,
            enrolled_at=enrollment.enrolled_at,
            expires_at=enrollment.expires_at,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError as exc:
            if _UNIQUE_PAIR in str(exc.orig):
                raise DuplicateEnrollmentError() from None
            raise PersistenceError(str(exc.orig)) from exc
        except DBAPIError as exc:
            raise PersistenceError(str(exc.orig)) from exc

    async def get_by_id(self, enrollment_id: UUID) -> Enrollment | None:
        stmt = select(*_COLUMNS).where(EnrollmentRow.id == enrollment_id)
        row = (await self._session.execute(stmt)).first()
        return _row_to_enrollment(row) if row is not None else None

    async def get_by_user_and_course(
        self, user_id: UUID, course_id: UUID
    ) -> Enrollment | None:
        stmt = select(*_COLUMNS).where(
            EnrollmentRow.user_id == user_id, EnrollmentRow.course_id == course_id
        )
        row = (await self._session.execute(stmt)).first()
        return _row_to_enrollment(row) if row is not None else None

    async def find_many(
        self,
        flt: EnrollmentFilter,
        *,
        sort_by: str = "enrolled_at",
        sort_order: str = "desc",
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Enrollment]:
        column = getattr(EnrollmentRow, sort_by)
        stmt = (
            select(*_COLUMNS)
            .where(*_where(flt))
            .order_by(column.desc() if sort_order == "desc" else column.asc())
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = (await self._session.execute(stmt)).all()
        return [_row_to_enrollment(r) for r in rows]

    async def count(self, flt: EnrollmentFilter) -> int:
        stmt = select(func.count(EnrollmentRow.id)).where(*_where(flt))
        return (await self._session.execute(stmt)).scalar_one()

    async def update(
        self, enrollment_id: UUID, patch: EnrollmentPatch
    ) -> Enrollment | None:
        values = _patch_values(patch)
        if not values:
            return await self.get_by_id(enrollment_id)
        stmt = (
            update(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .values(**values)
            .returning(*_COLUMNS)
        )
        try:
            async with self._session.begin_nested():
                row = (await self._session.execute(stmt)).first()
        except DBAPIError as exc:
            raise PersistenceError(str(exc.orig)) from exc
        return _row_to_enrollment(row) if row is not None else None

    async def confirm_payment(self, enrollment_id: UUID) -> Enrollment | None:
        stmt = (
            update(EnrollmentRow)
            .where(
                EnrollmentRow.id == enrollment_id,
                EnrollmentRow.payment_confirmed.is_(False),
            )
            .values(payment_confirmed=True, status=EnrollmentStatus.ACTIVE.value)
            .returning(*_COLUMNS)
        )
        row = (await self._session.execute(stmt)).first()
        return _row_to_enrollment(row) if row is not None else None

    async def delete(self, enrollment_id: UUID) -> bool:
        stmt = delete(EnrollmentRow).where(EnrollmentRow.id == enrollment_id)
        result = await self._session.execute(stmt)
        return (result.rowcount or 0) > 0

    async def expire_lapsed(self, now: datetime) -> list[Enrollment]:
        stmt = (
            update(EnrollmentRow)
            .where(
                EnrollmentRow.expires_at < now,
                EnrollmentRow.status != EnrollmentStatus.EXPIRED.value,
            )
            .values(status=EnrollmentStatus.EXPIRED.value)
            .returning(*_COLUMNS)
        )
        rows = (await self._session.execute(stmt)).all()
        return [_row_to_enrollment(r) for r in rows]


def _where(flt: EnrollmentFilter) -> list[ColumnElement[bool]]:
    clauses: list[ColumnElement[bool]] = []
    if flt.user_id is not None:
        clauses.append(EnrollmentRow.user_id == flt.user_id)
    if flt.course_id is not None:
        clauses.append(EnrollmentRow.course_id == flt.course_id)
    if flt.status is not None:
        clauses.append(EnrollmentRow.status == flt.status.value)
    if flt.payment_confirmed is not None:
        clauses.append(EnrollmentRow.payment_confirmed.is_(flt.payment_confirmed))
    if flt.expired is not None and flt.as_of is not None:
        if flt.expired:
            clauses.append(EnrollmentRow.expires_at < flt.as_of)
        else:
            clauses.append(
                or_(
                    EnrollmentRow.expires_at.is_(None),
                    EnrollmentRow.expires_at >= flt.as_of,
                )
            )
    if flt.expires_from is not None:
        clauses.append(EnrollmentRow.expires_at >= flt.expires_from)
    if flt.expires_until is not None:
        clauses.append(EnrollmentRow.expires_at <= flt.expires_until)
    if flt.enrolled_since is not None:
        clauses.append(EnrollmentRow.enrolled_at >= flt.enrolled_since)
    if flt.search:
        # autoescape: a typed "%" or "_" is matched literally, not as a wildcard
        term = flt.search
        matching_users = select(UserRow.id).where(
            or_(
                UserRow.first_name.icontains(term, autoescape=True),
                UserRow.last_name.icontains(term, autoescape=True),
                UserRow.email.icontains(term, autoescape=True),
            )
        )
        matching_courses = select(CourseRow.id).where(
            CourseRow.title.icontains(term, autoescape=True)
        )
        clauses.append(
            or_(
                EnrollmentRow.user_id.in_(matching_users),
                EnrollmentRow.course_id.in_(matching_courses),
            )
        )
    return [and_(*clauses)] if clauses else []


def _patch_values(patch: EnrollmentPatch) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if patch.status is not None:
        values["status"] = patch.status.value
    if patch.payment_confirmed is not None:
        values["payment_confirmed"] = patch.payment_confirmed
    if patch.clear_expiration:
        values["expires_at"] = None
    elif patch.expires_at is not None:
        values["expires_at"] = patch.expires_at
    return values


def _row_to_enrollment(row: Any) -> Enrollment:
    return Enrollment(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        enrolled_by_id=row.enrolled_by_id,
        status=EnrollmentStatus(row.status),
        payment_confirmed=row.payment_confirmed,
        enrolled_at=row.enrolled_at,
        expires_at=row.expires_at,
    )
