from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import Protocol
from uuid import UUID

from app.core.errors import DuplicateEnrollmentError
from app.models.enrollment import (
    Enrollment,
    EnrollmentFilter,
    EnrollmentPatch,
    EnrollmentStatus,
)

SearchFields = Callable[[Enrollment], list[str]]


class EnrollmentRepo(Protocol):
    """Durable store of enrollments.

    add() must reject a second enrollment for the same (user_id,
    course_id) with DuplicateEnrollmentError, atomically.  Reads reflect
    the latest committed write.  add() and update() raise PersistenceError
    when the backing store rejects the write for any other reason.
    """

    async def add(self, enrollment: Enrollment) -> None: ...
    async def get_by_id(self, enrollment_id: UUID) -> Enrollment | None: ...
    async def get_by_user_and_course(
        self, user_id: UUID, course_id: UUID
    ) -> Enrollment | None: ...
    async def find_many(
        self,
        flt: EnrollmentFilter,
        *,
        sort_by: str = "enrolled_at",
        sort_order: str = "desc",
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Enrollment]: ...
    async def count(self, flt: EnrollmentFilter) -> int: ...
    async def update(
        self, enrollment_id: UUID, patch: EnrollmentPatch
    ) -> Enrollment | None: ...
    async def confirm_payment(self, enrollment_id: UUID) -> Enrollment | None: ...
    async def delete(self, enrollment_id: UUID) -> bool: ...
    async def expire_lapsed(self, now: datetime) -> list[Enrollment]: ...


def apply_patch(enrollment: Enrollment, patch: EnrollmentPatch) -> Enrollment:
    changes: dict[str, object] = {}
    if patch.status is not None:
        changes["status"] = patch.status
    if patch.payment_confirmed is not None:
        changes["payment_confirmed"] = patch.payment_confirmed
    if patch.clear_expiration:
        changes["expires_at"] = None
    elif patch.expires_at is not None:
        changes["expires_at"] = patch.expires_at
    return replace(enrollment, **changes)


def matches(
    enrollment: Enrollment,
    flt: EnrollmentFilter,
    search_fields: SearchFields | None = None,
) -> bool:
    """Evaluate an EnrollmentFilter in Python (AND across groups)."""
    if flt.user_id is not None and enrollment.user_id != flt.user_id:
        return False
    if flt.course_id is not None and enrollment.course_id != flt.course_id:
        return False
    if flt.status is not None and enrollment.status != flt.status:
        return False
    if (
        flt.payment_confirmed is not None
        and enrollment.payment_confirmed != flt.payment_confirmed
    ):
        return False

    expires_at = enrollment.expires_at
    if flt.expired is not None and flt.as_of is not None:
        lapsed = expires_at is not None and expires_at < flt.as_of
        if lapsed != flt.expired:
            return False
    if flt.expires_from is not None and (
        expires_at is None or expires_at < flt.expires_from
    ):
        return False
    if flt.expires_until is not None and (
        expires_at is None or expires_at > flt.expires_until
    ):
        return False
    if flt.enrolled_since is not None and enrollment.enrolled_at < flt.enrolled_since:
        return False

    if flt.search:
        needle = flt.search.lower()
        haystack = search_fields(enrollment) if search_fields else []
        if not any(needle in field.lower() for field in haystack):
            return False
    return True


def _sort_key(field: str) -> Callable[[Enrollment], tuple[bool, object]]:
    # Postgres ordering: NULLS LAST ascending, NULLS FIRST descending.
    def key(e: Enrollment) -> tuple[bool, object]:
        value = getattr(e, field)
        return (value is None, value)

    return key


class InMemoryEnrollmentRepo:
    """Dict-backed store.

    Every method body runs without awaiting, so on a single event loop
    the duplicate check and insert in add() cannot interleave with
    another coroutine.
    """

    def __init__(self, search_fields: SearchFields | None = None) -> None:
        self._by_id: dict[UUID, Enrollment] = {}
        self._by_pair: dict[tuple[UUID, UUID], UUID] = {}
        self._search_fields = search_fields

    async def add(self, enrollment: Enrollment) -> None:
        pair = (enrollment.user_id, enrollment.course_id)
        if pair in self._by_pair:
            raise DuplicateEnrollmentError()
        self._by_pair[pair] = enrollment.id
        self._by_id[enrollment.id] = enrollment

    async def get_by_id(self, enrollment_id: UUID) -> Enrollment | None:
        return self._by_id.get(enrollment_id)

    async def get_by_user_and_course(
        self, user_id: UUID, course_id: UUID
    ) -> Enrollment | None:
        eid = self._by_pair.get((user_id, course_id))
        return self._by_id.get(eid) if eid is not None else None

    async def find_many(
        self,
        flt: EnrollmentFilter,
        *,
        sort_by: str = "enrolled_at",
        sort_order: str = "desc",
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Enrollment]:
        rows = [
            e for e in self._by_id.values() if matches(e, flt, self._search_fields)
        ]
        rows.sort(key=_sort_key(sort_by), reverse=sort_order == "desc")
        end = None if limit is None else offset + limit
        return rows[offset:end]

    async def count(self, flt: EnrollmentFilter) -> int:
        return sum(
            1 for e in self._by_id.values() if matches(e, flt, self._search_fields)
        )

    async def update(
        self, enrollment_id: UUID, patch: EnrollmentPatch
    ) -> Enrollment | None:
        current = self._by_id.get(enrollment_id)
        if current is None:
            return None
        updated = apply_patch(current, patch)
        self._by_id[enrollment_id] = updated
        return updated

    async def confirm_payment(self, enrollment_id: UUID) -> Enrollment | None:
        current = self._by_id.get(enrollment_id)
        if current is None or current.payment_confirmed:
            return None
        updated = replace(
            current, payment_confirmed=True, status=EnrollmentStatus.ACTIVE
        )
        self._by_id[enrollment_id] = updated
        return updated

    async def delete(self, enrollment_id: UUID) -> bool:
        existing = self._by_id.pop(enrollment_id, None)
        if existing is None:
            return False
        self._by_pair.pop((existing.user_id, existing.course_id), None)
        return True

    async def expire_lapsed(self, now: datetime) -> list[Enrollment]:
        changed: list[Enrollment] = []
        for eid, e in list(self._by_id.items()):
            if e.is_lapsed(now) and e.status != EnrollmentStatus.EXPIRED:
                updated = replace(e, status=EnrollmentStatus.EXPIRED)
                self._by_id[eid] = updated
                changed.append(updated)
        return changed
