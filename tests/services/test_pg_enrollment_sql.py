"""SQL shape of the Postgres enrollment filters, compiled without a database."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.dialects import postgresql

from app.db.tables import EnrollmentRow
from app.models.enrollment import EnrollmentFilter, EnrollmentPatch, EnrollmentStatus
from app.repos.pg_enrollment_repo import _patch_values, _where

T0 = datetime(2024, 6, 1, tzinfo=UTC)


def _compiled(flt: EnrollmentFilter):
    stmt = select(EnrollmentRow.id).where(*_where(flt))
    return stmt.compile(dialect=postgresql.dialect())


def _sql(flt: EnrollmentFilter) -> str:
    return str(_compiled(flt))


def test_empty_filter_has_no_where_clause() -> None:
    assert "WHERE" not in _sql(EnrollmentFilter())


def test_expired_requires_as_of() -> None:
    assert "WHERE" not in _sql(EnrollmentFilter(expired=True))
    assert "enrollments.expires_at <" in _sql(EnrollmentFilter(expired=True, as_of=T0))


def test_not_expired_keeps_null_expiry() -> None:
    sql = _sql(EnrollmentFilter(expired=False, as_of=T0))
    assert "enrollments.expires_at IS NULL" in sql
    assert "enrollments.expires_at >=" in sql


def test_search_spans_users_and_courses() -> None:
    sql = _sql(EnrollmentFilter(search="ada"))
    assert sql.count("LIKE") == 4
    assert "FROM users" in sql
    assert "FROM courses" in sql


def test_search_wildcards_are_matched_literally() -> None:
    compiled = _compiled(EnrollmentFilter(search="50%_off"))
    assert str(compiled).count("ESCAPE '/'") == 4
    assert set(compiled.params.values()) == {"50/%/_off"}


def test_groups_are_anded() -> None:
    sql = _sql(
        EnrollmentFilter(
            user_id=uuid4(),
            status=EnrollmentStatus.ACTIVE,
            payment_confirmed=False,
        )
    )
    assert sql.count(" AND ") == 2
    assert "enrollments.payment_confirmed IS false" in sql


def test_patch_values() -> None:
    assert _patch_values(EnrollmentPatch()) == {}
    assert _patch_values(
        EnrollmentPatch(status=EnrollmentStatus.COMPLETED, expires_at=T0)
    ) == {"status": "COMPLETED", "expires_at": T0}
    assert _patch_values(
        EnrollmentPatch(expires_at=T0, clear_expiration=True)
    ) == {"expires_at": None}
