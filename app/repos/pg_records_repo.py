"""PostgreSQL implementations for records owned by an enrollment."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import CertificateRow, LessonProgressRow, PaymentReceiptRow


class PgCompletionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def count_completed(self, enrollment_id: UUID) -> int:
        stmt = select(func.count(LessonProgressRow.id)).where(
            LessonProgressRow.enrollment_id == enrollment_id,
            LessonProgressRow.completed_at.is_not(None),
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def delete_for_enrollment(self, enrollment_id: UUID) -> int:
        stmt = delete(LessonProgressRow).where(
            LessonProgressRow.enrollment_id == enrollment_id
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0


class PgCertificateRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def delete_for_enrollment(self, enrollment_id: UUID) -> int:
        stmt = delete(CertificateRow).where(
            CertificateRow.enrollment_id == enrollment_id
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0


class PgPaymentReceiptRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def delete_for_enrollment(self, enrollment_id: UUID) -> int:
        stmt = delete(PaymentReceiptRow).where(
            PaymentReceiptRow.enrollment_id == enrollment_id
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0
