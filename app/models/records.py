"""Records owned by an enrollment.

Completion records, certificates and payment receipts are written by
other flows (lesson player, certificate issuance, checkout).  The
enrollment core only counts completions and removes all three when the
owning enrollment is deleted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class CompletionRecord:
    enrollment_id: UUID
    lesson_id: UUID
    completed_at: datetime | None = None  # None = started but not finished


@dataclass(frozen=True, slots=True)
class Certificate:
    id: UUID
    enrollment_id: UUID
    issued_at: datetime
    status: str = "issued"  # issued|revoked

    @staticmethod
    def new(*, enrollment_id: UUID, issued_at: datetime) -> Certificate:
        return Certificate(id=uuid4(), enrollment_id=enrollment_id, issued_at=issued_at)


@dataclass(frozen=True, slots=True)
class PaymentReceipt:
    id: UUID
    enrollment_id: UUID
    uploaded_at: datetime
    file_url: str
    status: str = "pending"  # pending|approved|rejected

    @staticmethod
    def new(
        *, enrollment_id: UUID, uploaded_at: datetime, file_url: str
    ) -> PaymentReceipt:
        return PaymentReceipt(
            id=uuid4(),
            enrollment_id=enrollment_id,
            uploaded_at=uploaded_at,
            file_url=file_url,
        )
