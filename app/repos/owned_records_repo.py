from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.models.records import Certificate, PaymentReceipt


class CertificateRepo(Protocol):
    async def delete_for_enrollment(self, enrollment_id: UUID) -> int: ...


class PaymentReceiptRepo(Protocol):
    async def delete_for_enrollment(self, enrollment_id: UUID) -> int: ...


class InMemoryCertificateRepo:
    def __init__(self) -> None:
        self._store: dict[UUID, Certificate] = {}

    async def delete_for_enrollment(self, enrollment_id: UUID) -> int:
        ids = [c.id for c in self._store.values() if c.enrollment_id == enrollment_id]
        for cid in ids:
            del self._store[cid]
        return len(ids)

    def add(self, certificate: Certificate) -> None:
        self._store[certificate.id] = certificate

    def list_for_enrollment(self, enrollment_id: UUID) -> list[Certificate]:
        return [c for c in self._store.values() if c.enrollment_id == enrollment_id]


class InMemoryPaymentReceiptRepo:
    def __init__(self) -> None:
        self._store: dict[UUID, PaymentReceipt] = {}

    async def delete_for_enrollment(self, enrollment_id: UUID) -> int:
        ids = [r.id for r in self._store.values() if r.enrollment_id == enrollment_id]
        for rid in ids:
            del self._store[rid]
        return len(ids)

    def add(self, receipt: PaymentReceipt) -> None:
        self._store[receipt.id] = receipt

    def list_for_enrollment(self, enrollment_id: UUID) -> list[PaymentReceipt]:
        return [r for r in self._store.values() if r.enrollment_id == enrollment_id]
