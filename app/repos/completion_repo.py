from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.models.records import CompletionRecord


class CompletionRepo(Protocol):
    """Per-lesson completion ledger, scoped to an enrollment."""

    async def count_completed(self, enrollment_id: UUID) -> int: ...
    async def delete_for_enrollment(self, enrollment_id: UUID) -> int: ...


class InMemoryCompletionRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[UUID, UUID], CompletionRecord] = {}

    async def count_completed(self, enrollment_id: UUID) -> int:
        return sum(
            1
            for r in self._store.values()
            if r.enrollment_id == enrollment_id and r.completed_at is not None
        )

    async def delete_for_enrollment(self, enrollment_id: UUID) -> int:
        keys = [k for k in self._store if k[0] == enrollment_id]
        for k in keys:
            del self._store[k]
        return len(keys)

    # Written by the lesson player in production; exposed for seeding.
    def record(self, record: CompletionRecord) -> None:
        self._store[(record.enrollment_id, record.lesson_id)] = record

    def list_for_enrollment(self, enrollment_id: UUID) -> list[CompletionRecord]:
        return [r for r in self._store.values() if r.enrollment_id == enrollment_id]
