"""Marks lapsed enrollments EXPIRED.

One conditional bulk update (expires_at < now AND status != EXPIRED).
Running two sweeps at once is safe: the loser simply matches no rows.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from app.core.metrics import SWEEP_EXPIRED
from app.models.enrollment import ExpiredSnapshot
from app.repos.enrollment_repo import EnrollmentRepo

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SweepResult:
    updated: int
    details: list[ExpiredSnapshot] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.updated == 0:
            return "No expired enrollments found"
        return f"Updated {self.updated} expired enrollments"


class ExpirationSweeper:
    def __init__(
        self,
        enrollments: EnrollmentRepo,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._enrollments = enrollments
        self._clock = clock

    async def sweep(self) -> SweepResult:
        changed = await self._enrollments.expire_lapsed(self._clock())
        details = [
            ExpiredSnapshot(
                id=e.id,
                user_id=e.user_id,
                course_id=e.course_id,
                expired_at=e.expires_at,
            )
            for e in changed
        ]
        if details:
            SWEEP_EXPIRED.inc(len(details))
            logger.info("Expired %d lapsed enrollments", len(details))
        else:
            logger.debug("Sweep found no lapsed enrollments")
        return SweepResult(updated=len(details), details=details)
