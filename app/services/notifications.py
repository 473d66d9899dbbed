"""Enrollment notification dispatch.

The enrollment core only hands a notification off; delivery (in-app,
e-mail) is done by the worker consuming ENROLLMENT_NOTIFICATION_QUEUE.
Callers treat dispatch as best-effort: see EnrollmentService.create.
"""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

from app.core.metrics import NOTIFICATION_FAILURES
from app.services.task_queue import ENROLLMENT_NOTIFICATION_QUEUE, TaskQueue

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    async def notify_enrollment(
        self, user_id: UUID, *, course_id: UUID, course_title: str
    ) -> None: ...


class QueueNotificationDispatcher:
    """Enqueues an enrollment notification task for the worker."""

    def __init__(self, queue: TaskQueue) -> None:
        self._queue = queue

    async def notify_enrollment(
        self, user_id: UUID, *, course_id: UUID, course_title: str
    ) -> None:
        await self._queue.enqueue(
            ENROLLMENT_NOTIFICATION_QUEUE,
            {
                "user_id": str(user_id),
                "course_id": str(course_id),
                "course_title": course_title,
            },
        )


class DeferredNotificationDispatcher:
    """Holds notifications until the surrounding transaction has committed.

    flush() hands them to the real dispatcher; a rolled-back unit of work
    simply never flushes, so learners are not told about enrollments that
    were never stored.  Delivery failures on flush are logged and dropped.
    """

    def __init__(self, target: NotificationDispatcher) -> None:
        self._target = target
        self._pending: list[tuple[UUID, UUID, str]] = []

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def notify_enrollment(
        self, user_id: UUID, *, course_id: UUID, course_title: str
    ) -> None:
        self._pending.append((user_id, course_id, course_title))

    async def flush(self) -> int:
        pending, self._pending = self._pending, []
        delivered = 0
        for user_id, course_id, course_title in pending:
            try:
                await self._target.notify_enrollment(
                    user_id, course_id=course_id, course_title=course_title
                )
            except Exception:
                NOTIFICATION_FAILURES.inc()
                logger.exception(
                    "Enrollment notification failed for user=%s course=%s",
                    user_id,
                    course_id,
                )
            else:
                delivered += 1
        return delivered
