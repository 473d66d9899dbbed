"""Background worker process.

RUN:  python -m app.worker

Same image as the API, different command:
  api:    uvicorn app.main:app --host 0.0.0.0 --port 8000
  worker: python -m app.worker

Two loops run side by side:

  consume_forever(): polls every registered queue round-robin and
    dispatches each task to its handler.  A failing task is logged and
    dropped (notifications are best-effort).

  sweep_forever(): runs the expiration sweep every
    SWEEP_INTERVAL_SECONDS.  Several workers may sweep at once; the
    sweep's conditional update makes the overlap harmless.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.core.metrics import QUEUE_DEPTH
from app.db.engine import async_session_factory, session_scope
from app.db.stores import memory_stores, pg_stores
from app.services.expiration_sweeper import ExpirationSweeper, SweepResult
from app.services.task_queue import ENROLLMENT_NOTIFICATION_QUEUE, task_queue

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("worker")


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


@register_handler(ENROLLMENT_NOTIFICATION_QUEUE)
async def handle_enrollment_notification(payload: dict) -> None:
    """Deliver a "you have been enrolled" notification to the learner.

    Delivery channels (in-app inbox, e-mail) live in the notification
    service; this handler is the hand-off point and records it.
    """
    missing = [k for k in ("user_id", "course_id", "course_title") if k not in payload]
    if missing:
        raise ValueError(f"notification payload missing {', '.join(missing)}")
    logger.info(
        "Enrollment notification for user=%s course=%s (%s)",
        payload["user_id"],
        payload["course_id"],
        payload["course_title"],
        extra={"user_id": payload["user_id"], "course_id": payload["course_id"]},
    )


# ---------------------------------------------------------------------------
# Queue consumption
# ---------------------------------------------------------------------------


async def process_next(queue_name: str, timeout: int = 1) -> bool:
    """Dequeue and handle one task.  Returns False when the queue was empty."""
    task = await task_queue.dequeue(queue_name, timeout=timeout)
    QUEUE_DEPTH.labels(queue_name=queue_name).set(
        await task_queue.queue_length(queue_name)
    )
    if task is None:
        return False

    handler = HANDLERS[queue_name]
    try:
        await handler(task.payload)
        logger.info("Task %s on [%s] completed", task.id, queue_name)
    except Exception:
        # No dead-letter queue: the task is dropped after logging.
        logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return True


async def consume_forever() -> None:
    queues = list(HANDLERS.keys())
    logger.info("Consumer started, listening on queues: %s", queues)
    while True:
        idle = True
        for queue_name in queues:
            if await process_next(queue_name):
                idle = False
        if idle:
            # The in-memory queue returns immediately; Redis BRPOP blocks.
            await asyncio.sleep(0.5)


# ---------------------------------------------------------------------------
# Expiration sweep
# ---------------------------------------------------------------------------


async def run_sweep() -> SweepResult:
    """One sweep in its own unit of work."""
    if async_session_factory is None:
        return await ExpirationSweeper(memory_stores.enrollments).sweep()
    async with session_scope() as session:
        return await ExpirationSweeper(pg_stores(session).enrollments).sweep()


async def sweep_forever(interval_seconds: int) -> None:
    logger.info("Sweeper started, interval=%ds", interval_seconds)
    while True:
        try:
            result = await run_sweep()
            logger.info("Sweep finished: %s", result.message)
        except Exception:
            # The next tick retries; a failed sweep leaves rows untouched.
            logger.exception("Expiration sweep failed")
        await asyncio.sleep(interval_seconds)


async def run_worker() -> None:
    await asyncio.gather(
        consume_forever(),
        sweep_forever(SETTINGS.sweep_interval_seconds),
    )


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
