"""Work queues between the API and the worker process.

The API only ever enqueues; the worker dequeues.  Two backends share the
TaskQueue protocol:

  RedisTaskQueue     one Redis list per queue ("tasks:<name>"), LPUSH on
                     enqueue and BRPOP on dequeue, which gives FIFO order
                     across any number of API and worker processes.
  InMemoryTaskQueue  a deque per queue, for tests and single-process dev.

A task popped by a worker that then dies is gone (at-most-once).
Enrollment notifications are best-effort, so nothing stronger is needed.
"""

from __future__ import annotations

import json
import uuid
from collections import deque
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from app.db.redis import redis_pool

ENROLLMENT_NOTIFICATION_QUEUE = "enrollment_notification"


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    queue: str
    payload: dict
    enqueued_at: str


def new_task(queue: str, payload: dict) -> Task:
    return Task(
        id=uuid.uuid4().hex,
        queue=queue,
        payload=payload,
        enqueued_at=datetime.now(UTC).isoformat(),
    )


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(self, queue: str, payload: dict) -> Task: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None: ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryTaskQueue:
    def __init__(self) -> None:
        self._queues: dict[str, deque[Task]] = {}

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = new_task(queue, payload)
        self._queues.setdefault(queue, deque()).append(task)
        return task

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        # Never blocks; the worker loop sleeps when every queue is empty.
        pending = self._queues.get(queue)
        return pending.popleft() if pending else None

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, ()))


class RedisTaskQueue:
    KEY_PREFIX = "tasks:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    def _key(self, queue: str) -> str:
        return f"{self.KEY_PREFIX}{queue}"

    @staticmethod
    def _encode(task: Task) -> str:
        return json.dumps(asdict(task), separators=(",", ":"))

    @staticmethod
    def _decode(raw: str | bytes) -> Task:
        return Task(**json.loads(raw))

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = new_task(queue, payload)
        await self._redis.lpush(self._key(queue), self._encode(task))
        return task

    async def dequeue(self, queue: str, timeout: int = 5) -> Task | None:
        popped = await self._redis.brpop(self._key(queue), timeout=timeout)
        if popped is None:
            return None
        _key, raw = popped
        return self._decode(raw)

    async def queue_length(self, queue: str) -> int:
        return await self._redis.llen(self._key(queue))


task_queue: TaskQueue = (
    RedisTaskQueue(redis_pool) if redis_pool is not None else InMemoryTaskQueue()
)
