"""Unit-of-work behaviour of get_services on the database path.

The session scope is replaced by a recording fake backed by in-memory
stores, so no database is needed.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import pytest

from app.api import dependencies
from app.db.stores import MemoryStores, build_memory_stores
from app.services.task_queue import ENROLLMENT_NOTIFICATION_QUEUE, task_queue
from tests.conftest import seed_course, seed_user


@pytest.fixture
def db_stores() -> MemoryStores:
    return build_memory_stores()


@pytest.fixture
def fake_database(
    monkeypatch: pytest.MonkeyPatch, db_stores: MemoryStores
) -> list[str]:
    """Route get_services through a recording session scope; returns its log."""
    events: list[str] = []

    @asynccontextmanager
    async def fake_scope():
        try:
            yield "session"
        except Exception:
            events.append("rollback")
            raise
        events.append("commit")

    monkeypatch.setattr(dependencies, "async_session_factory", object())
    monkeypatch.setattr(dependencies, "session_scope", fake_scope)
    monkeypatch.setattr(dependencies, "pg_stores", lambda session: db_stores)
    return events


async def _create_one(services, stores: MemoryStores) -> None:
    admin = seed_user(stores, "admin@example.com", roles=("admin",))
    learner = seed_user(stores, "ada@example.com")
    course, _ = seed_course(stores)
    await services.lifecycle.create(
        user_id=learner.id, course_id=course.id, enrolled_by_id=admin.id
    )


async def _queued() -> int:
    return await task_queue.queue_length(ENROLLMENT_NOTIFICATION_QUEUE)


def test_notification_is_queued_after_commit(
    fake_database: list[str], db_stores: MemoryStores
) -> None:
    async def scenario():
        request_scope = dependencies.get_services()
        services = await anext(request_scope)
        await _create_one(services, db_stores)
        during = await _queued()
        with pytest.raises(StopAsyncIteration):
            await anext(request_scope)
        return during, await _queued()

    during, after = asyncio.run(scenario())

    assert fake_database == ["commit"]
    assert (during, after) == (0, 1)


def test_rolled_back_request_sends_no_notification(
    fake_database: list[str], db_stores: MemoryStores
) -> None:
    async def scenario():
        request_scope = dependencies.get_services()
        services = await anext(request_scope)
        await _create_one(services, db_stores)
        with pytest.raises(RuntimeError):
            await request_scope.athrow(RuntimeError("handler failed"))
        return await _queued()

    assert asyncio.run(scenario()) == 0
    assert fake_database == ["rollback"]
