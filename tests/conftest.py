from __future__ import annotations

import sys
from datetime import UTC, datetime
from pathlib import Path
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

from app.db.stores import MemoryStores, build_memory_stores, memory_stores
from app.main import app
from app.models.course import Course, CourseModule, Lesson
from app.models.user import User
from app.services import token_service
from app.services.notifications import QueueNotificationDispatcher
from app.services.task_queue import InMemoryTaskQueue, task_queue
from app.services.wiring import Services, build_services

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def reset_memory_stores() -> None:
    """Clear the process-wide in-memory stores between tests."""
    memory_stores.users._by_email.clear()
    memory_stores.users._by_id.clear()
    memory_stores.courses._courses.clear()
    memory_stores.courses._modules.clear()
    memory_stores.courses._lessons.clear()
    memory_stores.enrollments._by_id.clear()
    memory_stores.enrollments._by_pair.clear()
    memory_stores.completions._store.clear()
    memory_stores.certificates._store.clear()
    memory_stores.receipts._store.clear()


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    username: str = "test-user",
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=username, roles=roles)


def auth(token: str | None) -> dict[str, str]:
    if token is None:
        return {}
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def token() -> str:
    """Token with default role (learner)."""
    return mint_token()


@pytest.fixture
def admin_user() -> User:
    """An admin seeded in the shared store, so it can be enrolled_by."""
    return seed_user(memory_stores, "admin@example.com", roles=("admin",))


@pytest.fixture
def admin_token(admin_user: User) -> str:
    """Token with admin role whose subject is a real user."""
    return mint_token(username=str(admin_user.id), roles=["admin"])


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------


def seed_user(
    stores: MemoryStores,
    email: str,
    *,
    first_name: str = "",
    last_name: str = "",
    roles: tuple[str, ...] = (),
) -> User:
    user = User.new(
        email=email, first_name=first_name, last_name=last_name, roles=roles
    )
    stores.users.add(user)
    return user


def seed_course(
    stores: MemoryStores,
    title: str = "Intro to Python",
    *,
    status: str = "published",
    lessons_per_module: tuple[int, ...] = (2, 2),
) -> tuple[Course, list[Lesson]]:
    """A course with one module per entry in lessons_per_module."""
    slug = title.lower().replace(" ", "-")
    course = Course.new(slug=slug, title=title, status=status)
    stores.courses.add(course)
    lessons: list[Lesson] = []
    for m_pos, count in enumerate(lessons_per_module, start=1):
        module = CourseModule.new(
            course_id=course.id, position=m_pos, title=f"Module {m_pos}"
        )
        stores.courses.add_module(module)
        for l_pos in range(1, count + 1):
            lesson = Lesson.new(
                module_id=module.id, position=l_pos, title=f"Lesson {m_pos}.{l_pos}"
            )
            stores.courses.add_lesson(lesson)
            lessons.append(lesson)
    return course, lessons


class FixedClock:
    """Settable clock shared by every service built in a test."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FailingNotifier:
    def __init__(self) -> None:
        self.calls = 0

    async def notify_enrollment(
        self, user_id: UUID, *, course_id: UUID, course_title: str
    ) -> None:
        self.calls += 1
        raise ConnectionError("notification backend unavailable")


@pytest.fixture
def stores() -> MemoryStores:
    """A private store bundle, isolated from the app's shared one."""
    return build_memory_stores()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def queue() -> InMemoryTaskQueue:
    return InMemoryTaskQueue()


@pytest.fixture
def services(
    stores: MemoryStores, queue: InMemoryTaskQueue, clock: FixedClock
) -> Services:
    return build_services(stores, QueueNotificationDispatcher(queue), clock)
