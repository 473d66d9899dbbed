from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

PUBLISHED = "published"


@dataclass(frozen=True, slots=True)
class Course:
    id: UUID
    slug: str
    title: str
    status: str = "draft"  # draft|published|archived

    @staticmethod
    def new(*, slug: str, title: str, status: str = "draft") -> Course:
        return Course(id=uuid4(), slug=slug, title=title, status=status)

    @property
    def is_published(self) -> bool:
        return self.status == PUBLISHED


@dataclass(frozen=True, slots=True)
class CourseModule:
    id: UUID
    course_id: UUID
    position: int
    title: str
    is_required: bool = True

    @staticmethod
    def new(
        *, course_id: UUID, position: int, title: str, is_required: bool = True
    ) -> CourseModule:
        return CourseModule(
            id=uuid4(),
            course_id=course_id,
            position=position,
            title=title,
            is_required=is_required,
        )


@dataclass(frozen=True, slots=True)
class Lesson:
    id: UUID
    module_id: UUID
    position: int
    title: str

    @staticmethod
    def new(*, module_id: UUID, position: int, title: str) -> Lesson:
        return Lesson(id=uuid4(), module_id=module_id, position=position, title=title)


@dataclass(frozen=True, slots=True)
class LessonLocation:
    """A lesson resolved through its module to a course."""

    lesson: Lesson
    module: CourseModule
