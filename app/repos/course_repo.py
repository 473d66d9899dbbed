from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.models.course import Course, CourseModule, Lesson, LessonLocation


class CourseRepo(Protocol):
    """Read side of the course catalog used by the enrollment core."""

    async def get_by_id(self, course_id: UUID) -> Course | None: ...
    async def count_lessons(self, course_id: UUID) -> int: ...
    async def find_lesson(
        self, course_id: UUID, lesson_id: UUID
    ) -> LessonLocation | None: ...


class InMemoryCourseRepo:
    def __init__(self) -> None:
        self._courses: dict[UUID, Course] = {}
        self._modules: dict[UUID, CourseModule] = {}
        self._lessons: dict[UUID, Lesson] = {}

    async def get_by_id(self, course_id: UUID) -> Course | None:
        return self._courses.get(course_id)

    async def count_lessons(self, course_id: UUID) -> int:
        return sum(
            1
            for lesson in self._lessons.values()
            if self._modules[lesson.module_id].course_id == course_id
        )

    async def find_lesson(
        self, course_id: UUID, lesson_id: UUID
    ) -> LessonLocation | None:
        lesson = self._lessons.get(lesson_id)
        if lesson is None:
            return None
        module = self._modules[lesson.module_id]
        if module.course_id != course_id:
            return None
        return LessonLocation(lesson=lesson, module=module)

    # --- seeding / synchronous helpers (not part of the Protocol) ---

    def add(self, course: Course) -> None:
        self._courses[course.id] = course

    def add_module(self, module: CourseModule) -> None:
        if module.course_id not in self._courses:
            raise KeyError("course not found")
        self._modules[module.id] = module

    def add_lesson(self, lesson: Lesson) -> None:
        if lesson.module_id not in self._modules:
            raise KeyError("module not found")
        self._lessons[lesson.id] = lesson

    def lookup(self, course_id: UUID) -> Course | None:
        return self._courses.get(course_id)
