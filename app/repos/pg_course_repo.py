"""PostgreSQL implementation of CourseRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import CourseModuleRow, CourseRow, LessonRow
from app.models.course import Course, CourseModule, Lesson, LessonLocation


class PgCourseRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, course_id: UUID) -> Course | None:
        stmt = select(CourseRow).where(CourseRow.id == course_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return Course(id=row.id, slug=row.slug, title=row.title, status=row.status)

    async def count_lessons(self, course_id: UUID) -> int:
        stmt = (
            select(func.count(LessonRow.id))
            .join(CourseModuleRow, LessonRow.module_id == CourseModuleRow.id)
            .where(CourseModuleRow.course_id == course_id)
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def find_lesson(
        self, course_id: UUID, lesson_id: UUID
    ) -> LessonLocation | None:
        stmt = (
            select(LessonRow, CourseModuleRow)
            .join(CourseModuleRow, LessonRow.module_id == CourseModuleRow.id)
            .where(LessonRow.id == lesson_id, CourseModuleRow.course_id == course_id)
        )
        result = (await self._session.execute(stmt)).first()
        if result is None:
            return None
        lesson_row, module_row = result
        return LessonLocation(
            lesson=Lesson(
                id=lesson_row.id,
                module_id=lesson_row.module_id,
                position=lesson_row.position,
                title=lesson_row.title,
            ),
            module=CourseModule(
                id=module_row.id,
                course_id=module_row.course_id,
                position=module_row.position,
                title=module_row.title,
                is_required=module_row.is_required,
            ),
        )
