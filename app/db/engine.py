"""Postgres access through SQLAlchemy's asyncio extension (asyncpg driver).

Everything here is None when DATABASE_URL is unset; callers check
async_session_factory and fall back to the in-memory stores.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(url: str) -> AsyncEngine:
    return create_async_engine(
        url,
        echo=SETTINGS.is_dev,
        pool_size=5,
        max_overflow=10,
        # A sweep may run hours after the last query; drop dead connections.
        pool_pre_ping=True,
    )


engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None

if SETTINGS.database_url:
    engine = build_engine(SETTINGS.database_url)
    async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """One transaction: commit when the block exits cleanly, else roll back."""
    if async_session_factory is None:
        raise RuntimeError("DATABASE_URL is not set; no database session available")
    async with async_session_factory() as session:
        try:
            yield session
        except Exception as exc:
            logger.warning("Rolling back transaction: %s", type(exc).__name__)
            await session.rollback()
            raise
        await session.commit()


async def ping_database() -> bool:
    """Round-trip a trivial query; False when no database is configured."""
    if engine is None:
        return False
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    return True


@asynccontextmanager
async def lifespan_db():
    if engine is None:
        logger.info("DATABASE_URL not set; enrollments are kept in memory")
        yield
        return

    logger.info("Using database %s", engine.url.render_as_string(hide_password=True))
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Database connections closed")
