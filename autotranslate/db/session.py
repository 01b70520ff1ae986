"""Database engine, session factory and FastAPI dependency."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from autotranslate.config import get_settings

settings = get_settings()


class Base(DeclarativeBase):
    """Declarative base for translation store models."""


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

async_session_maker = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for a request."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create tables that do not exist yet."""
    # Models must be imported so their tables are registered on Base.metadata
    from autotranslate.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def create_worker_engine(url: str) -> AsyncEngine:
    """
    Create an engine for use inside a Celery task.

    Each task runs its own event loop, so pooled connections cannot be
    shared between invocations.
    """
    return create_async_engine(url, poolclass=NullPool)


def create_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to the given engine."""
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)
