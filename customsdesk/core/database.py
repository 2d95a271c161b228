"""Async database engine, session factory and unit-of-work helper."""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from customsdesk.core.config import get_settings
from customsdesk.core.errors import Conflict

settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=20,
    max_overflow=10,
)

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async DB session."""
    async with async_session_factory() as session:
        yield session


async def init_db() -> None:
    """Create all tables. Use Alembic migrations in production."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


@asynccontextmanager
async def unit_of_work(
    session: AsyncSession, conflict_detail: str = "Conflicting record already exists"
) -> AsyncIterator[AsyncSession]:
    """Commit on success, roll back on any error.

    A storage-level uniqueness violation raised while committing is reported
    as ``Conflict`` so racing check-then-insert paths fail the same way the
    application check does.
    """
    try:
        yield session
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise Conflict(conflict_detail) from exc
    except BaseException:
        await session.rollback()
        raise
