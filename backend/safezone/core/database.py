"""Database engine and session management."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from safezone.core.config import settings


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def create_worker_engine() -> AsyncEngine:
    """Engine for Celery tasks.

    Each task runs its coroutine on a fresh event loop, so connections must
    not be pooled across tasks.
    """
    return create_async_engine(settings.DATABASE_URL, poolclass=NullPool)


def make_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


async def create_tables() -> None:
    """Create all tables for local deployments without migrations."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
