"""
Database engine and session management.
"""
from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from trainload.core.config import settings


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


@lru_cache
def get_engine(database_url: str | None = None) -> AsyncEngine:
    """Create (once) the async engine for the configured database."""
    return create_async_engine(
        database_url or settings.DATABASE_URL,
        pool_pre_ping=True,
    )


def get_session_maker(engine: AsyncEngine | None = None) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the given (or default) engine."""
    return async_sessionmaker(engine or get_engine(), expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session, closing it afterwards."""
    async with get_session_maker()() as session:
        yield session


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables."""
    # Import models so they register on the metadata
    from trainload import models  # noqa: F401

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
