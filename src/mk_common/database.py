"""Engine and session factories.

No module-level engine: the worker creates one per database (ledger, indexer)
and disposes it on shutdown.
"""
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models across modules."""

    pass


def create_engine(url: str, *, echo: bool = False, pool_size: int = 10) -> AsyncEngine:
    return create_async_engine(
        url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=pool_size // 2,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def unit_of_work(session_factory: SessionFactory) -> AsyncIterator[AsyncSession]:
    """One session, one transaction: commits on success, rolls back on error."""
    async with session_factory() as db:
        async with db.begin():
            yield db
