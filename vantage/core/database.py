"""
Async SQLAlchemy engine, session factory and request-scoped unit of work.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from vantage.core.config import settings
from vantage.core.exceptions import DomainError

logger = logging.getLogger(__name__)

async_engine = create_async_engine(
    str(settings.DATABASE_URL),
    pool_size=10,
    max_overflow=20,
    pool_pre_ping=True,
    pool_recycle=3600,
    echo=False,
)

AsyncSessionLocal = async_sessionmaker(async_engine, expire_on_commit=False)


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[AsyncSession]:
    """
    One session per unit of work.

    Commits on success and on domain errors that keep their side effects,
    rolls back on everything else.
    """
    factory = factory or AsyncSessionLocal
    async with factory() as session:
        try:
            yield session
        except DomainError as exc:
            if exc.preserve_writes:
                await session.commit()
            else:
                logger.info("Rolling back unit of work after %s", exc.code)
                await session.rollback()
            raise
        except Exception:
            await session.rollback()
            raise
        else:
            await session.commit()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding the request's session."""
    async with session_scope() as session:
        yield session
