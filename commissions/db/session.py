"""
Async engine and session factory.

Services never commit: they add and flush, and the unit of work that
owns the session (a request or a script) commits once at the end.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from commissions.config import settings

logger = logging.getLogger(__name__)


def _engine_options() -> dict:
    options: dict = {"echo": settings.sql_echo}
    if settings.db_use_null_pool:
        options["poolclass"] = NullPool
    if "+asyncpg" in settings.database_url:
        # prepared statements break behind transaction-mode poolers
        options["connect_args"] = {"statement_cache_size": 0}
    return options


engine = create_async_engine(settings.database_url, **_engine_options())

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@asynccontextmanager
async def _session_scope() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: one transaction per request.

    Usage:
        @router.post("/batches/{batch_id}/submit")
        async def submit(batch_id: int, db: AsyncSession = Depends(get_db)):
            ...
    """
    async with _session_scope() as session:
        yield session


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Same transaction scope outside FastAPI.

        async with get_db_context() as db:
            await save_milestone_allocations(db, sale_id, 1, actor)
    """
    async with _session_scope() as session:
        yield session
