"""
Async database engine and session factory for the monitoring tables.

Uses SQLAlchemy 2.0 async API with asyncpg driver. Nothing connects at
import time: ``PipelineServices`` builds the engine from
``Settings.database_url`` only when persistence is configured, and the
in-memory task store is used otherwise.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for ``monitoring_tasks`` and ``price_history``."""


def create_engine(database_url: str, *, pool_size: int = 10, max_overflow: int = 20) -> AsyncEngine:
    return create_async_engine(
        database_url,
        echo=False,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Task and record dataclasses are built after commit
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create the monitoring tables when they do not exist yet."""
    import core.models  # noqa: F401  registers the tables on Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Monitoring tables ready: %s", ", ".join(sorted(Base.metadata.tables)))
