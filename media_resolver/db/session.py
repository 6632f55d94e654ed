# media_resolver/db/session.py
from __future__ import annotations

"""
Media Resolver — Database Engine & Sessions

- Async engine/session (asyncpg) used by the SQLAlchemy repository.
- The engine is created lazily so importing this module never opens a pool
  (tests that use the in-memory repository never touch PostgreSQL).
"""

from typing import AsyncGenerator, Optional
import logging
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)

from media_resolver.core.config import settings

logger = logging.getLogger(__name__)

# Pool knobs
_POOL_PRE_PING = True
_POOL_RECYCLE = 1800
_POOL_TIMEOUT = 30
_POOL_SIZE = 10
_MAX_OVERFLOW = 20

# ─────────────────────────────────────────────────────────────
# ⚡ ASYNC ENGINE — created on first use
# ─────────────────────────────────────────────────────────────

_async_engine: Optional[AsyncEngine] = None
_async_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def get_async_engine() -> AsyncEngine:
    """Create the async engine on first use."""
    global _async_engine
    if _async_engine is None:
        _async_engine = create_async_engine(
            settings.ASYNC_DATABASE_URL,
            pool_pre_ping=_POOL_PRE_PING,
            pool_recycle=_POOL_RECYCLE,
            pool_size=_POOL_SIZE,
            max_overflow=_MAX_OVERFLOW,
            pool_timeout=_POOL_TIMEOUT,
            echo=False,
        )
    return _async_engine


def get_async_session_maker() -> async_sessionmaker[AsyncSession]:
    """Create the async session factory on first use."""
    global _async_session_maker
    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(
            bind=get_async_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _async_session_maker


@asynccontextmanager
async def transactional_async_session(
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Async context manager that opens a session and a transaction."""
    maker = session_maker or get_async_session_maker()
    async with maker() as session:
        async with session.begin():
            yield session  # rollback handled by session.begin()


async def dispose_async_engine() -> None:
    """Dispose the pool if one was created (shutdown hook)."""
    global _async_engine, _async_session_maker
    if _async_engine is not None:
        await _async_engine.dispose()
        logger.info("Database engine disposed")
    _async_engine = None
    _async_session_maker = None


__all__ = [
    "dispose_async_engine",
    "get_async_engine",
    "get_async_session_maker",
    "transactional_async_session",
]
