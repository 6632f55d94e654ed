# tests/fixtures/db.py
"""
DB fixtures for tests (async, PostgreSQL):
- Only active when `TEST_DATABASE_URL` is exported; otherwise DB tests skip
- Per-run isolated SCHEMA, no dropping `public`
- UTC timezone for consistent timestamp behavior
- NullPool (no lingering connections between tests)
"""

from typing import AsyncGenerator
import os
import secrets

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from media_resolver.db import base
from media_resolver.repositories.video_assets import SqlAlchemyVideoAssetRepository
from tests.test_settings import settings

DB_ENABLED = bool(os.getenv("TEST_DATABASE_URL"))
WORKER = os.getenv("PYTEST_XDIST_WORKER", "gw0")  # supports pytest -n auto

requires_postgres = pytest.mark.skipif(
    not DB_ENABLED, reason="TEST_DATABASE_URL not set (PostgreSQL required)"
)


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture()
async def pg_session_maker() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Fresh schema per test with all tables created; dropped afterwards.
    """
    if not DB_ENABLED:
        pytest.skip("TEST_DATABASE_URL not set (PostgreSQL required)")

    schema = f"test_{WORKER}_{secrets.token_hex(3)}"
    engine = create_async_engine(
        settings.TEST_DATABASE_URL,
        echo=False,
        pool_pre_ping=True,
        poolclass=NullPool,
        connect_args={
            "server_settings": {
                "search_path": schema,
                "TimeZone": "UTC",
                "statement_timeout": "30000",  # 30s
                "lock_timeout": "3000",        # 3s
            }
        },
    )

    async with engine.begin() as conn:
        await conn.exec_driver_sql(f'CREATE SCHEMA IF NOT EXISTS "{schema}"')
        await conn.exec_driver_sql(f'SET search_path TO "{schema}"')
        await conn.run_sync(base.Base.metadata.create_all)

    try:
        yield async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
    finally:
        async with engine.begin() as conn:
            await conn.exec_driver_sql(f'DROP SCHEMA IF EXISTS "{schema}" CASCADE')
        await engine.dispose()


@pytest.fixture()
async def sql_repo(pg_session_maker) -> SqlAlchemyVideoAssetRepository:
    return SqlAlchemyVideoAssetRepository(pg_session_maker)
