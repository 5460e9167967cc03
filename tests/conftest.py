"""Shared pytest fixtures for toolhub tests.

Provides containerized PostgreSQL for integration tests via two modes:
1. TEST_DATABASE_* env vars present -> connect to external PG (CI scenario)
2. Otherwise -> testcontainers auto-starts a temporary PG container (local dev)

Safety: refuses to run against any database whose name doesn't contain '_test'.
"""

from __future__ import annotations

import os

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from toolhub.constants import DB_SCHEMA
from toolhub.tools.context import TeamRef, ToolContext, UserRef
from toolhub.tools.events import EventDispatcher
from toolhub.tracking.models import Base


def _validate_test_db_name(name: str) -> None:
    """Safety: refuse to drop tables in a database whose name doesn't contain '_test'."""
    if "_test" not in name.lower():
        raise RuntimeError(
            f"Refusing to run tests against database '{name}': "
            "name must contain '_test' to prevent accidental data loss. "
            "Set TEST_DATABASE_NAME to a test-specific database."
        )


def _build_pg_url_from_env() -> str | None:
    """Build async PG URL from TEST_DATABASE_* env vars, or return None."""
    host = os.getenv("TEST_DATABASE_HOST")
    if host is None:
        return None
    port = os.getenv("TEST_DATABASE_PORT", "5432")
    user = os.getenv("TEST_DATABASE_USER", "postgres")
    password = os.getenv("TEST_DATABASE_PASSWORD", "")
    name = os.getenv("TEST_DATABASE_NAME", "toolhub_test")
    _validate_test_db_name(name)
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


@pytest.fixture(scope="session")
def pg_url():
    """Async PostgreSQL URL; starts a container unless TEST_DATABASE_* is set."""
    url = _build_pg_url_from_env()
    if url is not None:
        yield url
        return

    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer("postgres:16", dbname="toolhub_test")
    container.start()
    _validate_test_db_name(container.dbname)

    host = container.get_container_host_ip()
    port = container.get_exposed_port(5432)
    yield (
        f"postgresql+asyncpg://{container.username}:{container.password}"
        f"@{host}:{port}/{container.dbname}"
    )

    container.stop()


@pytest_asyncio.fixture
async def db_engine(pg_url: str):
    """Engine with a fresh toolhub schema per test; everything is dropped afterwards."""
    engine = create_async_engine(pg_url, echo=False)

    async with engine.begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {DB_SCHEMA}"))
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.execute(text(f"DROP SCHEMA IF EXISTS {DB_SCHEMA} CASCADE"))

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
def context() -> ToolContext:
    return ToolContext(
        acting_user=UserRef(id=7, name="Ada"),
        acting_team=TeamRef(id=3, name="Core"),
    )


@pytest.fixture
def events() -> EventDispatcher:
    return EventDispatcher()
