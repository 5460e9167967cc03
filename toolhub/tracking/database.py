"""Engine, schema bootstrap and sessions for the execution-history store.

The runtime talks to PostgreSQL through asyncpg; Alembic migrations use the
sync psycopg driver against the same DATABASE_* settings. Everything toolhub
persists lives in the DB_SCHEMA schema.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import URL, text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from toolhub.constants import DB_SCHEMA
from toolhub.tracking.models import Base

if TYPE_CHECKING:
    from toolhub.config.settings import DatabaseSettings

logger = structlog.get_logger()


def database_url(settings: DatabaseSettings, *, driver: str = "asyncpg") -> URL:
    """Connection URL for `driver`; credentials are escaped by SQLAlchemy."""
    return URL.create(
        f"postgresql+{driver}",
        username=settings.user,
        password=settings.password or None,
        host=settings.host,
        port=settings.port,
        database=settings.name,
    )


async def create_db_engine(settings: DatabaseSettings) -> AsyncEngine:
    """Async engine whose connections resolve unqualified names in the toolhub schema."""
    url = database_url(settings)
    engine = create_async_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        connect_args={"server_settings": {"search_path": f"{settings.schema_}, public"}},
    )
    logger.info(
        "db_engine_created",
        url=url.render_as_string(hide_password=True),
        schema=settings.schema_,
    )
    return engine


async def ensure_schema(engine: AsyncEngine, schema: str = DB_SCHEMA) -> None:
    """Create the schema and the tracking tables when missing. Safe to rerun.

    Deployments that run Alembic get the same tables from the migration;
    create_all never alters an existing table.
    """
    async with engine.begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {schema}"))
        await conn.run_sync(Base.metadata.create_all)

    logger.info("db_schema_ensured", schema=schema, tables=sorted(Base.metadata.tables))


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory for the history store and the entity reader."""
    return async_sessionmaker(engine, expire_on_commit=False)
