"""Alembic environment for the toolhub schema.

Connection details come from the same DATABASE_* settings (and .env) the
runtime reads; only the driver differs (sync psycopg here, asyncpg at
runtime). Only objects in the toolhub schema are compared or migrated, and
the version table lives there too.
"""

from logging.config import fileConfig

from sqlalchemy import create_engine, pool, text

from alembic import context
from toolhub.config.settings import DatabaseSettings
from toolhub.constants import DB_SCHEMA
from toolhub.tracking.database import database_url
from toolhub.tracking.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

DATABASE_URL = database_url(DatabaseSettings(), driver="psycopg")

target_metadata = Base.metadata


def include_name(name, type_, parent_names):
    """Autogenerate compares the toolhub schema only."""
    if type_ == "schema":
        return name == DB_SCHEMA
    return True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        version_table_schema=DB_SCHEMA,
        include_schemas=True,
        include_name=include_name,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit SQL for the tool_executions migrations without connecting."""
    _configure(
        url=DATABASE_URL.render_as_string(hide_password=False),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(DATABASE_URL, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        # The version table is created inside the schema, so it must exist first.
        connection.execute(text(f"CREATE SCHEMA IF NOT EXISTS {DB_SCHEMA}"))
        connection.commit()

        _configure(connection=connection)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
