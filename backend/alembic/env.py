"""
Alembic environment.

WHY: Migrations connect through the same async driver and URL as the
application (settings.DATABASE_URL), and autogenerate compares against
the metadata of every model in the entity graph.

SQLite cannot ALTER most constraints, so migrations run in batch mode
there.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from worktrack.core.config import settings

# Importing the package registers every model on Base
from worktrack.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configure(**kwargs) -> None:
    url = kwargs.get("url") or settings.async_database_url
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        render_as_batch=url.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    """
    Emit the migration SQL without connecting.

    WHY: Lets the SQL be reviewed before it runs against production.
    """
    _configure(
        url=settings.async_database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def _run_on_connection(connection: Connection) -> None:
    _configure(connection=connection)

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Apply migrations over an async connection (no pooling)."""
    options = config.get_section(config.config_ini_section, {})
    options["sqlalchemy.url"] = settings.async_database_url
    engine = async_engine_from_config(options, prefix="sqlalchemy.", poolclass=pool.NullPool)

    async with engine.connect() as connection:
        await connection.run_sync(_run_on_connection)

    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
