"""Alembic environment for the content and analysis tables.

The URL always comes from DATABASE_URL (rewritten for asyncpg); the value in
alembic.ini is ignored. Online runs use a throwaway async engine and log the
target revision through the database logger.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

import app.models  # noqa: F401  registers every table on Base.metadata
from app.core.config import get_settings
from app.core.database import Base, to_async_url
from app.core.logging import db_logger

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# compare_type catches enum-backed String length changes on autogenerate
CONFIGURE_OPTIONS = {"target_metadata": target_metadata, "compare_type": True}


def database_url() -> str:
    return to_async_url(str(get_settings().database_url))


def migrate(connection: Connection) -> None:
    context.configure(connection=connection, **CONFIGURE_OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


async def migrate_online() -> None:
    settings = get_settings()
    target = str(context.get_head_revision() or "head")
    db_logger.migration_start(version=target, description=f"Upgrading to {target}")

    engine = create_async_engine(
        database_url(),
        poolclass=pool.NullPool,
        connect_args={
            "timeout": settings.db_connect_timeout,
            "command_timeout": settings.db_command_timeout,
        },
    )
    success = False
    try:
        async with engine.connect() as connection:
            await connection.run_sync(migrate)
        success = True
    finally:
        db_logger.migration_end(version=target, success=success)
        await engine.dispose()


if context.is_offline_mode():
    # SQL script output only; no connection is opened
    context.configure(
        url=database_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **CONFIGURE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()
else:
    asyncio.run(migrate_online())
