"""Async engine, session factory and the per-job session scope.

Request-less code (queue handlers, the coordinator) opens its own session
with session_scope(). Slow scopes are logged at WARNING; SQLAlchemy errors
are logged with the failing statement and rolled back.
"""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import Settings, get_settings
from app.core.logging import db_logger, get_logger

logger = get_logger(__name__)

ASYNC_DRIVER = "postgresql+asyncpg"


class Base(DeclarativeBase):
    pass


def to_async_url(db_url: str) -> str:
    """Point a postgres:// or postgresql:// URL at the asyncpg driver."""
    url = make_url(db_url)
    if url.drivername in ("postgres", "postgresql"):
        url = url.set(drivername=ASYNC_DRIVER)
    return url.render_as_string(hide_password=False)


def _engine_options(settings: Settings) -> dict[str, Any]:
    connect_args: dict[str, Any] = {
        "timeout": settings.db_connect_timeout,
        "command_timeout": settings.db_command_timeout,
    }
    if settings.environment == "production":
        # asyncpg takes 'ssl', not libpq's 'sslmode'
        connect_args["ssl"] = "require"
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_pre_ping": True,
        "echo": settings.debug,
        "connect_args": connect_args,
    }


class DatabaseManager:
    """Owns the engine and session factory for the process."""

    def __init__(self) -> None:
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call init_db() first.")
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            raise RuntimeError("Database not initialized. Call init_db() first.")
        return self._session_factory

    @property
    def initialized(self) -> bool:
        return self._session_factory is not None

    def init_db(self) -> None:
        settings = get_settings()
        db_url = to_async_url(str(settings.database_url))
        try:
            self._engine = create_async_engine(db_url, **_engine_options(settings))
        except SQLAlchemyError as e:
            db_logger.connection_error(e, db_url)
            raise
        self._session_factory = async_sessionmaker(
            bind=self._engine, expire_on_commit=False, autoflush=False
        )
        logger.info(
            "Database engine initialized",
            extra={"pool_size": settings.db_pool_size, "environment": settings.environment},
        )

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Database connections closed")

    async def check_connection(self) -> bool:
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            db_logger.connection_error(e, str(get_settings().database_url))
            return False
        return True


db_manager = DatabaseManager()


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """One session for one background job.

    The caller commits; whatever is pending when an exception escapes is
    rolled back and the exception re-raised.
    """
    threshold_ms = get_settings().db_slow_query_threshold_ms
    started = time.monotonic()
    async with db_manager.session_factory() as session:
        try:
            yield session
        except Exception as e:
            await session.rollback()
            if isinstance(e, SQLAlchemyError):
                statement = e.statement if isinstance(e, DBAPIError) else None
                db_logger.transaction_failure(
                    e,
                    context=statement[:200] if statement else "session_scope",
                )
            raise
        finally:
            elapsed_ms = (time.monotonic() - started) * 1000
            if elapsed_ms > threshold_ms:
                db_logger.slow_query("session_scope", elapsed_ms)
