"""Tests for database helpers.

- to_async_url rewrites driver prefixes
- session_scope rolls back uncommitted work on error
- check_connection reports health
"""

import pytest
from sqlalchemy import func, select

from app.core.database import session_scope, to_async_url
from app.models.course import Course


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("postgresql://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
        ("postgres://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
        ("postgresql+asyncpg://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
    ],
)
def test_to_async_url(url: str, expected: str) -> None:
    assert to_async_url(url) == expected


class TestSessionScope:
    async def test_commits_when_caller_commits(self, mock_db_manager) -> None:
        async with session_scope() as session:
            session.add(Course(title="Committed"))
            await session.commit()

        async with session_scope() as session:
            count = await session.scalar(select(func.count()).select_from(Course))
        assert count == 1

    async def test_rolls_back_on_error(self, mock_db_manager) -> None:
        with pytest.raises(RuntimeError):
            async with session_scope() as session:
                session.add(Course(title="Discarded"))
                await session.flush()
                raise RuntimeError("handler failed")

        async with session_scope() as session:
            count = await session.scalar(select(func.count()).select_from(Course))
        assert count == 0


async def test_check_connection(mock_db_manager) -> None:
    assert await mock_db_manager.check_connection() is True
