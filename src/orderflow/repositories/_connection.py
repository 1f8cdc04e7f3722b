"""
Connection handling helper for database operations.

Repositories accept either an ``AsyncEngine`` or an ``AsyncConnection``.
``execute_with_connection`` hides the difference.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine


@asynccontextmanager
async def execute_with_connection(
    conn: AsyncConnection | AsyncEngine,
    transactional: bool = True,
) -> AsyncIterator[AsyncConnection]:
    """
    Yield a connection for repository statements.

    An engine is opened per call, inside ``begin()`` unless ``transactional``
    is False. An ``AsyncConnection`` passed in is yielded untouched, so a
    caller composing several repository calls owns commit and rollback.
    """
    if isinstance(conn, AsyncEngine):
        if transactional:
            async with conn.begin() as connection:
                yield connection
        else:
            async with conn.connect() as connection:
                yield connection
    else:
        yield conn


def dialect_name(conn: AsyncConnection | AsyncEngine) -> str:
    return conn.dialect.name


def as_utc(value: datetime | None) -> datetime | None:
    """
    Normalize a datetime read from the database to an aware UTC value.

    SQLite returns naive datetimes even for timezone-aware columns.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


__all__ = ["as_utc", "dialect_name", "execute_with_connection"]
