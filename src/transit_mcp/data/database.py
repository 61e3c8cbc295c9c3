"""Database connection helper for the feed SQLite database."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from transit_mcp.errors import StoreUnavailableError

# Readers wait this long for the importer's write lock instead of failing.
BUSY_TIMEOUT_MS = 5000


@asynccontextmanager
async def get_db(db_path: Path) -> AsyncIterator[aiosqlite.Connection]:
    """Async context manager for read connections with Row factory.

    Args:
        db_path: Path to the database.

    Yields:
        aiosqlite.Connection configured with Row factory for dict-like access.

    Raises:
        StoreUnavailableError: If the database file doesn't exist.
    """
    if not db_path.exists():
        raise StoreUnavailableError(
            f"Database not found at {db_path}. Run 'transit-mcp import' to create it."
        )

    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        await db.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
        yield db


@asynccontextmanager
async def get_write_db(db_path: Path) -> AsyncIterator[aiosqlite.Connection]:
    """Connection in autocommit mode for callers that manage BEGIN/COMMIT themselves."""
    async with aiosqlite.connect(db_path, isolation_level=None) as db:
        db.row_factory = aiosqlite.Row
        await db.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
        await db.execute("PRAGMA foreign_keys=ON")
        yield db
