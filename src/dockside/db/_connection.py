"""Database connection and schema.

Single module-level aiosqlite connection, initialized by init_database().
"""

from __future__ import annotations

import aiosqlite

from dockside.config import get_settings
from dockside.logger import logger

_db: aiosqlite.Connection | None = None

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS task_attempts (
    id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL,
    project_id TEXT NOT NULL,
    container_ref TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_task_attempts_container_ref ON task_attempts(container_ref);
CREATE INDEX IF NOT EXISTS idx_task_attempts_task ON task_attempts(task_id);
"""


def _get_db() -> aiosqlite.Connection:
    if _db is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _db


async def _create_schema(database: aiosqlite.Connection) -> None:
    await database.executescript(_SCHEMA)
    await database.commit()


async def init_database() -> None:
    """Initialize the database connection and schema."""
    global _db
    db_path = get_settings().store_path
    db_path.parent.mkdir(parents=True, exist_ok=True)

    _db = await aiosqlite.connect(str(db_path))
    _db.row_factory = aiosqlite.Row
    await _create_schema(_db)
    logger.info("Database ready", path=str(db_path))


async def close_database() -> None:
    global _db
    if _db is not None:
        await _db.close()
        _db = None


async def _init_test_database() -> None:
    """Create an in-memory database for tests.

    Uses ``stop()`` + thread join instead of ``await close()`` because
    pytest-asyncio creates a new event loop per test function.  The
    previous connection's worker thread targets its original (now-dead)
    loop via ``call_soon_threadsafe``, so ``await close()`` hangs.
    ``stop()`` bypasses the loop entirely: it puts the close command
    directly on the worker queue and lets the thread exit on its own.
    """
    global _db
    if _db is not None:
        _db.stop()
        if _db._thread is not None and _db._thread.is_alive():
            _db._thread.join(timeout=2)
    _db = await aiosqlite.connect(":memory:")
    _db.row_factory = aiosqlite.Row
    await _create_schema(_db)
