"""SQLite database initialisation for listingsync.

This module is responsible for:

* Opening (or creating) the SQLite file.
* Configuring low-level PRAGMA settings (WAL journal mode).
* Bootstrapping the ``kv_store`` table via ``CREATE TABLE IF NOT EXISTS``,
  which is safe to call on every startup.

The device keeps drafts in a plain key-value store; ``kv_store`` gives the
engine the same shape on top of SQLite (one text value per key).

Typical usage::

    from listingsync.storage.database import open_db

    async def main() -> None:
        conn = await open_db()          # creates file + schema if absent
        # ... pass conn to KeyValueStore ...
        await conn.close()
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

__all__ = [
    "DEFAULT_DB_PATH",
    "MEMORY_DB",
    "open_db",
    "create_schema",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Default path for the SQLite database file (relative to the working directory).
DEFAULT_DB_PATH: Path = Path("data/listingsync.db")

#: Special path understood by SQLite as a private in-memory database.
MEMORY_DB: str = ":memory:"

# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

#: Generic key-value table.
#:
#: Column notes:
#:   key: storage key (e.g. ``"marketplaceListings"``).
#:   value: opaque text payload; the draft store writes a JSON array.
#:   updated_at: ISO-8601 UTC timestamp of the last write.
_DDL_KV_STORE = """
CREATE TABLE IF NOT EXISTS kv_store (
    key        TEXT NOT NULL,
    value      TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (key)
)"""

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def open_db(path: Path | str | None = None) -> aiosqlite.Connection:
    """Open (or create) the SQLite database and bootstrap the schema.

    Steps performed on every call:

    1. Create parent directories for the DB file if they do not exist
       (skipped for :data:`MEMORY_DB`).
    2. Open the ``aiosqlite`` connection with ``row_factory = aiosqlite.Row``.
    3. Enable WAL journal mode.
    4. Call :func:`create_schema` (idempotent).

    Args:
        path: Filesystem path for the SQLite file, or ``":memory:"``.
            Defaults to :data:`DEFAULT_DB_PATH`.

    Returns:
        An open, configured :class:`aiosqlite.Connection`.  The caller is
        responsible for closing it.

    Raises:
        aiosqlite.OperationalError: If the database file cannot be opened or
            created.
    """
    target: str | Path
    if path is None or str(path) != MEMORY_DB:
        db_path = Path(path) if path is not None else DEFAULT_DB_PATH
        db_path.parent.mkdir(parents=True, exist_ok=True)
        target = db_path
    else:
        target = MEMORY_DB

    logger.debug("Opening SQLite database at %s", target)

    conn: aiosqlite.Connection = await aiosqlite.connect(target)
    conn.row_factory = aiosqlite.Row

    await _configure_pragmas(conn)
    await create_schema(conn)

    logger.info("SQLite database ready at %s", target)
    return conn


async def create_schema(conn: aiosqlite.Connection) -> None:
    """Create the ``kv_store`` table if it does not already exist.

    Args:
        conn: An open :class:`aiosqlite.Connection`.
    """
    await conn.execute(_DDL_KV_STORE)
    await conn.commit()
    logger.debug("Schema bootstrap complete (kv_store table verified)")


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


async def _configure_pragmas(conn: aiosqlite.Connection) -> None:
    """Apply PRAGMA settings that must be set immediately after opening."""
    result = await conn.execute("PRAGMA journal_mode=WAL")
    row = await result.fetchone()
    mode = row[0] if row else "unknown"
    if mode != "wal":
        logger.debug("SQLite journal_mode is %r (expected for in-memory databases).", mode)
    else:
        logger.debug("SQLite journal_mode set to WAL")
