"""Key-value access on top of the ``kv_store`` table.

:class:`KeyValueStore` is the only code that touches SQL.  It owns no
connection lifecycle: the caller opens the connection with
:func:`~listingsync.storage.database.open_db` and closes it when done.

Every operation wraps driver failures in
:class:`~listingsync.core.exceptions.StorageError` so that callers deal with
one exception family regardless of the backing database.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import aiosqlite

from listingsync.core.exceptions import StorageError

__all__ = ["KeyValueStore"]

logger = logging.getLogger(__name__)


class KeyValueStore:
    """String-to-string storage with whole-value replacement semantics.

    Args:
        conn: Open :class:`aiosqlite.Connection` with the ``kv_store`` table
            already created.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get(self, key: str) -> str | None:
        """Return the value stored under *key*, or ``None`` if absent.

        Raises:
            StorageError: If the database read fails.
        """
        try:
            cursor = await self._conn.execute(
                "SELECT value FROM kv_store WHERE key = ? LIMIT 1",
                (key,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to read key {key!r}: {exc}") from exc
        return row["value"] if row is not None else None

    async def set(self, key: str, value: str) -> None:  # noqa: A003
        """Store *value* under *key*, replacing any previous value.

        Raises:
            StorageError: If the database write fails.
        """
        now_utc = datetime.now(UTC).isoformat()
        try:
            await self._conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value      = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, now_utc),
            )
            await self._conn.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to write key {key!r}: {exc}") from exc
        logger.debug("kv_store: wrote %d chars under %r", len(value), key)

