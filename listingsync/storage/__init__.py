"""SQLite-backed key-value storage and the local draft store."""

from listingsync.storage.database import DEFAULT_DB_PATH, MEMORY_DB, create_schema, open_db
from listingsync.storage.drafts import DEFAULT_DRAFTS_KEY, DraftStore
from listingsync.storage.kv import KeyValueStore

__all__ = [
    "DEFAULT_DB_PATH",
    "MEMORY_DB",
    "open_db",
    "create_schema",
    "KeyValueStore",
    "DraftStore",
    "DEFAULT_DRAFTS_KEY",
]
