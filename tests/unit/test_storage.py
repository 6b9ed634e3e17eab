"""Unit tests for the storage layer.

Covers:
- :func:`~listingsync.storage.database.open_db` bootstrap on an in-memory DB.
- :class:`~listingsync.storage.kv.KeyValueStore` get/set/delete/keys.
- :class:`~listingsync.storage.drafts.DraftStore`:
  fail-open reads, quarantine of unreadable payloads, upsert replace/append,
  no-op removal, origin guard, and serialised read-modify-write updates.

All tests run against ``aiosqlite`` in-memory databases.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import aiosqlite
import pytest

from listingsync.core.exceptions import DraftNotFoundError, StorageError, StorageReadError
from listingsync.core.models import Listing, ListingOrigin, ListingStatus
from listingsync.storage.database import MEMORY_DB, open_db
from listingsync.storage.drafts import DEFAULT_DRAFTS_KEY, DraftStore
from listingsync.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)


def _draft(listing_id: str = "d1", **overrides: object) -> Listing:
    return Listing(id=listing_id, origin=ListingOrigin.LOCAL, **overrides)


# ---------------------------------------------------------------------------
# Database bootstrap
# ---------------------------------------------------------------------------


async def test_open_db_memory_creates_schema() -> None:
    conn = await open_db(MEMORY_DB)
    try:
        cursor = await conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='kv_store'"
        )
        assert await cursor.fetchone() is not None
    finally:
        await conn.close()


async def test_open_db_creates_parent_directory(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "dir" / "listingsync.db"
    conn = await open_db(path)
    await conn.close()
    assert path.exists()


# ---------------------------------------------------------------------------
# Key-value store
# ---------------------------------------------------------------------------


class TestKeyValueStore:
    async def test_missing_key_is_none(self, kv: KeyValueStore) -> None:
        assert await kv.get("nope") is None

    async def test_set_then_replace(self, kv: KeyValueStore) -> None:
        await kv.set("k", "one")
        await kv.set("k", "two")
        assert await kv.get("k") == "two"


# ---------------------------------------------------------------------------
# Draft store: reads
# ---------------------------------------------------------------------------


class TestDraftStoreReads:
    async def test_empty_store(self, drafts: DraftStore) -> None:
        assert await drafts.list() == []
        assert await drafts.get("d1") is None

    async def test_garbage_payload_reads_as_empty(
        self, kv: KeyValueStore, drafts: DraftStore
    ) -> None:
        """An unparseable payload is logged and treated as an empty collection."""
        await kv.set(DEFAULT_DRAFTS_KEY, "{not json")
        assert await drafts.list() == []

    async def test_non_array_payload_reads_as_empty(
        self, kv: KeyValueStore, drafts: DraftStore
    ) -> None:
        await kv.set(DEFAULT_DRAFTS_KEY, json.dumps({"id": "d1"}))
        assert await drafts.list() == []

    async def test_storage_failure_reads_as_empty(self) -> None:
        kv = MagicMock(spec=KeyValueStore)
        kv.get = AsyncMock(side_effect=StorageError("disk I/O error"))
        assert await DraftStore(kv).list() == []

    async def test_invalid_records_are_skipped(
        self, kv: KeyValueStore, drafts: DraftStore
    ) -> None:
        """Readable records survive a bad neighbour; remote records are not drafts."""
        payload = [
            {"id": "good", "name": "Palm Court"},
            {"id": "bad", "value": -10},
            "not an object",
            {"id": "backend_9", "origin": "remote", "status": "Published"},
        ]
        await kv.set(DEFAULT_DRAFTS_KEY, json.dumps(payload))
        listings = await drafts.list()
        assert [listing.id for listing in listings] == ["good"]


# ---------------------------------------------------------------------------
# Draft store: writes
# ---------------------------------------------------------------------------


class TestDraftStoreWrites:
    async def test_upsert_appends_then_replaces(self, drafts: DraftStore) -> None:
        await drafts.upsert(_draft("d1", name="One"))
        await drafts.upsert(_draft("d2", name="Two"))
        await drafts.upsert(_draft("d1", name="One bis"))

        listings = await drafts.list()
        assert [listing.id for listing in listings] == ["d1", "d2"]
        assert listings[0].name == "One bis"

    async def test_upsert_refuses_remote_listing(self, drafts: DraftStore) -> None:
        remote = Listing(id="backend_1", origin=ListingOrigin.REMOTE, status=ListingStatus.PUBLISHED)
        with pytest.raises(StorageError, match="owned by the server"):
            await drafts.upsert(remote)

    async def test_stored_payload_is_json_array(
        self, kv: KeyValueStore, drafts: DraftStore
    ) -> None:
        await drafts.upsert(_draft("d1", name="Åsa's place"))
        raw = await kv.get(DEFAULT_DRAFTS_KEY)
        assert raw is not None
        decoded = json.loads(raw)
        assert isinstance(decoded, list)
        assert decoded[0]["id"] == "d1"
        assert "Åsa" in raw

    async def test_write_preserves_unreadable_neighbours(
        self, kv: KeyValueStore, drafts: DraftStore
    ) -> None:
        await kv.set(DEFAULT_DRAFTS_KEY, json.dumps([{"id": "bad", "value": -1}]))
        await drafts.upsert(_draft("d1"))
        decoded = json.loads(await kv.get(DEFAULT_DRAFTS_KEY) or "[]")
        assert [record["id"] for record in decoded] == ["bad", "d1"]

    async def test_unreadable_payload_quarantined_before_overwrite(
        self, db: aiosqlite.Connection, kv: KeyValueStore, drafts: DraftStore
    ) -> None:
        await kv.set(DEFAULT_DRAFTS_KEY, "{corrupt")
        await drafts.upsert(_draft("d1"))

        cursor = await db.execute(
            "SELECT value FROM kv_store WHERE key LIKE ?", (f"{DEFAULT_DRAFTS_KEY}.corrupt.%",)
        )
        quarantined = [row["value"] for row in await cursor.fetchall()]
        assert quarantined == ["{corrupt"]
        assert [listing.id for listing in await drafts.list()] == ["d1"]

    async def test_remove_by_id(self, drafts: DraftStore) -> None:
        await drafts.upsert(_draft("d1"))
        await drafts.upsert(_draft("d2"))
        assert await drafts.remove_by_id("d1") is True
        assert [listing.id for listing in await drafts.list()] == ["d2"]

    async def test_remove_missing_id_is_noop(self, drafts: DraftStore) -> None:
        await drafts.upsert(_draft("d1"))
        assert await drafts.remove_by_id("ghost") is False
        assert [listing.id for listing in await drafts.list()] == ["d1"]


# ---------------------------------------------------------------------------
# Draft store: read-modify-write
# ---------------------------------------------------------------------------


class TestDraftStoreUpdate:
    async def test_update_applies_change(self, drafts: DraftStore) -> None:
        await drafts.upsert(_draft("d1"))
        saved = await drafts.update("d1", lambda cur: cur.with_changes(name="Palm Court"))
        assert saved.name == "Palm Court"
        stored = await drafts.get("d1")
        assert stored is not None and stored.name == "Palm Court"

    async def test_update_missing_draft(self, drafts: DraftStore) -> None:
        with pytest.raises(DraftNotFoundError):
            await drafts.update("ghost", lambda cur: cur)

    async def test_update_unreadable_record(self, kv: KeyValueStore, drafts: DraftStore) -> None:
        await kv.set(DEFAULT_DRAFTS_KEY, json.dumps([{"id": "d1", "value": -1}]))
        with pytest.raises(StorageReadError):
            await drafts.update("d1", lambda cur: cur)

    async def test_update_cannot_change_id(self, drafts: DraftStore) -> None:
        await drafts.upsert(_draft("d1"))
        with pytest.raises(StorageError, match="changed the id"):
            await drafts.update("d1", lambda cur: cur.with_changes(id="d2"))

    async def test_concurrent_updates_keep_both_fields(self, drafts: DraftStore) -> None:
        """Two steps saving at once never overwrite each other's fields."""
        await drafts.upsert(_draft("d1"))

        def _set_name(cur: Listing) -> Listing:
            return cur.with_changes(name="Palm Court")

        def _set_coordinates(cur: Listing) -> Listing:
            return cur.with_changes(coordinates={"latitude": 6.45, "longitude": 3.39})

        await asyncio.gather(
            drafts.update("d1", _set_name),
            drafts.update("d1", _set_coordinates),
        )

        stored = await drafts.get("d1")
        assert stored is not None
        assert stored.name == "Palm Court"
        assert stored.coordinates is not None
