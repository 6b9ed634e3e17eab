"""Local draft store.

Provides :class:`DraftStore`, the single owner of listings that exist only on
the device.  The whole collection lives under one key as a JSON array, the
layout the mobile client has always used.

Contract
--------
* **Fail-open reads** — if the stored payload cannot be read or decoded,
  :meth:`DraftStore.list` logs a warning and returns ``[]``.  Individual
  records that fail validation are skipped on read.
* **Nothing is silently lost** — records that fail validation are written
  back verbatim, and an undecodable payload is copied to
  ``<key>.corrupt.<timestamp>`` before a write replaces it.
* **Serialised writes** — every write goes through one :class:`asyncio.Lock`
  per store.  :meth:`DraftStore.update` re-reads the freshest copy inside the
  lock before applying its change, so two concurrent step saves never
  overwrite each other's fields.
* **Local only** — a ``remote``-origin listing is refused.

Typical usage::

    from listingsync.storage.database import open_db
    from listingsync.storage.drafts import DraftStore
    from listingsync.storage.kv import KeyValueStore

    conn = await open_db()
    drafts = DraftStore(KeyValueStore(conn))
    await drafts.upsert(listing)
    await drafts.update(listing.id, lambda d: d.with_changes(name="Palm Court"))
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Final

from pydantic import ValidationError

from listingsync.core import events
from listingsync.core.exceptions import DraftNotFoundError, StorageError, StorageReadError
from listingsync.core.models import Listing, ListingOrigin
from listingsync.storage.kv import KeyValueStore

__all__ = ["DEFAULT_DRAFTS_KEY", "DraftStore"]

logger = logging.getLogger(__name__)

#: Storage key of the draft collection.
DEFAULT_DRAFTS_KEY: Final[str] = "marketplaceListings"


@dataclass(slots=True)
class _RawCollection:
    """The stored array as raw records, plus the payload if it was unreadable."""

    records: list[Any] = field(default_factory=list)
    unreadable: str | None = None


class DraftStore:
    """Persistent collection of local drafts.

    Args:
        kv: Key-value store holding the collection.
        key: Storage key of the collection.
    """

    def __init__(self, kv: KeyValueStore, key: str = DEFAULT_DRAFTS_KEY) -> None:
        self._kv = kv
        self._key = key
        self._lock = asyncio.Lock()

    @property
    def key(self) -> str:
        return self._key

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list(self) -> list[Listing]:  # noqa: A003
        """Return every readable draft, in stored order.

        Never raises for storage or decode problems: they are logged and the
        collection is treated as empty.
        """
        try:
            raw = await self._read_raw()
        except StorageError as exc:
            logger.warning(
                "Draft store unreadable (%s); treating as empty.",
                exc,
                extra={"event": events.DRAFT_STORE_READ_ERROR},
            )
            return []
        if raw.unreadable is not None:
            logger.warning(
                "Draft store payload under %r is not a JSON array; treating as empty.",
                self._key,
                extra={"event": events.DRAFT_STORE_READ_ERROR},
            )
            return []

        drafts: list[Listing] = []
        for index, record in enumerate(raw.records):
            listing = self._parse_record(record, index)
            if listing is not None:
                drafts.append(listing)
        return drafts

    async def get(self, listing_id: str) -> Listing | None:
        """Return the draft with *listing_id*, or ``None``."""
        for listing in await self.list():
            if listing.id == listing_id:
                return listing
        return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert(self, listing: Listing) -> Listing:
        """Replace the stored record with the same id, or append *listing*.

        Raises:
            StorageError: If *listing* is not a local draft, or the write fails.
        """
        self._require_local(listing)
        async with self._lock:
            raw = await self._read_for_write()
            encoded = listing.model_dump(mode="json")
            for index, record in enumerate(raw.records):
                if _record_id(record) == listing.id:
                    raw.records[index] = encoded
                    action = "replaced"
                    break
            else:
                raw.records.append(encoded)
                action = "appended"
            await self._write(raw.records)

        logger.debug(
            "Draft %s %s.", listing.id, action, extra={"event": events.DRAFT_UPSERTED}
        )
        return listing

    async def remove_by_id(self, listing_id: str) -> bool:
        """Remove the draft with *listing_id*.

        A missing id is a no-op.

        Returns:
            ``True`` if a record was removed.
        """
        async with self._lock:
            raw = await self._read_for_write()
            kept = [record for record in raw.records if _record_id(record) != listing_id]
            removed = len(kept) != len(raw.records)
            if removed or raw.unreadable is not None:
                await self._write(kept)

        if removed:
            logger.info(
                "Removed local draft %s.", listing_id, extra={"event": events.DRAFT_REMOVED}
            )
        else:
            logger.debug("No local draft %s to remove.", listing_id)
        return removed

    async def update(self, listing_id: str, change: Callable[[Listing], Listing]) -> Listing:
        """Apply *change* to the freshest stored copy of a draft and save it.

        The read, the change and the write all happen while the store lock
        is held, so *change* always sees the result of every earlier write.

        Args:
            listing_id: Id of the draft to change.
            change: Pure function returning the edited listing.  It must keep
                the id and the local origin.

        Returns:
            The saved listing.

        Raises:
            DraftNotFoundError: If no readable draft has *listing_id*.
            StorageError: If *change* alters the id or origin, or the write fails.
        """
        async with self._lock:
            raw = await self._read_for_write()
            for index, record in enumerate(raw.records):
                if _record_id(record) != listing_id:
                    continue
                current = self._parse_record(record, index)
                if current is None:
                    raise StorageReadError(self._key, f"draft {listing_id!r} is not readable")
                updated = change(current)
                if updated.id != listing_id:
                    raise StorageError(
                        f"Draft update changed the id from {listing_id!r} to {updated.id!r}"
                    )
                self._require_local(updated)
                raw.records[index] = updated.model_dump(mode="json")
                await self._write(raw.records)
                break
            else:
                raise DraftNotFoundError(listing_id)

        logger.debug("Draft %s updated.", listing_id, extra={"event": events.DRAFT_UPSERTED})
        return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _read_raw(self) -> _RawCollection:
        payload = await self._kv.get(self._key)
        if payload is None or not payload.strip():
            return _RawCollection()
        try:
            decoded = json.loads(payload)
        except json.JSONDecodeError:
            return _RawCollection(unreadable=payload)
        if not isinstance(decoded, list):
            return _RawCollection(unreadable=payload)
        return _RawCollection(records=decoded)

    async def _read_for_write(self) -> _RawCollection:
        """Read the collection for a write, quarantining an unreadable payload."""
        raw = await self._read_raw()
        if raw.unreadable is not None:
            quarantine_key = f"{self._key}.corrupt.{datetime.now(UTC).strftime('%Y%m%dT%H%M%S%f')}"
            await self._kv.set(quarantine_key, raw.unreadable)
            logger.warning(
                "Unreadable draft payload copied to %r before overwrite.",
                quarantine_key,
                extra={"event": events.DRAFT_STORE_QUARANTINE},
            )
        return raw

    async def _write(self, records: list[Any]) -> None:
        await self._kv.set(self._key, json.dumps(records, ensure_ascii=False))

    def _parse_record(self, record: Any, index: int) -> Listing | None:
        if not isinstance(record, dict):
            logger.warning("Skipping non-object draft record at index %d.", index)
            return None
        try:
            listing = Listing.model_validate(record)
        except ValidationError as exc:
            logger.warning(
                "Skipping unreadable draft %r at index %d: %d validation error(s).",
                record.get("id"),
                index,
                exc.error_count(),
            )
            return None
        if listing.origin is not ListingOrigin.LOCAL:
            logger.warning("Skipping non-local record %s found in the draft store.", listing.id)
            return None
        return listing

    @staticmethod
    def _require_local(listing: Listing) -> None:
        if listing.origin is not ListingOrigin.LOCAL:
            raise StorageError(
                f"Listing {listing.id!r} is owned by the server and cannot be stored as a draft"
            )


def _record_id(record: Any) -> Any:
    return record.get("id") if isinstance(record, dict) else None
