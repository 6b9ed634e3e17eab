"""Listing catalog: one repository interface over the two listing stores.

:class:`ListingCatalog` hides the two backing adapters (the local
:class:`~listingsync.storage.drafts.DraftStore` and the
:class:`~listingsync.remote.fetcher.RemoteListingFetcher`) behind a single
read API:

* :meth:`ListingCatalog.load` reads drafts and fetches server listings
  **concurrently** and returns a :class:`CatalogSnapshot`.
* :meth:`ListingCatalog.get` resolves one id **by origin**: a
  ``backend_<id>`` id is looked up among server listings, anything else in
  the draft store.
* :meth:`ListingCatalog.create_draft` adds an empty local draft.

Writes are not routed through here: step controllers write drafts through
the draft store and the removal router dispatches deletes by origin.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from listingsync.core import events
from listingsync.core.exceptions import BackendUnavailableError, ListingNotFoundError
from listingsync.core.ids import is_remote_listing_id, new_local_id
from listingsync.core.models import Listing, ListingCategory, ListingOrigin, ListingStatus
from listingsync.core.query import ListingQuery
from listingsync.core.vendor_context import VendorContext
from listingsync.engine.aggregator import ListingRow, aggregate, annotate
from listingsync.remote.fetcher import FetchResult, RemoteListingFetcher
from listingsync.storage.drafts import DraftStore

__all__ = ["CatalogSnapshot", "ListingCatalog"]

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class CatalogSnapshot:
    """Both sources as they were at the end of one :meth:`ListingCatalog.load`.

    Attributes:
        drafts: Local drafts in stored order.
        remote: The remote fetch result (check ``remote.ok``).
        query: The filter the snapshot was built with.
    """

    drafts: tuple[Listing, ...] = ()
    remote: FetchResult = field(default_factory=FetchResult)
    query: ListingQuery = field(default_factory=ListingQuery)

    @property
    def listings(self) -> list[Listing]:
        """The aggregated, filtered collection (drafts first)."""
        return aggregate(self.drafts, self.remote.listings, self.query)

    @property
    def rows(self) -> list[ListingRow]:
        return annotate(self.listings)

    @property
    def remote_error(self) -> str | None:
        return str(self.remote.error) if self.remote.error is not None else None

    def with_query(self, query: ListingQuery) -> CatalogSnapshot:
        """Re-filter without reloading either source."""
        return CatalogSnapshot(drafts=self.drafts, remote=self.remote, query=query)

    def find(self, listing_id: str) -> Listing | None:
        source = self.remote.listings if is_remote_listing_id(listing_id) else self.drafts
        return next((listing for listing in source if listing.id == listing_id), None)


class ListingCatalog:
    """Read access to every listing the vendor owns.

    Args:
        drafts: The local draft store.
        fetcher: The remote listing fetcher.
        vendor: The signed-in vendor.
        clock: Returns "now"; injectable for tests.
    """

    def __init__(
        self,
        drafts: DraftStore,
        fetcher: RemoteListingFetcher,
        vendor: VendorContext,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._drafts = drafts
        self._fetcher = fetcher
        self._vendor = vendor
        self._clock = clock

    @property
    def drafts(self) -> DraftStore:
        return self._drafts

    @property
    def vendor(self) -> VendorContext:
        return self._vendor

    async def load(
        self, query: ListingQuery | None = None, *, fetch_timeout_s: float | None = None
    ) -> CatalogSnapshot:
        """Read drafts and fetch server listings concurrently.

        Either source may settle first.  A remote failure is carried in the
        snapshot's ``remote.error`` while drafts are still returned.

        Args:
            query: Filter for the snapshot.
            fetch_timeout_s: Give up on the server fetch after this many
                seconds; the snapshot then carries a
                :class:`~listingsync.core.exceptions.BackendUnavailableError`.
        """
        logger.debug(
            "Loading listings for %s.",
            self._vendor.owner_id,
            extra={"event": events.LISTINGS_LOAD_START},
        )
        drafts, remote = await asyncio.gather(
            self._drafts.list(),
            self._fetch_remote(fetch_timeout_s),
        )
        snapshot = CatalogSnapshot(
            drafts=tuple(drafts), remote=remote, query=query or ListingQuery()
        )
        logger.info(
            "Loaded %d draft(s) and %d server listing(s).",
            len(snapshot.drafts),
            len(remote.listings),
            extra={
                "event": events.LISTINGS_LOAD_COMPLETE,
                "drafts": len(snapshot.drafts),
                "remote": len(remote.listings),
                "remote_ok": remote.ok,
            },
        )
        return snapshot

    async def _fetch_remote(self, timeout_s: float | None) -> FetchResult:
        try:
            async with asyncio.timeout(timeout_s):
                return await self._fetcher.fetch(self._vendor.owner_id)
        except TimeoutError:
            logger.warning(
                "Server listings did not arrive within %ss.",
                timeout_s,
                extra={"event": events.REMOTE_FETCH_ERROR},
            )
            return FetchResult.failed(
                BackendUnavailableError("fetch", f"no response within {timeout_s}s")
            )

    async def get(self, listing_id: str) -> Listing:
        """Resolve *listing_id* in the store that owns it.

        Raises:
            ListingNotFoundError: If the owning store has no such listing.
            BackendError: If a server listing was requested and the fetch failed.
        """
        if is_remote_listing_id(listing_id):
            result = await self._fetcher.fetch(self._vendor.owner_id)
            if result.error is not None:
                raise result.error
            listing = next((item for item in result.listings if item.id == listing_id), None)
        else:
            listing = await self._drafts.get(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        return listing

    async def create_draft(
        self, category: ListingCategory = ListingCategory.CORPORATE
    ) -> Listing:
        """Create and store an empty local draft (step 0, 0% complete)."""
        now = self._clock()
        draft = Listing(
            id=new_local_id(),
            origin=ListingOrigin.LOCAL,
            owner_id=self._vendor.owner_id,
            category=category,
            status=ListingStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )
        await self._drafts.upsert(draft)
        logger.info(
            "Created draft %s.", draft.id, extra={"event": events.DRAFT_CREATED}
        )
        return draft
