"""Remote listing fetcher.

:class:`RemoteListingFetcher` retrieves every server listing owned by a
vendor and normalises it.  It never raises for backend failures: the result
is a :class:`FetchResult` whose :attr:`~FetchResult.error` carries the
failure, so "the vendor has no server listings" (``ok`` and empty) can
always be told apart from "we could not ask" (``error`` set).

Records that fail schema validation are skipped one by one and counted; a
single malformed record never hides the rest of the vendor's listings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from listingsync.core import events
from listingsync.core.exceptions import BackendAuthError, BackendError
from listingsync.core.models import Listing
from listingsync.remote.backend import BackendApi
from listingsync.remote.normalizer import normalize
from listingsync.remote.schemas import BackendProperty

__all__ = ["FetchResult", "RemoteListingFetcher"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Outcome of one remote fetch.

    Attributes:
        listings: Normalised, remote-origin listings in server order.
        records: The validated backend records the listings came from.
        skipped: Number of records dropped because they failed validation.
        error: The failure, or ``None`` when the fetch succeeded.
    """

    listings: tuple[Listing, ...] = ()
    records: tuple[BackendProperty, ...] = ()
    skipped: int = 0
    error: BackendError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, error: BackendError) -> FetchResult:
        return cls(error=error)


class RemoteListingFetcher:
    """Fetch and normalise a vendor's server listings.

    Args:
        api: Authenticated backend API client.
    """

    def __init__(self, api: BackendApi) -> None:
        self._api = api

    async def fetch(self, owner_id: str) -> FetchResult:
        """Return the normalised server listings owned by *owner_id*.

        A blank *owner_id* is an empty, successful result: there is nobody
        to fetch for.
        """
        if not owner_id.strip():
            logger.debug("No owner id; skipping remote fetch.")
            return FetchResult()

        if not self._api.vendor.is_authenticated:
            error = BackendAuthError("fetch-properties-by-email", "Authentication token not found")
            logger.warning(
                "Remote fetch skipped: %s", error, extra={"event": events.REMOTE_FETCH_ERROR}
            )
            return FetchResult.failed(error)

        try:
            raw_records = await self._api.fetch_vendor_properties(owner_id)
        except BackendError as exc:
            logger.warning(
                "Remote fetch failed for %s: %s",
                owner_id,
                exc,
                extra={"event": events.REMOTE_FETCH_ERROR, "error": type(exc).__name__},
            )
            return FetchResult.failed(exc)

        records: list[BackendProperty] = []
        listings: list[Listing] = []
        skipped = 0
        for raw in raw_records:
            parsed = self._parse(raw)
            if parsed is None:
                skipped += 1
                continue
            try:
                listing = normalize(parsed)
            except ValidationError as exc:
                logger.warning(
                    "Skipping backend record %d: cannot normalise (%d error(s)).",
                    parsed.id,
                    exc.error_count(),
                    extra={"event": events.REMOTE_RECORD_SKIPPED},
                )
                skipped += 1
                continue
            records.append(parsed)
            listings.append(listing)

        logger.info(
            "Fetched %d server listing(s) for %s (%d skipped).",
            len(listings),
            owner_id,
            skipped,
            extra={"event": events.REMOTE_FETCH_OK, "count": len(listings), "skipped": skipped},
        )
        return FetchResult(listings=tuple(listings), records=tuple(records), skipped=skipped)

    @staticmethod
    def _parse(raw: Any) -> BackendProperty | None:
        """Validate one raw record, returning ``None`` (and logging) if malformed."""
        if not isinstance(raw, dict):
            logger.warning(
                "Skipping non-object backend record of type %s.",
                type(raw).__name__,
                extra={"event": events.REMOTE_RECORD_SKIPPED},
            )
            return None
        try:
            return BackendProperty.model_validate(raw)
        except ValidationError as exc:
            logger.warning(
                "Skipping backend record %r: %d validation error(s).",
                raw.get("id"),
                exc.error_count(),
                extra={"event": events.REMOTE_RECORD_SKIPPED},
            )
            return None
