"""Listing aggregator.

Merges local drafts and normalised server listings into the single collection
the listings index renders.  Pure and stateless: it never writes to either
store, and given the same inputs it always returns the same output.

Ordering is drafts first (in stored order), then server listings (in server
order).  Each query axis is an independent predicate, so the order in which
filters are applied never changes the result.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

from listingsync.core import events
from listingsync.core.models import Listing, ListingOrigin
from listingsync.core.progress import ListingProgress
from listingsync.core.query import ListingQuery

__all__ = ["ListingRow", "ListingPerformance", "aggregate", "annotate", "performance"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ListingRow:
    """One rendered row: a listing and its derived completion state."""

    listing: Listing
    progress: ListingProgress


@dataclass(frozen=True, slots=True)
class ListingPerformance:
    """Engagement figures shown on a listing card.

    Drafts have no server record, so every counter is zero and
    :attr:`listed_at` is ``None``.
    """

    views: int = 0
    inquiries: int = 0
    bookmarks: int = 0
    listed_at: datetime | None = None


def _from_source(
    listings: Iterable[Listing], expected: ListingOrigin
) -> list[Listing]:
    kept: list[Listing] = []
    for listing in listings:
        if listing.origin is not expected:
            logger.warning(
                "Dropping %s listing %s found among %s listings.",
                listing.origin,
                listing.id,
                expected,
                extra={"event": events.ORIGIN_MISMATCH},
            )
            continue
        kept.append(listing)
    return kept


def aggregate(
    drafts: Sequence[Listing],
    remote: Sequence[Listing],
    query: ListingQuery | None = None,
) -> list[Listing]:
    """Merge *drafts* and *remote* and apply *query*.

    Args:
        drafts: Local drafts, in stored order.
        remote: Normalised server listings, in server order.
        query: Filter to apply; ``None`` shows everything.

    Returns:
        Matching listings, drafts first.
    """
    merged = _from_source(drafts, ListingOrigin.LOCAL) + _from_source(
        remote, ListingOrigin.REMOTE
    )
    if query is None or query.is_unfiltered:
        return merged
    return [listing for listing in merged if query.matches(listing)]


def annotate(listings: Iterable[Listing]) -> list[ListingRow]:
    """Pair each listing with its derived :class:`ListingProgress`."""
    return [ListingRow(listing=listing, progress=listing.progress) for listing in listings]


def performance(listing: Listing) -> ListingPerformance:
    """Return the engagement figures for *listing*."""
    stats = listing.engagement
    if stats is None:
        return ListingPerformance()
    return ListingPerformance(
        views=stats.views,
        inquiries=stats.inquiries,
        bookmarks=stats.bookmarks,
        listed_at=listing.published_at,
    )
