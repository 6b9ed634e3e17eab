"""Listings index filter model.

Defines :class:`ListingQuery`, the filter the listings index applies to the
aggregated collection: a category chip, a status chip and a free-text search
box.  Each axis is an independent predicate, so the order in which they are
applied never changes the result.

Typical usage::

    from listingsync.core.query import ListingQuery

    query = ListingQuery(category="P2P", status="Draft", search="lekki")
    visible = [listing for listing in listings if query.matches(listing)]
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Final, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from listingsync.core.models import ListingCategory, ListingStatus

if TYPE_CHECKING:
    from listingsync.core.models import Listing

__all__ = ["ALL", "ListingQuery"]

logger = logging.getLogger(__name__)

#: Sentinel chip value meaning "no constraint on this axis".
ALL: Final = "All"

_WHITESPACE_RE = re.compile(r"\s+")


def _normalise(text: str) -> str:
    """Lowercase and collapse internal whitespace for case-insensitive matching."""
    return _WHITESPACE_RE.sub(" ", text).strip().lower()


class ListingQuery(BaseModel):
    """Filter applied to the listings index.

    Attributes:
        category: A :class:`ListingCategory` value or ``"All"``.
        status: A :class:`ListingStatus` value or ``"All"``.
        search: Case-insensitive substring matched against the listing name
            and location.  Blank means no text constraint.
    """

    model_config = ConfigDict(frozen=True)

    category: ListingCategory | Literal["All"] = Field(
        ALL, description="Category chip; 'All' disables the constraint."
    )
    status: ListingStatus | Literal["All"] = Field(
        ALL, description="Status chip; 'All' disables the constraint."
    )
    search: str = Field("", description="Free-text search over name and location.")

    @field_validator("search")
    @classmethod
    def _normalise_search(cls, v: str) -> str:
        return _normalise(v)

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def matches_category(self, listing: Listing) -> bool:
        return self.category == ALL or listing.category == self.category

    def matches_status(self, listing: Listing) -> bool:
        return self.status == ALL or listing.status == self.status

    def matches_search(self, listing: Listing) -> bool:
        if not self.search:
            return True
        return self.search in _normalise(listing.name) or self.search in _normalise(
            listing.location
        )

    def matches(self, listing: Listing) -> bool:
        """Return ``True`` if *listing* passes every axis of the query."""
        return (
            self.matches_category(listing)
            and self.matches_status(listing)
            and self.matches_search(listing)
        )

    @property
    def is_unfiltered(self) -> bool:
        return self.category == ALL and self.status == ALL and not self.search
