"""Listingsync core domain models.

This module defines the canonical :class:`Listing` data model and the value
types it is built from.  Both sources (local drafts and server records) are
normalised into a :class:`Listing`; the :attr:`Listing.origin` tag says which
store owns it.

Completion state (:attr:`Listing.progress`, :attr:`Listing.completion_percentage`
and :attr:`Listing.current_step`) is *derived* on access and never stored:
``model_dump()`` does not include it, and legacy payloads that still carry
``completion_percentage`` / ``current_step`` keys load with those keys
ignored.

Typical usage::

    from listingsync.core.models import Listing, ListingOrigin

    draft = Listing(id="3f2b9c", origin=ListingOrigin.LOCAL, owner_id="v@example.com")
    draft.completion_percentage          # 0
    named = draft.with_changes(name="Palm Court", property_type="Duplex",
                               location="Lekki, Lagos")
    named.current_step                   # 1
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from listingsync.core.ids import REMOTE_ID_PREFIX

if TYPE_CHECKING:
    from listingsync.core.progress import ListingProgress

__all__ = [
    "ListingOrigin",
    "ListingCategory",
    "ListingStatus",
    "MarketType",
    "RoadProximity",
    "PropertyFeatures",
    "Coordinates",
    "ListingMedia",
    "EngagementStats",
    "Listing",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ListingOrigin(StrEnum):
    """Which store owns a listing."""

    LOCAL = "local"
    REMOTE = "remote"


class ListingCategory(StrEnum):
    """Marketplace category.  ``PEER_TO_PEER`` serialises as ``"P2P"``."""

    CORPORATE = "Corporate"
    PEER_TO_PEER = "P2P"


class ListingStatus(StrEnum):
    """Lifecycle status shown on the listings index."""

    DRAFT = "Draft"
    PUBLISHED = "Published"
    REMOVED = "Removed"


class MarketType(StrEnum):
    """What the vendor is offering: an outright sale, a rent or a lease."""

    SALE = "Sale"
    RENT = "Rent"
    LEASE = "Lease"


class RoadProximity(StrEnum):
    """Coarse distance from the property to the road network."""

    CLOSE = "Close"
    MODERATE = "Moderate"
    FAR = "Far"


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


class PropertyFeatures(BaseModel):
    """Amenities captured by the features step.

    Every field has a default, so an empty ``{}`` is a valid features record
    (and counts as a completed features step).
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    has_electricity: bool = False
    has_water_supply: bool = False
    has_garden: bool = False
    has_security: bool = False
    has_parking: bool = False
    is_fenced: bool = False
    is_furnished: bool = False
    is_pet_friendly: bool = False
    has_swimming_pool: bool = False
    is_negotiable: bool = False
    proximity_to_road: RoadProximity | None = None
    nearby_amenities: list[str] = Field(default_factory=list)
    additional_features: str = ""

    @field_validator("proximity_to_road", mode="before")
    @classmethod
    def _blank_proximity_to_none(cls, v: object) -> object:
        """The legacy client stored an unknown proximity as ``""``."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class Coordinates(BaseModel):
    """A WGS-84 point.  Both axes are required and range-checked."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


class ListingMedia(BaseModel):
    """Image references attached to a listing.

    Attributes:
        thumbnail_url: The image shown on listing cards.  ``None`` until the
            vendor adds at least one image.
        images: All image URIs in display order.
    """

    model_config = ConfigDict(frozen=True)

    thumbnail_url: str | None = None
    images: list[str] = Field(default_factory=list)

    @field_validator("thumbnail_url", mode="before")
    @classmethod
    def _blank_to_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def has_images(self) -> bool:
        """``True`` if a thumbnail is set or the image list is non-empty."""
        return self.thumbnail_url is not None or bool(self.images)


class EngagementStats(BaseModel):
    """Read-only performance counters reported by the backend."""

    model_config = ConfigDict(frozen=True)

    views: int = Field(0, ge=0)
    inquiries: int = Field(0, ge=0)
    bookmarks: int = Field(0, ge=0)


# ---------------------------------------------------------------------------
# Legacy payload support
# ---------------------------------------------------------------------------

#: Keys written by the first generation of the mobile client, mapped to the
#: field names used here.
_LEGACY_RENAMES: dict[str, str] = {
    "user_id": "owner_id",
    "listing_type": "category",
    "property_name": "name",
    "property_value": "value",
    "estimated_yield": "yield_percentage",
}


def _upgrade_legacy_payload(data: dict[str, Any]) -> dict[str, Any]:
    """Rewrite a first-generation draft payload into the current shape."""
    upgraded = dict(data)
    for old, new in _LEGACY_RENAMES.items():
        if old in upgraded and new not in upgraded:
            upgraded[new] = upgraded.pop(old)

    if "media" not in upgraded and ("thumbnail_url" in upgraded or "images" in upgraded):
        upgraded["media"] = {
            "thumbnail_url": upgraded.pop("thumbnail_url", None),
            "images": upgraded.pop("images", None) or [],
        }

    if "coordinates" not in upgraded and ("latitude" in upgraded or "longitude" in upgraded):
        lat = upgraded.pop("latitude", None)
        lon = upgraded.pop("longitude", None)
        upgraded["coordinates"] = (
            {"latitude": lat, "longitude": lon} if lat is not None and lon is not None else None
        )

    features = upgraded.get("features")
    if isinstance(features, dict):
        upgraded["features"] = {_camel_to_snake(k): v for k, v in features.items()}

    return upgraded


def _camel_to_snake(name: str) -> str:
    out: list[str] = []
    for ch in name:
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out).lstrip("_")


# ---------------------------------------------------------------------------
# Core domain model
# ---------------------------------------------------------------------------


class Listing(BaseModel):
    """A property listing, owned by exactly one store.

    The id space follows :attr:`origin`: remote listings are addressed as
    ``backend_<server id>`` and local drafts never carry that prefix.  The
    model is immutable; use :meth:`with_changes` to derive an edited copy.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------
    id: str = Field(..., min_length=1, description="Local token or 'backend_<server id>'.")
    origin: ListingOrigin = Field(
        ListingOrigin.LOCAL, description="Which store owns this listing."
    )
    owner_id: str = Field("", description="Vendor account (email) that owns the listing.")
    property_id: int | None = Field(
        None,
        description="Server id stamped on a draft whose publish partially succeeded.",
    )

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------
    category: ListingCategory = ListingCategory.CORPORATE
    status: ListingStatus = ListingStatus.DRAFT
    market_type: MarketType | None = None
    removal_reason: str | None = None

    # ------------------------------------------------------------------
    # Basic info
    # ------------------------------------------------------------------
    name: str = ""
    property_type: str = ""
    location: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    description: str = ""
    value: float = Field(0.0, ge=0, description="Asking price / valuation.")
    currency: str = "NGN"
    availability: str = ""
    availability_date: date | None = None
    roi_percentage: float = 0.0
    yield_percentage: float = 0.0
    bedrooms: int | None = Field(None, ge=0)
    bathrooms: int | None = Field(None, ge=0)
    square_feet: int | None = Field(None, ge=0)
    lot_size: float | None = Field(None, ge=0)
    year_built: int | None = None

    # ------------------------------------------------------------------
    # Step payloads
    # ------------------------------------------------------------------
    media: ListingMedia = Field(default_factory=ListingMedia)
    coordinates: Coordinates | None = None
    features: PropertyFeatures | None = None

    # ------------------------------------------------------------------
    # Server-only data
    # ------------------------------------------------------------------
    engagement: EngagementStats | None = None

    # ------------------------------------------------------------------
    # Timestamps
    # ------------------------------------------------------------------
    created_at: datetime | None = None
    updated_at: datetime | None = None
    published_at: datetime | None = None

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_payload(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return _upgrade_legacy_payload(data)
        return data

    @field_validator("removal_reason", mode="before")
    @classmethod
    def _blank_to_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("property_id", mode="before")
    @classmethod
    def _coerce_property_id(cls, v: object) -> object:
        """Older drafts stored the server id as a string."""
        if isinstance(v, str):
            return int(v) if v.strip().isdigit() else None
        return v

    @model_validator(mode="after")
    def _check_origin_matches_id(self) -> Listing:
        """Keep the local and remote id spaces disjoint."""
        is_remote_id = self.id.startswith(REMOTE_ID_PREFIX)
        if self.origin is ListingOrigin.REMOTE:
            if not is_remote_id:
                raise ValueError(
                    f"remote listing id must start with {REMOTE_ID_PREFIX!r}, got {self.id!r}"
                )
            if self.status is not ListingStatus.PUBLISHED:
                raise ValueError(f"remote listing {self.id!r} must be Published")
        elif is_remote_id:
            raise ValueError(
                f"local listing id must not start with {REMOTE_ID_PREFIX!r}, got {self.id!r}"
            )
        return self

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def is_local(self) -> bool:
        return self.origin is ListingOrigin.LOCAL

    @property
    def progress(self) -> ListingProgress:
        """Step-completion state computed from the current field values."""
        from listingsync.core.progress import derive_progress  # noqa: PLC0415

        return derive_progress(self)

    @property
    def completion_percentage(self) -> int:
        return self.progress.completion_percentage

    @property
    def current_step(self) -> int:
        return self.progress.current_step

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def with_changes(self, **changes: Any) -> Listing:
        """Return a validated copy of this listing with *changes* applied.

        Unlike ``model_copy(update=...)`` the result is re-validated, so an
        out-of-range value is rejected instead of being stored.
        """
        data = self.model_dump()
        data.update(changes)
        return Listing.model_validate(data)
