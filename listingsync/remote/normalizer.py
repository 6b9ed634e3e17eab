"""Backend record → :class:`~listingsync.core.models.Listing` normaliser.

:func:`normalize` is the only place that knows both the server's field names
and the engine's.  It is pure: no clock reads, no randomness, no I/O.
Normalising the same record twice yields equal listings.

Field mapping
-------------
=======================  ===================================================
Backend                  Listing
=======================  ===================================================
``id``                   ``id = "backend_<id>"``, ``origin = remote``
``title``                ``name`` (whitespace collapsed)
``property_type``        ``property_type`` (capitalised: ``"duplex"`` →
                         ``"Duplex"``)
``address``              ``location`` (falls back to ``"<city>, <state>"``)
``price`` (decimal str)  ``value``
``listing_purpose``      ``market_type``
``listing_type``         ``category`` (``Corporate`` when absent/unknown)
``lot_size`` (str or num)  ``lot_size``
``availability_date``    ``availability_date``
``owner.email``          ``owner_id``
``image_files[*].file``  ``media.images``; the first is the thumbnail
``market_coordinates[0]``  ``coordinates``
``features[0]``          ``features``
``views`` …              ``engagement``
``listed_date``          ``created_at`` and ``published_at``
``updated_date``         ``updated_at``
=======================  ===================================================

Every normalised listing is ``Published``: the server only returns records
that have been listed.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation

from pydantic import ValidationError

from listingsync.core.ids import remote_listing_id
from listingsync.core.models import (
    Coordinates,
    EngagementStats,
    Listing,
    ListingCategory,
    ListingMedia,
    ListingOrigin,
    ListingStatus,
    MarketType,
    PropertyFeatures,
    RoadProximity,
)
from listingsync.remote.schemas import BackendCoordinates, BackendFeatures, BackendProperty

__all__ = [
    "normalize",
    "normalise_text",
    "normalise_property_type",
    "parse_amount",
    "road_proximity",
    "market_type",
]

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")

#: Backend road-network ratings grouped by the proximity they imply.
_ROAD_NETWORK: dict[str, RoadProximity] = {
    "good": RoadProximity.CLOSE,
    "excellent": RoadProximity.CLOSE,
    "moderate": RoadProximity.MODERATE,
    "fair": RoadProximity.MODERATE,
    "poor": RoadProximity.FAR,
    "bad": RoadProximity.FAR,
}

_MARKET_TYPES: dict[str, MarketType] = {
    "sale": MarketType.SALE,
    "rent": MarketType.RENT,
    "lease": MarketType.LEASE,
}

_TRUTHY = {"yes", "true", "1", "negotiable"}


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def normalise_text(value: str | None) -> str:
    """Strip and collapse internal whitespace.  ``None`` becomes ``""``."""
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", value).strip()


def normalise_property_type(value: str | None) -> str:
    """Capitalise a property type: first letter upper, the rest lower."""
    text = normalise_text(value)
    return text[:1].upper() + text[1:].lower()


def parse_amount(value: str | None) -> float | None:
    """Parse a decimal string such as ``"250000.00"`` or ``"1,200"``.

    Returns:
        The non-negative amount, or ``None`` if *value* is blank, malformed
        or negative.
    """
    text = normalise_text(value).replace(",", "")
    if not text:
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return float(amount)


def road_proximity(rating: str | None) -> RoadProximity | None:
    """Map a backend road-network rating to a :class:`RoadProximity`."""
    return _ROAD_NETWORK.get(normalise_text(rating).lower())


def market_type(purpose: str | None) -> MarketType | None:
    """Map the backend ``listing_purpose`` to a :class:`MarketType`.

    Blank purposes map to ``None``; unrecognised ones to ``Rent``.
    """
    key = normalise_text(purpose).lower()
    if not key:
        return None
    return _MARKET_TYPES.get(key, MarketType.RENT)


def _category(listing_type: str | None) -> ListingCategory:
    key = normalise_text(listing_type).lower()
    if key in {"p2p", "peer_to_peer", "peer-to-peer"}:
        return ListingCategory.PEER_TO_PEER
    return ListingCategory.CORPORATE


def _features(raw: BackendFeatures) -> PropertyFeatures:
    negotiable = raw.negotiable
    if isinstance(negotiable, str):
        negotiable = negotiable.strip().lower() in _TRUTHY
    return PropertyFeatures(
        has_electricity=bool(normalise_text(raw.electricity_proximity)),
        has_water_supply=raw.water_supply,
        has_garden=raw.garden,
        has_security=raw.security,
        has_parking=raw.parking_available,
        is_furnished=raw.furnished,
        is_pet_friendly=raw.pet_friendly,
        has_swimming_pool=raw.swimming_pool,
        is_negotiable=bool(negotiable),
        proximity_to_road=road_proximity(raw.road_network),
        additional_features=normalise_text(raw.additional_features),
    )


def _coordinates(raw: BackendCoordinates, record_id: int) -> Coordinates | None:
    try:
        return Coordinates(latitude=raw.latitude, longitude=raw.longitude)
    except ValidationError:
        logger.warning(
            "Backend property %d has out-of-range coordinates (%s, %s); ignoring them.",
            record_id,
            raw.latitude,
            raw.longitude,
        )
        return None


def _location(record: BackendProperty) -> str:
    address = normalise_text(record.address)
    if address:
        return address
    return ", ".join(part for part in (normalise_text(record.city), normalise_text(record.state)) if part)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize(record: BackendProperty) -> Listing:
    """Convert one backend record into a remote-origin :class:`Listing`.

    Args:
        record: A validated backend property record.

    Returns:
        The normalised listing, always ``Published`` with id
        ``backend_<record.id>``.
    """
    images = [normalise_text(image.file) for image in record.image_files if normalise_text(image.file)]
    value = parse_amount(record.price)
    if value is None:
        logger.debug("Backend property %d has unparseable price %r.", record.id, record.price)

    return Listing(
        id=remote_listing_id(record.id),
        origin=ListingOrigin.REMOTE,
        owner_id=normalise_text(record.owner.email),
        category=_category(record.listing_type),
        status=ListingStatus.PUBLISHED,
        market_type=market_type(record.listing_purpose),
        name=normalise_text(record.title),
        property_type=normalise_property_type(record.property_type),
        location=_location(record),
        address=normalise_text(record.address),
        city=normalise_text(record.city),
        state=normalise_text(record.state),
        zip_code=normalise_text(record.zip_code),
        description=record.description.strip(),
        value=value or 0.0,
        currency=normalise_text(record.currency).upper() or "NGN",
        availability=normalise_text(record.availability).lower(),
        availability_date=record.availability_date,
        bedrooms=record.bedrooms,
        bathrooms=record.bathrooms,
        square_feet=record.square_feet,
        lot_size=parse_amount(record.lot_size),
        year_built=record.year_built,
        media=ListingMedia(thumbnail_url=images[0] if images else None, images=images),
        coordinates=(
            _coordinates(record.market_coordinates[0], record.id)
            if record.market_coordinates
            else None
        ),
        features=_features(record.features[0]) if record.features else None,
        engagement=EngagementStats(
            views=max(record.views, 0),
            inquiries=max(record.inquiries, 0),
            bookmarks=max(record.bookmarked, 0),
        ),
        created_at=record.listed_date,
        updated_at=record.updated_date,
        published_at=record.listed_date,
    )
