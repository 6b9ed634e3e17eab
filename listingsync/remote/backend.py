"""Marketplace backend API.

:class:`BackendApi` is the single place that knows the backend's endpoint
paths and payload shapes.  It owns a
:class:`~listingsync.remote.http_client.BackendHttpClient` (or borrows one
passed in for testing) and authenticates every call with the vendor's
``Authorization`` header.

Endpoints
---------
* :meth:`BackendApi.fetch_vendor_properties`: ``GET /market/fetch-properties-by-email/?email=``
* :meth:`BackendApi.delete_property`: ``DELETE /market/delete-property/<id>/``
* :meth:`BackendApi.create_property`: ``POST /market/list-property/``
* :meth:`BackendApi.add_coordinates`: ``POST /market/property/coordinates/``
* :meth:`BackendApi.add_features`: ``POST /market/property/<id>/features/``

Typical usage::

    from listingsync.remote.backend import BackendApi

    async with BackendApi.from_settings(settings, vendor) as api:
        records = await api.fetch_vendor_properties(vendor.owner_id)
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any

from pydantic import ValidationError

from listingsync.core.exceptions import BackendParseError
from listingsync.core.models import Listing, PropertyFeatures, RoadProximity
from listingsync.core.settings import Settings
from listingsync.core.vendor_context import VendorContext
from listingsync.remote.http_client import BackendHttpClient
from listingsync.remote.schemas import BackendCreateResponse

__all__ = [
    "BackendApi",
    "property_payload",
    "coordinates_payload",
    "features_payload",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Endpoint paths
# ---------------------------------------------------------------------------

_FETCH_BY_EMAIL = "/market/fetch-properties-by-email/"
_DELETE_PROPERTY = "/market/delete-property/{server_id}/"
_LIST_PROPERTY = "/market/list-property/"
_COORDINATES = "/market/property/coordinates/"
_FEATURES = "/market/property/{server_id}/features/"

#: Decimal places kept when posting coordinates.
_COORDINATE_PRECISION = 6

_ROAD_NETWORK_RATING: dict[RoadProximity, str] = {
    RoadProximity.CLOSE: "good",
    RoadProximity.MODERATE: "moderate",
    RoadProximity.FAR: "poor",
}


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def property_payload(listing: Listing) -> dict[str, Any]:
    """Build the ``list-property`` body from a draft's basic info."""
    return {
        "title": listing.name,
        "description": listing.description,
        "property_type": listing.property_type.lower(),
        "price": f"{listing.value:.2f}",
        "currency": listing.currency,
        "listing_purpose": listing.market_type.value.lower() if listing.market_type else "",
        "listing_type": listing.category.value,
        "address": listing.address or listing.location,
        "city": listing.city,
        "state": listing.state,
        "zip_code": listing.zip_code,
        "availability": listing.availability,
        "availability_date": (
            listing.availability_date.isoformat() if listing.availability_date else None
        ),
        "bedrooms": listing.bedrooms,
        "bathrooms": listing.bathrooms,
        "square_feet": listing.square_feet,
        "lot_size": None if listing.lot_size is None else f"{listing.lot_size:.2f}",
        "year_built": listing.year_built,
        "roi_percentage": listing.roi_percentage,
        "estimated_yield": listing.yield_percentage,
    }


def coordinates_payload(server_id: int, latitude: float, longitude: float) -> dict[str, Any]:
    """Build the coordinates body, rounding both axes to 6 decimal places."""
    return {
        "property": server_id,
        "coordinates": [
            {
                "latitude": round(latitude, _COORDINATE_PRECISION),
                "longitude": round(longitude, _COORDINATE_PRECISION),
            }
        ],
    }


def features_payload(server_id: int, features: PropertyFeatures) -> dict[str, Any]:
    """Translate :class:`PropertyFeatures` back into the backend's field names."""
    return {
        "property": server_id,
        "negotiable": "yes" if features.is_negotiable else "no",
        "furnished": features.is_furnished,
        "pet_friendly": features.is_pet_friendly,
        "parking_available": features.has_parking,
        "swimming_pool": features.has_swimming_pool,
        "garden": features.has_garden,
        "electricity_proximity": "close" if features.has_electricity else "",
        "road_network": (
            _ROAD_NETWORK_RATING[features.proximity_to_road] if features.proximity_to_road else ""
        ),
        "water_supply": features.has_water_supply,
        "security": features.has_security,
        "additional_features": ", ".join(
            part
            for part in (features.additional_features, *features.nearby_amenities)
            if part
        )
        or None,
    }


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


class BackendApi:
    """Authenticated calls to the marketplace backend.

    Args:
        vendor: Signed-in vendor; supplies the ``Authorization`` header.
        http_client: HTTP client to send requests through.  When omitted a
            :class:`BackendHttpClient` is created for *base_url* and closed
            by :meth:`close`.
        base_url: Backend root URL (used only when *http_client* is omitted).
    """

    def __init__(
        self,
        vendor: VendorContext,
        *,
        http_client: BackendHttpClient | None = None,
        base_url: str = "",
    ) -> None:
        self._vendor = vendor
        self._http = http_client or BackendHttpClient(base_url=base_url)
        self._owns_http = http_client is None

    @classmethod
    def from_settings(cls, settings: Settings, vendor: VendorContext) -> BackendApi:
        """Build an API client configured from :class:`Settings`."""
        http = BackendHttpClient(
            base_url=settings.backend_base_url,
            connect_timeout=settings.backend_connect_timeout,
            read_timeout=settings.backend_read_timeout,
            write_timeout=settings.backend_write_timeout,
            max_attempts=settings.backend_max_attempts,
        )
        api = cls(vendor, http_client=http)
        api._owns_http = True
        return api

    @property
    def vendor(self) -> VendorContext:
        return self._vendor

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        if self._owns_http:
            await self._http.close()

    async def __aenter__(self) -> BackendApi:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_vendor_properties(self, email: str) -> list[dict[str, Any]]:
        """Return the raw property records owned by *email*.

        Raises:
            ConfigError: If the vendor has no auth token.
            BackendParseError: If the body is not a JSON array.
            BackendError: On any transport or HTTP failure.
        """
        response = await self._http.get(
            _FETCH_BY_EMAIL,
            params={"email": email},
            headers=self._vendor.authorization_header,
        )
        try:
            body = response.json()
        except ValueError as exc:
            raise BackendParseError(_FETCH_BY_EMAIL, "response is not JSON") from exc
        if not isinstance(body, list):
            raise BackendParseError(
                _FETCH_BY_EMAIL, f"expected a JSON array, got {type(body).__name__}"
            )
        return body

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def delete_property(self, server_id: int) -> str:
        """Delete a server listing.  Returns the server's confirmation message."""
        path = _DELETE_PROPERTY.format(server_id=server_id)
        response = await self._http.delete(path, headers=self._vendor.authorization_header)
        message = "Listing removed successfully"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("message"):
            message = str(body["message"])
        return message

    async def create_property(self, payload: dict[str, Any]) -> int:
        """Create a server record from a basic-info payload.

        Returns:
            The new record's server id.

        Raises:
            BackendParseError: If the response does not carry ``data.id``.
        """
        response = await self._http.post(
            _LIST_PROPERTY, json=payload, headers=self._vendor.authorization_header
        )
        try:
            created = BackendCreateResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise BackendParseError(_LIST_PROPERTY, "property id not returned") from exc
        return created.data.id

    async def add_coordinates(self, server_id: int, latitude: float, longitude: float) -> None:
        await self._http.post(
            _COORDINATES,
            json=coordinates_payload(server_id, latitude, longitude),
            headers=self._vendor.authorization_header,
        )

    async def add_features(self, server_id: int, features: PropertyFeatures) -> None:
        await self._http.post(
            _FEATURES.format(server_id=server_id),
            json=features_payload(server_id, features),
            headers=self._vendor.authorization_header,
        )
