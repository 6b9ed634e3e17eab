"""Unit tests for the remote layer.

Covers:
- :class:`~listingsync.remote.http_client.BackendHttpClient` status mapping,
  transport retries, the narrower POST retry policy and ``Retry-After``
  handling.
- :class:`~listingsync.remote.backend.BackendApi` request shapes and
  response parsing, plus the payload builders.
- :func:`~listingsync.remote.normalizer.normalize` field mapping and
  idempotence.
- :class:`~listingsync.remote.fetcher.RemoteListingFetcher` failure
  isolation and per-record skipping.

The internal :class:`httpx.AsyncClient` is replaced with a
:class:`~unittest.mock.MagicMock`, and :func:`asyncio.sleep` is patched so
retry tests run without real waits.
"""

from __future__ import annotations

import json as _json
import logging
from collections.abc import AsyncGenerator
from datetime import date
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from listingsync.core.exceptions import (
    BackendAuthError,
    BackendParseError,
    BackendRateLimitError,
    BackendRequestError,
    BackendUnavailableError,
    ConfigError,
)
from listingsync.core.models import (
    ListingCategory,
    ListingOrigin,
    ListingStatus,
    MarketType,
    PropertyFeatures,
    RoadProximity,
)
from listingsync.core.vendor_context import VendorContext
from listingsync.remote.backend import (
    BackendApi,
    coordinates_payload,
    features_payload,
    property_payload,
)
from listingsync.remote.fetcher import RemoteListingFetcher
from listingsync.remote.http_client import BackendHttpClient
from listingsync.remote.normalizer import market_type, normalize, parse_amount
from listingsync.remote.schemas import BackendProperty

logger = logging.getLogger(__name__)

_VENDOR = VendorContext(owner_id="v@x.com", auth_token="tok")


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _mock_httpx_response(
    *,
    status_code: int = 200,
    json_data: Any = None,
    text: str | None = None,
    headers: dict[str, str] | None = None,
) -> MagicMock:
    """Create a minimal mock of an :class:`httpx.Response`.

    Args:
        status_code: HTTP status code.
        json_data: If supplied, ``response.json()`` returns this value and
            ``response.text`` is its JSON serialisation.
        text: Raw response body text (used when *json_data* is ``None``).
        headers: Response headers dict (e.g. ``{"retry-after": "30"}``).
    """
    resp = MagicMock()
    resp.status_code = status_code
    resp.is_success = 200 <= status_code < 300
    resp.headers = headers or {}
    _text = text or (_json.dumps(json_data) if json_data is not None else "")
    resp.text = _text
    if json_data is not None:
        resp.json.return_value = json_data
    else:
        resp.json.side_effect = ValueError("no JSON body")
    resp.content = _text.encode()
    elapsed = MagicMock()
    elapsed.total_seconds.return_value = 0.05
    resp.elapsed = elapsed
    return resp


def _inject_mock_underlying(client: BackendHttpClient, mock_http: MagicMock) -> None:
    """Replace the internal :class:`httpx.AsyncClient` of *client* with *mock_http*.

    The mock must report ``is_closed = False`` so that ``_ensure_client``
    does not recreate it, and must provide an async ``aclose``.
    """
    mock_http.is_closed = False
    mock_http.aclose = AsyncMock()
    client._http = mock_http  # noqa: SLF001


def _backend_record(**overrides: Any) -> dict[str, Any]:
    """Build a synthetic ``fetch-properties-by-email`` array entry."""
    record: dict[str, Any] = {
        "id": 42,
        "title": "  Palm   Court ",
        "description": "Four-bedroom duplex.\n",
        "property_type": "duplex",
        "price": "250000.00",
        "currency": "ngn",
        "listing_purpose": "sale",
        "listing_type": "P2P",
        "address": "12 Admiralty Way",
        "city": "Lekki",
        "state": "Lagos",
        "zip_code": "106104",
        "availability": "Immediate",
        "bedrooms": 4,
        "bathrooms": 3,
        "square_feet": 2400,
        "lot_size": "600",
        "year_built": 2019,
        "views": 17,
        "inquiries": 2,
        "bookmarked": 5,
        "listed_date": "2026-09-01T10:00:00Z",
        "updated_date": "2026-09-03T10:00:00Z",
        "image_files": [
            {"id": 1, "file": "https://cdn.example.com/a.jpg"},
            {"id": 2, "file": "https://cdn.example.com/b.jpg"},
        ],
        "owner": {"id": 7, "email": "v@x.com"},
        "features": [
            {
                "negotiable": "yes",
                "furnished": True,
                "parking_available": True,
                "electricity_proximity": "On site",
                "road_network": "Good",
                "water_supply": True,
            }
        ],
        "market_coordinates": [{"id": 3, "latitude": 6.4474, "longitude": 3.4722}],
    }
    record.update(overrides)
    return record


@pytest.fixture()
async def http1() -> AsyncGenerator[BackendHttpClient, None]:
    """Open :class:`BackendHttpClient` with ``max_attempts=1`` (no retries)."""
    async with BackendHttpClient(max_attempts=1) as client:
        yield client


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


class TestHttpClientStatusErrors:
    """Status codes are mapped to the right :class:`BackendError` subclass."""

    async def test_success_returns_response(self, http1: BackendHttpClient) -> None:
        mock_http = MagicMock()
        mock_http.request = AsyncMock(return_value=_mock_httpx_response(json_data=[]))
        _inject_mock_underlying(http1, mock_http)

        response = await http1.get("/market/")
        assert response.status_code == 200

    async def test_404_is_request_error_without_retry(self) -> None:
        async with BackendHttpClient(max_attempts=3) as client:
            mock_http = MagicMock()
            mock_http.request = AsyncMock(
                return_value=_mock_httpx_response(status_code=404, json_data={"detail": "Not found."})
            )
            _inject_mock_underlying(client, mock_http)

            with pytest.raises(BackendRequestError, match="Not found") as exc_info:
                await client.delete("/market/delete-property/9/")

        assert exc_info.value.status_code == 404
        assert mock_http.request.call_count == 1

    async def test_401_is_auth_error(self, http1: BackendHttpClient) -> None:
        mock_http = MagicMock()
        mock_http.request = AsyncMock(
            return_value=_mock_httpx_response(status_code=401, text="Unauthorized")
        )
        _inject_mock_underlying(http1, mock_http)

        with pytest.raises(BackendAuthError, match="Unauthorized"):
            await http1.get("/market/")

    async def test_403_is_auth_error(self, http1: BackendHttpClient) -> None:
        mock_http = MagicMock()
        mock_http.request = AsyncMock(
            return_value=_mock_httpx_response(status_code=403, json_data={"error": "Forbidden"})
        )
        _inject_mock_underlying(http1, mock_http)

        with pytest.raises(BackendAuthError, match="Forbidden"):
            await http1.get("/market/")

    async def test_503_after_retries_is_unavailable(self) -> None:
        async with BackendHttpClient(max_attempts=2) as client:
            mock_http = MagicMock()
            mock_http.request = AsyncMock(
                return_value=_mock_httpx_response(status_code=503, text="Service Unavailable")
            )
            _inject_mock_underlying(client, mock_http)

            with (
                patch("asyncio.sleep", new=AsyncMock(return_value=None)),
                pytest.raises(BackendUnavailableError, match="HTTP 503 after 2 attempt"),
            ):
                await client.get("/market/")

        assert mock_http.request.call_count == 2

    async def test_429_exposes_retry_after(self, http1: BackendHttpClient) -> None:
        mock_http = MagicMock()
        mock_http.request = AsyncMock(
            return_value=_mock_httpx_response(status_code=429, headers={"retry-after": "30"})
        )
        _inject_mock_underlying(http1, mock_http)

        with pytest.raises(BackendRateLimitError) as exc_info:
            await http1.get("/market/")
        assert exc_info.value.retry_after == 30.0

    async def test_429_then_success_waits_retry_after(self) -> None:
        async with BackendHttpClient(max_attempts=2) as client:
            mock_http = MagicMock()
            mock_http.request = AsyncMock(
                side_effect=[
                    _mock_httpx_response(status_code=429, headers={"retry-after": "7"}),
                    _mock_httpx_response(json_data={"ok": True}),
                ]
            )
            _inject_mock_underlying(client, mock_http)

            sleep = AsyncMock(return_value=None)
            with patch("asyncio.sleep", new=sleep):
                response = await client.get("/market/")

        assert response.status_code == 200
        sleep.assert_awaited_once_with(7.0)


class TestHttpClientTransportFailures:
    async def test_transport_error_then_success(self) -> None:
        async with BackendHttpClient(max_attempts=2) as client:
            mock_http = MagicMock()
            mock_http.request = AsyncMock(
                side_effect=[httpx.ConnectTimeout("timed out"), _mock_httpx_response(json_data=[])]
            )
            _inject_mock_underlying(client, mock_http)

            with patch("asyncio.sleep", new=AsyncMock(return_value=None)):
                response = await client.get("/market/")

        assert response.status_code == 200
        assert mock_http.request.call_count == 2

    async def test_transport_error_exhausted_is_unavailable(self) -> None:
        async with BackendHttpClient(max_attempts=3) as client:
            mock_http = MagicMock()
            mock_http.request = AsyncMock(side_effect=httpx.ConnectError("refused"))
            _inject_mock_underlying(client, mock_http)

            with (
                patch("asyncio.sleep", new=AsyncMock(return_value=None)),
                pytest.raises(BackendUnavailableError, match="ConnectError"),
            ):
                await client.get("/market/")

        assert mock_http.request.call_count == 3

    def test_max_attempts_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            BackendHttpClient(max_attempts=0)


class TestHttpClientPostRetries:
    """A POST that may have reached the server is never sent twice."""

    async def test_post_5xx_is_sent_once(self) -> None:
        async with BackendHttpClient(max_attempts=3) as client:
            mock_http = MagicMock()
            mock_http.request = AsyncMock(
                return_value=_mock_httpx_response(status_code=502, text="Bad Gateway")
            )
            _inject_mock_underlying(client, mock_http)

            with (
                patch("asyncio.sleep", new=AsyncMock(return_value=None)),
                pytest.raises(BackendUnavailableError, match="HTTP 502 after 1 attempt"),
            ):
                await client.post("/market/create-property/", data={"title": "x"})

        assert mock_http.request.call_count == 1

    async def test_post_read_timeout_is_sent_once(self) -> None:
        async with BackendHttpClient(max_attempts=3) as client:
            mock_http = MagicMock()
            mock_http.request = AsyncMock(side_effect=httpx.ReadTimeout("no answer"))
            _inject_mock_underlying(client, mock_http)

            with (
                patch("asyncio.sleep", new=AsyncMock(return_value=None)),
                pytest.raises(BackendUnavailableError, match="ReadTimeout after 1 attempt"),
            ):
                await client.post("/market/create-property/", data={"title": "x"})

        assert mock_http.request.call_count == 1

    async def test_post_connect_error_is_retried(self) -> None:
        async with BackendHttpClient(max_attempts=2) as client:
            mock_http = MagicMock()
            mock_http.request = AsyncMock(
                side_effect=[httpx.ConnectError("refused"), _mock_httpx_response(json_data={"id": 1})]
            )
            _inject_mock_underlying(client, mock_http)

            with patch("asyncio.sleep", new=AsyncMock(return_value=None)):
                response = await client.post("/market/create-property/", data={"title": "x"})

        assert response.status_code == 200
        assert mock_http.request.call_count == 2

    async def test_idempotent_post_retries_5xx(self) -> None:
        async with BackendHttpClient(max_attempts=2) as client:
            mock_http = MagicMock()
            mock_http.request = AsyncMock(
                side_effect=[
                    _mock_httpx_response(status_code=503),
                    _mock_httpx_response(json_data={"ok": True}),
                ]
            )
            _inject_mock_underlying(client, mock_http)

            with patch("asyncio.sleep", new=AsyncMock(return_value=None)):
                response = await client.post("/market/features/", json={}, idempotent=True)

        assert response.status_code == 200
        assert mock_http.request.call_count == 2


# ---------------------------------------------------------------------------
# Backend API
# ---------------------------------------------------------------------------


def _api_with(response: MagicMock, vendor: VendorContext = _VENDOR) -> tuple[BackendApi, MagicMock]:
    http = MagicMock(spec=BackendHttpClient)
    http.get = AsyncMock(return_value=response)
    http.post = AsyncMock(return_value=response)
    http.delete = AsyncMock(return_value=response)
    http.close = AsyncMock()
    return BackendApi(vendor, http_client=http), http


class TestBackendApi:
    async def test_fetch_sends_email_and_auth_header(self) -> None:
        api, http = _api_with(_mock_httpx_response(json_data=[{"id": 1}]))
        records = await api.fetch_vendor_properties("v@x.com")

        assert records == [{"id": 1}]
        http.get.assert_awaited_once_with(
            "/market/fetch-properties-by-email/",
            params={"email": "v@x.com"},
            headers={"Authorization": "Token tok"},
        )

    async def test_fetch_rejects_non_array_body(self) -> None:
        api, _ = _api_with(_mock_httpx_response(json_data={"results": []}))
        with pytest.raises(BackendParseError, match="JSON array"):
            await api.fetch_vendor_properties("v@x.com")

    async def test_fetch_without_token_raises_config_error(self) -> None:
        api, http = _api_with(
            _mock_httpx_response(json_data=[]), VendorContext(owner_id="v@x.com")
        )
        with pytest.raises(ConfigError):
            await api.fetch_vendor_properties("v@x.com")
        http.get.assert_not_awaited()

    async def test_delete_returns_server_message(self) -> None:
        api, http = _api_with(_mock_httpx_response(json_data={"message": "Property deleted"}))
        assert await api.delete_property(42) == "Property deleted"
        assert http.delete.await_args.args[0] == "/market/delete-property/42/"

    async def test_delete_default_message(self) -> None:
        api, _ = _api_with(_mock_httpx_response(status_code=204))
        assert await api.delete_property(42) == "Listing removed successfully"

    async def test_create_returns_server_id(self) -> None:
        api, _ = _api_with(_mock_httpx_response(status_code=201, json_data={"data": {"id": 99}}))
        assert await api.create_property({"title": "x"}) == 99

    async def test_create_without_id_is_parse_error(self) -> None:
        api, _ = _api_with(_mock_httpx_response(status_code=201, json_data={"data": {}}))
        with pytest.raises(BackendParseError, match="property id"):
            await api.create_property({"title": "x"})

    async def test_close_does_not_close_injected_client(self) -> None:
        api, http = _api_with(_mock_httpx_response(json_data=[]))
        async with api:
            pass
        http.close.assert_not_awaited()


class TestPayloads:
    def test_coordinates_rounded_to_six_places(self) -> None:
        payload = coordinates_payload(5, 6.123456789, 3.987654321)
        assert payload["property"] == 5
        assert payload["coordinates"] == [{"latitude": 6.123457, "longitude": 3.987654}]

    def test_features_payload_references_property(self) -> None:
        payload = features_payload(
            5, PropertyFeatures(has_parking=True, proximity_to_road=RoadProximity.FAR)
        )
        assert payload["property"] == 5
        assert payload["parking_available"] is True
        assert payload["road_network"] == "poor"
        assert payload["negotiable"] == "no"

    def test_property_payload_carries_basic_info(self) -> None:
        from listingsync.core.models import Listing  # noqa: PLC0415

        draft = Listing(
            id="d1",
            name="Palm Court",
            property_type="Duplex",
            value=250000,
            market_type=MarketType.SALE,
        )
        payload = property_payload(draft)
        assert payload["title"] == "Palm Court"
        assert payload["property_type"] == "duplex"
        assert payload["availability_date"] is None


# ---------------------------------------------------------------------------
# Normaliser
# ---------------------------------------------------------------------------


class TestNormalizer:
    def test_full_record_mapping(self) -> None:
        listing = normalize(BackendProperty.model_validate(_backend_record()))

        assert listing.id == "backend_42"
        assert listing.origin is ListingOrigin.REMOTE
        assert listing.status is ListingStatus.PUBLISHED
        assert listing.owner_id == "v@x.com"
        assert listing.category is ListingCategory.PEER_TO_PEER
        assert listing.market_type is MarketType.SALE
        assert listing.name == "Palm Court"
        assert listing.property_type == "Duplex"
        assert listing.location == "12 Admiralty Way"
        assert listing.value == 250000.0
        assert listing.currency == "NGN"
        assert listing.lot_size == 600.0
        assert listing.media.thumbnail_url == "https://cdn.example.com/a.jpg"
        assert len(listing.media.images) == 2
        assert listing.coordinates is not None
        assert listing.coordinates.latitude == pytest.approx(6.4474)
        assert listing.features is not None
        assert listing.features.is_negotiable is True
        assert listing.features.has_electricity is True
        assert listing.features.proximity_to_road is RoadProximity.CLOSE
        assert listing.engagement is not None
        assert listing.engagement.bookmarks == 5
        assert listing.published_at == listing.created_at

    def test_normalisation_is_idempotent(self) -> None:
        record = BackendProperty.model_validate(_backend_record())
        assert normalize(record) == normalize(record)

    def test_sparse_record(self) -> None:
        """Nulls and omissions map to safe defaults."""
        record = BackendProperty.model_validate(
            {
                "id": 5,
                "owner": {"email": "v@x.com"},
                "title": None,
                "price": None,
                "image_files": None,
                "features": None,
                "address": "",
                "city": "Ikeja",
                "state": "Lagos",
            }
        )
        listing = normalize(record)
        assert listing.name == ""
        assert listing.value == 0.0
        assert listing.location == "Ikeja, Lagos"
        assert listing.category is ListingCategory.CORPORATE
        assert listing.market_type is None
        assert listing.media.thumbnail_url is None
        assert listing.features is None
        assert listing.coordinates is None

    def test_out_of_range_coordinates_dropped(self) -> None:
        record = BackendProperty.model_validate(
            _backend_record(market_coordinates=[{"latitude": 123.0, "longitude": 3.0}])
        )
        assert normalize(record).coordinates is None

    def test_numeric_price_accepted(self) -> None:
        record = BackendProperty.model_validate(_backend_record(price=1200))
        assert normalize(record).value == 1200.0

    def test_numeric_lot_size_accepted(self) -> None:
        record = BackendProperty.model_validate(
            {"id": 1, "owner": {"email": "v@x.com"}, "lot_size": 450.5}
        )
        assert record.lot_size == "450.5"
        assert normalize(record).lot_size == 450.5

    def test_availability_date_mapped(self) -> None:
        record = BackendProperty.model_validate(_backend_record(availability_date="2026-11-01"))
        assert normalize(record).availability_date == date(2026, 11, 1)

    def test_blank_availability_date_is_none(self) -> None:
        record = BackendProperty.model_validate(_backend_record(availability_date=""))
        assert normalize(record).availability_date is None

    def test_parse_amount(self) -> None:
        assert parse_amount("1,200.50") == 1200.5
        assert parse_amount("") is None
        assert parse_amount("abc") is None
        assert parse_amount("-5") is None

    def test_market_type(self) -> None:
        assert market_type("Lease") is MarketType.LEASE
        assert market_type("") is None
        assert market_type("shortlet") is MarketType.RENT


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


def _fetcher_with(
    *, records: list[Any] | None = None, error: Exception | None = None, vendor: VendorContext = _VENDOR
) -> tuple[RemoteListingFetcher, MagicMock]:
    api = MagicMock(spec=BackendApi)
    api.vendor = vendor
    api.fetch_vendor_properties = AsyncMock(return_value=records or [], side_effect=error)
    return RemoteListingFetcher(api), api


class TestRemoteListingFetcher:
    async def test_fetch_normalises_records(self) -> None:
        fetcher, api = _fetcher_with(records=[_backend_record(), _backend_record(id=43)])
        result = await fetcher.fetch("v@x.com")

        assert result.ok
        assert [listing.id for listing in result.listings] == ["backend_42", "backend_43"]
        assert len(result.records) == 2
        api.fetch_vendor_properties.assert_awaited_once_with("v@x.com")

    async def test_blank_owner_is_empty_success(self) -> None:
        fetcher, api = _fetcher_with()
        result = await fetcher.fetch("  ")
        assert result.ok
        assert result.listings == ()
        api.fetch_vendor_properties.assert_not_awaited()

    async def test_missing_token_is_failed_result(self) -> None:
        fetcher, api = _fetcher_with(vendor=VendorContext(owner_id="v@x.com"))
        result = await fetcher.fetch("v@x.com")
        assert not result.ok
        assert isinstance(result.error, BackendAuthError)
        api.fetch_vendor_properties.assert_not_awaited()

    async def test_backend_error_becomes_failed_result(self) -> None:
        fetcher, _ = _fetcher_with(error=BackendUnavailableError("/market/", "HTTP 503"))
        result = await fetcher.fetch("v@x.com")
        assert not result.ok
        assert result.listings == ()
        assert isinstance(result.error, BackendUnavailableError)

    async def test_malformed_records_are_skipped(self) -> None:
        fetcher, _ = _fetcher_with(
            records=[_backend_record(), {"id": "x"}, "junk", _backend_record(id=44, owner=None)]
        )
        result = await fetcher.fetch("v@x.com")
        assert result.ok
        assert [listing.id for listing in result.listings] == ["backend_42"]
        assert result.skipped == 3
