"""Workflow step controllers.

One controller per workflow step.  Each controller:

1. Loads its listing through the catalog's origin-aware lookup
   (:meth:`StepController.open`).
2. Validates its own inputs, raising
   :class:`~listingsync.core.exceptions.StepValidationError` with a
   field → message map on failure.
3. Writes **only its own fields**, through
   :meth:`~listingsync.storage.drafts.DraftStore.update`, so the change is
   merged into the freshest stored copy and never overwrites fields saved
   by another step in the meantime.
4. Returns a :class:`StepOutcome` with the saved listing and its recomputed
   progress.

Server listings can be opened but not edited: there is no update endpoint
in this engine, so every write on a ``backend_<id>`` listing raises
:class:`~listingsync.core.exceptions.ListingNotEditableError`.

=====================  =====================================================
Controller             Fields written
=====================  =====================================================
BasicInfoController    name, description, type, price, address, rooms, …
ImagesController       ``media`` (images and thumbnail)
CoordinatesController  ``coordinates``
FeaturesController     ``features``
PublishController      creates the server record, then deletes the draft
=====================  =====================================================
"""

from __future__ import annotations

import logging
import re
from abc import ABC
from collections.abc import Awaitable, Callable, Coroutine, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime
from pathlib import PurePosixPath
from typing import Any, ClassVar, Final, Protocol
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, ValidationError

from listingsync.core import events
from listingsync.core.exceptions import (
    BackendError,
    ConfigError,
    ListingNotEditableError,
    ListingNotFoundError,
    PublishError,
    PublishNotAllowedError,
    StepValidationError,
    StorageError,
)
from listingsync.core.ids import is_remote_listing_id, remote_listing_id
from listingsync.core.models import (
    Coordinates,
    Listing,
    ListingCategory,
    ListingMedia,
    MarketType,
    PropertyFeatures,
)
from listingsync.core.progress import PREREQUISITE_STEPS, ListingProgress, Step
from listingsync.engine.catalog import ListingCatalog
from listingsync.remote.backend import BackendApi, property_payload

__all__ = [
    "StepOutcome",
    "StepController",
    "BasicInfo",
    "BasicInfoController",
    "ImageAsset",
    "RejectedImage",
    "ImagesOutcome",
    "ImagesController",
    "CoordinatesController",
    "FeaturesController",
    "MediaUploader",
    "Runner",
    "PublishOutcome",
    "PublishController",
    "ALLOWED_IMAGE_EXTENSIONS",
    "MAX_IMAGE_BYTES",
]

logger = logging.getLogger(__name__)

#: File extensions accepted by the images step.
ALLOWED_IMAGE_EXTENSIONS: Final[frozenset[str]] = frozenset({"jpg", "jpeg", "png"})

#: Largest image accepted by the images step (10 MB).
MAX_IMAGE_BYTES: Final[int] = 10 * 1024 * 1024

_FOUR_DIGITS_RE = re.compile(r"^\d{4}$")


#: Runs one store coroutine for a controller, e.g. a screen scope's ``run``.
Runner = Callable[[Coroutine[Any, Any, Any]], Awaitable[Any]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


async def _run_directly(coro: Coroutine[Any, Any, Any]) -> Any:
    return await coro


def _errors_from_validation(exc: ValidationError) -> dict[str, str]:
    errors: dict[str, str] = {}
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else "__all__"
        errors.setdefault(field, err["msg"])
    return errors


# ---------------------------------------------------------------------------
# Base controller
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StepOutcome:
    """A saved step: the stored listing and its recomputed progress."""

    listing: Listing
    progress: ListingProgress


class StepController(ABC):
    """Base for the per-step controllers.

    Args:
        catalog: Catalog used for origin-aware loads and draft writes.
        listing_id: Listing being edited.
        clock: Returns "now"; injectable for tests.
        runner: Awaits the controller's store reads and writes.  Screens pass
            their scope's ``run`` so saves share its timeout and cancellation.

    Attributes:
        step: The :class:`~listingsync.core.progress.Step` this controller owns.
    """

    step: ClassVar[Step]

    def __init__(
        self,
        catalog: ListingCatalog,
        listing_id: str,
        *,
        clock: Callable[[], datetime] = _utcnow,
        runner: Runner = _run_directly,
    ) -> None:
        self._catalog = catalog
        self._listing_id = listing_id
        self._clock = clock
        self._run = runner
        self._listing: Listing | None = None

    @property
    def listing_id(self) -> str:
        return self._listing_id

    @property
    def listing(self) -> Listing | None:
        """The listing as last loaded or saved, or ``None`` before :meth:`open`."""
        return self._listing

    @property
    def editable(self) -> bool:
        return not is_remote_listing_id(self._listing_id)

    async def open(self) -> Listing:
        """Load the listing from the store that owns it.

        Raises:
            ListingNotFoundError: If neither store has the listing.
        """
        self._listing = await self._run(self._catalog.get(self._listing_id))
        return self._listing

    async def _current(self) -> Listing:
        if self._listing is None:
            return await self.open()
        return self._listing

    def _require_editable(self) -> None:
        if not self.editable:
            raise ListingNotEditableError(self._listing_id)

    def _reject(self, errors: Mapping[str, str]) -> StepValidationError:
        logger.info(
            "%s rejected for %s: %s",
            self.step.label,
            self._listing_id,
            dict(errors),
            extra={"event": events.STEP_REJECTED, "step": self.step.name},
        )
        return StepValidationError(errors)

    async def _save(self, changes: Callable[[Listing], dict[str, Any]]) -> StepOutcome:
        """Merge this step's fields into the freshest stored draft.

        Args:
            changes: Maps the freshest stored listing to the field values
                this step writes.
        """
        self._require_editable()
        now = self._clock()

        def _apply(current: Listing) -> Listing:
            return current.with_changes(**changes(current), updated_at=now)

        try:
            saved = await self._run(self._catalog.drafts.update(self._listing_id, _apply))
        except ValidationError as exc:
            raise self._reject(_errors_from_validation(exc)) from exc

        self._listing = saved
        progress = saved.progress
        logger.info(
            "%s saved for %s (%d%% complete).",
            self.step.label,
            saved.id,
            progress.completion_percentage,
            extra={
                "event": events.STEP_SAVED,
                "step": self.step.name,
                "completion": progress.completion_percentage,
            },
        )
        return StepOutcome(listing=saved, progress=progress)


# ---------------------------------------------------------------------------
# Step 1: basic info
# ---------------------------------------------------------------------------


def _parse_number(value: str | float | int | None) -> float | None:
    """Parse user input such as ``"1,250,000"``; ``None`` for blank or junk."""
    if value is None:
        return None
    if isinstance(value, int | float):
        return float(value)
    text = value.replace(",", "").strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


class BasicInfo(BaseModel):
    """Input of the basic-info step, as entered in the listing form.

    Numeric fields accept the raw text a form produces (``"1,250,000"``) as
    well as numbers.  Call :meth:`problems` to run the form rules, then
    :meth:`to_changes` to get the listing fields to store.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    category: str = ListingCategory.CORPORATE.value
    title: str = ""
    description: str = ""
    property_type: str = ""
    price: str | float | None = None
    currency: str = ""
    listing_purpose: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    availability: str = ""
    availability_date: date | None = None
    bedrooms: str | int | None = None
    bathrooms: str | int | None = None
    square_feet: str | int | None = None
    lot_size: str | float | None = None
    year_built: str | int | None = None
    roi_percentage: float = 0.0
    yield_percentage: float = 0.0

    @property
    def is_land(self) -> bool:
        return self.property_type.lower() == "land"

    def problems(self, *, current_year: int) -> dict[str, str]:
        """Return field → message for every rule the input breaks."""
        errors: dict[str, str] = {}

        if self.category not in {c.value for c in ListingCategory}:
            errors["category"] = "Listing category is required."
        for field, label in (
            ("title", "Title"),
            ("description", "Description"),
            ("property_type", "Property type"),
            ("currency", "Currency"),
            ("address", "Address"),
            ("city", "City"),
            ("state", "State"),
            ("availability", "Availability"),
        ):
            if not getattr(self, field):
                errors[field] = f"{label} is required."

        price = _parse_number(self.price)
        if price is None or price <= 0:
            errors["price"] = "Price must be a positive number."

        if self.listing_purpose.lower() not in {m.value.lower() for m in MarketType}:
            errors["listing_purpose"] = "Listing purpose is required."

        if not self.is_land:
            bedrooms = _parse_number(self.bedrooms)
            if bedrooms is None or bedrooms < 0:
                errors["bedrooms"] = "Number of bedrooms must be zero or greater."
            bathrooms = _parse_number(self.bathrooms)
            if bathrooms is None or bathrooms < 0:
                errors["bathrooms"] = "Number of bathrooms must be zero or greater."
            square_feet = _parse_number(self.square_feet)
            if square_feet is None or square_feet <= 0:
                errors["square_feet"] = "Area must be a positive number."
            if self.year_built not in (None, ""):
                text = str(self.year_built).strip()
                if not _FOUR_DIGITS_RE.match(text) or int(text) > current_year:
                    errors["year_built"] = "Year built must be a valid year."

        lot_size = _parse_number(self.lot_size)
        if lot_size is None or lot_size <= 0:
            errors["lot_size"] = "Plot size must be a positive number."

        if self.availability == "specific_date" and self.availability_date is None:
            errors["availability_date"] = "Please select an availability date."

        return errors

    def to_changes(self) -> dict[str, Any]:
        """Listing fields written by the basic-info step.

        Land has no building, so the building fields are cleared.
        """
        building = not self.is_land

        def _int(value: str | int | None) -> int | None:
            number = _parse_number(value)
            return int(number) if number is not None and building else None

        location = ", ".join(part for part in (self.city, self.state) if part)
        return {
            "category": self.category,
            "name": self.title,
            "description": self.description,
            "property_type": self.property_type,
            "value": _parse_number(self.price) or 0.0,
            "currency": self.currency.upper(),
            "market_type": self.listing_purpose.capitalize(),
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "location": location or self.address,
            "availability": self.availability,
            "availability_date": self.availability_date,
            "bedrooms": _int(self.bedrooms),
            "bathrooms": _int(self.bathrooms),
            "square_feet": _int(self.square_feet),
            "year_built": _int(self.year_built),
            "lot_size": _parse_number(self.lot_size),
            "roi_percentage": self.roi_percentage,
            "yield_percentage": self.yield_percentage,
        }

    @classmethod
    def from_listing(cls, listing: Listing) -> BasicInfo:
        """Pre-fill the form from a stored listing."""
        return cls(
            category=listing.category.value,
            title=listing.name,
            description=listing.description,
            property_type=listing.property_type,
            price=listing.value or None,
            currency=listing.currency,
            listing_purpose=listing.market_type.value.lower() if listing.market_type else "",
            address=listing.address,
            city=listing.city,
            state=listing.state,
            zip_code=listing.zip_code,
            availability=listing.availability,
            availability_date=listing.availability_date,
            bedrooms=listing.bedrooms,
            bathrooms=listing.bathrooms,
            square_feet=listing.square_feet,
            lot_size=listing.lot_size,
            year_built=listing.year_built,
            roi_percentage=listing.roi_percentage,
            yield_percentage=listing.yield_percentage,
        )


class BasicInfoController(StepController):
    """Step 1: the listing form."""

    step = Step.BASIC_INFO

    async def submit(self, info: BasicInfo) -> StepOutcome:
        """Validate *info* and store the basic-info fields.

        Raises:
            ListingNotEditableError: For a server listing.
            StepValidationError: If any form rule is broken.
        """
        self._require_editable()
        errors = info.problems(current_year=self._clock().year)
        if errors:
            raise self._reject(errors)
        changes = info.to_changes()
        return await self._save(lambda _current: changes)


# ---------------------------------------------------------------------------
# Step 2: images
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ImageAsset:
    """An image picked on the device.

    Attributes:
        uri: Local or remote URI of the image.
        file_name: Original file name, if known; otherwise taken from *uri*.
        size_bytes: File size, if known.
    """

    uri: str
    file_name: str | None = None
    size_bytes: int | None = None

    @property
    def extension(self) -> str:
        name = self.file_name or PurePosixPath(urlparse(self.uri).path).name
        return PurePosixPath(name).suffix.lstrip(".").lower()


@dataclass(frozen=True, slots=True)
class RejectedImage:
    asset: ImageAsset
    reason: str


@dataclass(frozen=True, slots=True)
class ImagesOutcome:
    """Result of :meth:`ImagesController.add_images`."""

    outcome: StepOutcome
    added: tuple[str, ...]
    rejected: tuple[RejectedImage, ...]


def _check_image(asset: ImageAsset) -> str | None:
    if asset.extension not in ALLOWED_IMAGE_EXTENSIONS:
        return "Only JPG, JPEG and PNG images are allowed."
    if asset.size_bytes is not None and asset.size_bytes > MAX_IMAGE_BYTES:
        return "Image must be 10 MB or smaller."
    return None


def _media_with(images: list[str], thumbnail: str | None) -> ListingMedia:
    if thumbnail not in images:
        thumbnail = images[0] if images else None
    return ListingMedia(thumbnail_url=thumbnail, images=images)


class ImagesController(StepController):
    """Step 2: the image gallery and its thumbnail."""

    step = Step.IMAGES

    async def add_images(self, assets: Iterable[ImageAsset]) -> ImagesOutcome:
        """Append the acceptable *assets* to the gallery.

        Images that are not JPG/JPEG/PNG or are larger than 10 MB are
        returned as rejections instead of being stored.  The first image
        becomes the thumbnail when none is set.

        Raises:
            StepValidationError: If no asset was acceptable.
        """
        self._require_editable()
        accepted: list[str] = []
        rejected: list[RejectedImage] = []
        for asset in assets:
            reason = _check_image(asset)
            if reason is None:
                accepted.append(asset.uri)
            else:
                rejected.append(RejectedImage(asset, reason))

        if not accepted:
            reason = rejected[0].reason if rejected else "Select at least one image."
            raise self._reject({"images": reason})

        def _changes(current: Listing) -> dict[str, Any]:
            images = list(current.media.images)
            images.extend(uri for uri in accepted if uri not in images)
            return {"media": _media_with(images, current.media.thumbnail_url)}

        outcome = await self._save(_changes)
        return ImagesOutcome(outcome=outcome, added=tuple(accepted), rejected=tuple(rejected))

    async def remove_image(self, uri: str) -> StepOutcome:
        """Remove *uri*; the thumbnail moves to the first remaining image."""

        def _changes(current: Listing) -> dict[str, Any]:
            images = [image for image in current.media.images if image != uri]
            thumbnail = current.media.thumbnail_url
            return {"media": _media_with(images, None if thumbnail == uri else thumbnail)}

        return await self._save(_changes)

    async def set_thumbnail(self, uri: str) -> StepOutcome:
        """Make *uri* (already in the gallery) the thumbnail.

        Raises:
            StepValidationError: If *uri* is not in the gallery.
        """
        self._require_editable()
        current = await self._current()
        if uri not in current.media.images:
            raise self._reject({"thumbnail_url": "Thumbnail must be one of the listing images."})

        def _changes(fresh: Listing) -> dict[str, Any]:
            return {"media": _media_with(list(fresh.media.images), uri)}

        return await self._save(_changes)


# ---------------------------------------------------------------------------
# Step 3: coordinates
# ---------------------------------------------------------------------------


def _parse_axis(
    value: str | float | None, label: str, low: float, high: float
) -> tuple[float | None, str | None]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None, f"{label} is required."
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None, f"{label} must be a number."
    if not low <= number <= high:
        return None, f"{label} must be between {low:g} and {high:g}."
    return number, None


class CoordinatesController(StepController):
    """Step 3: the property's map position."""

    step = Step.COORDINATES

    async def submit(self, latitude: str | float | None, longitude: str | float | None) -> StepOutcome:
        """Validate and store both coordinates.

        Raises:
            StepValidationError: If either axis is missing, not numeric or
                out of range.
        """
        self._require_editable()
        lat, lat_error = _parse_axis(latitude, "Latitude", -90.0, 90.0)
        lon, lon_error = _parse_axis(longitude, "Longitude", -180.0, 180.0)
        errors = {
            field: message
            for field, message in (("latitude", lat_error), ("longitude", lon_error))
            if message
        }
        if errors:
            raise self._reject(errors)

        coordinates = Coordinates(latitude=lat, longitude=lon)
        return await self._save(lambda _current: {"coordinates": coordinates})


# ---------------------------------------------------------------------------
# Step 4: features
# ---------------------------------------------------------------------------


class FeaturesController(StepController):
    """Step 4: amenities.  An empty record is a valid submission."""

    step = Step.FEATURES

    async def submit(self, features: PropertyFeatures | Mapping[str, Any]) -> StepOutcome:
        """Store *features*.

        Raises:
            StepValidationError: If a mapping contains invalid values.
        """
        self._require_editable()
        if not isinstance(features, PropertyFeatures):
            try:
                features = PropertyFeatures.model_validate(dict(features))
            except ValidationError as exc:
                raise self._reject(_errors_from_validation(exc)) from exc
        record = features
        return await self._save(lambda _current: {"features": record})


# ---------------------------------------------------------------------------
# Step 5: publish
# ---------------------------------------------------------------------------


class MediaUploader(Protocol):
    """Uploads one image to the server record.  Provided by the app layer."""

    async def __call__(self, server_id: int, uri: str) -> None: ...


@dataclass(frozen=True, slots=True)
class PublishOutcome:
    """A draft promoted to a server listing.

    Attributes:
        draft_id: Id of the local draft, which has now been removed.
        server_id: Id of the new server record.
        remote_id: ``backend_<server_id>``, the id the next fetch will show.
    """

    draft_id: str
    server_id: int
    remote_id: str


class PublishController(StepController):
    """Step 5: promote a complete draft to a server listing.

    Publishing creates the server record, posts its coordinates and
    features, uploads each image through the optional
    :class:`MediaUploader`, then deletes the local draft.  The server record
    supersedes the draft; the next fetch returns it as ``backend_<id>``.

    When a call fails after the server record was created, the draft keeps
    the new ``property_id`` so a retry reuses that record instead of
    creating a duplicate.

    Args:
        catalog: Catalog used for loads and draft writes.
        listing_id: The draft to publish.
        api: Backend API, authenticated as the vendor.
        uploader: Optional image uploader.
        clock: Returns "now"; injectable for tests.
        runner: See :class:`StepController`.
    """

    step = Step.PUBLISH

    def __init__(
        self,
        catalog: ListingCatalog,
        listing_id: str,
        api: BackendApi,
        *,
        uploader: MediaUploader | None = None,
        clock: Callable[[], datetime] = _utcnow,
        runner: Runner = _run_directly,
    ) -> None:
        super().__init__(catalog, listing_id, clock=clock, runner=runner)
        self._api = api
        self._uploader = uploader

    async def submit(self) -> PublishOutcome:
        """Publish the draft.

        Raises:
            ListingNotEditableError: The listing is already a server listing.
            ListingNotFoundError: The draft no longer exists.
            PublishNotAllowedError: Steps 1–4 are not all complete.
            ConfigError: The vendor has no auth token.
            PublishError: A backend call failed, or the created server id
                could not be recorded on the draft.
        """
        self._require_editable()
        draft = await self._catalog.drafts.get(self._listing_id)
        if draft is None:
            raise ListingNotFoundError(self._listing_id)
        self._listing = draft

        progress = draft.progress
        if not progress.ready_to_publish:
            missing = [step.label for step in progress.missing if step in PREREQUISITE_STEPS]
            raise PublishNotAllowedError(draft.id, missing)
        if not self._api.vendor.is_authenticated:
            raise ConfigError("Authentication token not found; sign in to publish")

        coordinates, features = draft.coordinates, draft.features
        if coordinates is None or features is None:
            raise PublishNotAllowedError(draft.id, [Step.COORDINATES.label, Step.FEATURES.label])

        server_id = draft.property_id
        try:
            if server_id is None:
                server_id = await self._api.create_property(property_payload(draft))
                self._listing = await self._catalog.drafts.update(
                    draft.id, lambda current: current.with_changes(property_id=server_id)
                )
            else:
                logger.info("Reusing server record %d for draft %s.", server_id, draft.id)

            await self._api.add_coordinates(server_id, coordinates.latitude, coordinates.longitude)
            await self._api.add_features(server_id, features)
            if self._uploader is not None:
                for uri in draft.media.images:
                    await self._uploader(server_id, uri)
        except BackendError as exc:
            logger.warning(
                "Publishing %s failed: %s",
                draft.id,
                exc,
                extra={"event": events.PUBLISH_FAILED, "server_id": server_id},
            )
            raise PublishError(draft.id, str(exc), server_id=server_id) from exc
        except StorageError as exc:
            logger.error(
                "Draft %s could not record server id %s: %s",
                draft.id,
                server_id,
                exc,
                extra={"event": events.PUBLISH_FAILED, "server_id": server_id},
            )
            raise PublishError(draft.id, str(exc), server_id=server_id) from exc

        await self._catalog.drafts.remove_by_id(draft.id)
        logger.info(
            "Draft %s published as server listing %d.",
            draft.id,
            server_id,
            extra={"event": events.LISTING_PUBLISHED, "server_id": server_id},
        )
        return PublishOutcome(
            draft_id=draft.id, server_id=server_id, remote_id=remote_listing_id(server_id)
        )
