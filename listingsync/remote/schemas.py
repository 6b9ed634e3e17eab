"""Pydantic schemas for the backend's property records.

These mirror the JSON returned by ``/market/fetch-properties-by-email/``.
Only the fields the engine reads are declared; everything else is ignored,
so new server fields never break validation.  Fields the server sometimes
omits or sends as ``null`` are optional with safe defaults.
"""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "BackendImageFile",
    "BackendOwner",
    "BackendFeatures",
    "BackendCoordinates",
    "BackendProperty",
    "BackendCreatedRecord",
    "BackendCreateResponse",
]


class _BackendModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class BackendImageFile(_BackendModel):
    id: int | None = None
    name: str = ""
    file: str
    file_type: str = ""
    uploaded_at: datetime | None = None


class BackendOwner(_BackendModel):
    id: int | None = None
    email: str
    owner_name: str = ""
    phone_number: str = ""


class BackendFeatures(_BackendModel):
    negotiable: str | bool | None = None
    furnished: bool = False
    pet_friendly: bool = False
    parking_available: bool = False
    swimming_pool: bool = False
    garden: bool = False
    electricity_proximity: str | None = None
    road_network: str | None = None
    development_level: str | None = None
    water_supply: bool = False
    security: bool = False
    additional_features: str | None = None
    verified_user: bool = False


class BackendCoordinates(_BackendModel):
    id: int | None = None
    latitude: float
    longitude: float


class BackendProperty(_BackendModel):
    """One property record as returned by the backend."""

    id: int = Field(..., ge=0)
    title: str = ""
    description: str = ""
    property_type: str = ""
    price: str = "0"
    currency: str = ""
    listing_purpose: str = ""
    listing_type: str | None = None
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    availability: str = ""
    availability_date: date | None = None
    bedrooms: int | None = None
    bathrooms: int | None = None
    square_feet: int | None = None
    lot_size: str | None = None
    year_built: int | None = None
    views: int = 0
    inquiries: int = 0
    bookmarked: int = 0
    listed_date: datetime | None = None
    updated_date: datetime | None = None
    image_files: list[BackendImageFile] = Field(default_factory=list)
    owner: BackendOwner
    features: list[BackendFeatures] = Field(default_factory=list)
    market_coordinates: list[BackendCoordinates] = Field(default_factory=list)

    @field_validator("price", mode="before")
    @classmethod
    def _price_as_text(cls, v: object) -> object:
        """The server sends decimals as strings; accept bare numbers too."""
        if v is None:
            return "0"
        if isinstance(v, int | float):
            return str(v)
        return v

    @field_validator("lot_size", mode="before")
    @classmethod
    def _lot_size_as_text(cls, v: object) -> object:
        """Plot size arrives as text or as a bare number, like ``price``."""
        if isinstance(v, bool):
            return None
        if isinstance(v, int | float):
            return str(v)
        return v

    @field_validator("availability_date", mode="before")
    @classmethod
    def _date_part(cls, v: object) -> object:
        """Accept ``""`` for no date and a full timestamp for a date."""
        if isinstance(v, str):
            v = v.strip().split("T", 1)[0]
            return v or None
        return v

    @field_validator("image_files", "features", "market_coordinates", mode="before")
    @classmethod
    def _null_to_empty(cls, v: object) -> object:
        return [] if v is None else v

    @field_validator(
        "title", "description", "property_type", "currency", "listing_purpose",
        "address", "city", "state", "zip_code", "availability",
        mode="before",
    )
    @classmethod
    def _null_to_blank(cls, v: object) -> object:
        return "" if v is None else v


class BackendCreatedRecord(_BackendModel):
    id: int = Field(..., ge=0)


class BackendCreateResponse(_BackendModel):
    """Body of a successful ``POST /market/list-property/``."""

    data: BackendCreatedRecord
