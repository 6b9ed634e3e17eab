"""Listingsync application settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.

The field name is the **lowercase** version of the env-var name (e.g.
``BACKEND_BASE_URL`` → ``backend_base_url``).

Typical usage::

    from listingsync.core.settings import Settings

    settings = Settings()                         # loads from env + .env
    vendor = settings.to_vendor_context()         # build VendorContext
    print(settings.vendor_configured)             # True / False
"""

from __future__ import annotations

import logging

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from listingsync.core.exceptions import ConfigError
from listingsync.core.vendor_context import VendorContext

__all__ = ["Settings"]

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).

    ``VENDOR_EMAIL`` and ``AUTH_TOKEN`` may be left empty: local drafts can
    still be listed and edited, but remote fetch, remote delete and publish
    are unavailable.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Vendor
    # ------------------------------------------------------------------
    vendor_email: str = Field(default="", description="Signed-in vendor's account email.")
    auth_token: str = Field(default="", description="Backend API token for the vendor.")

    # ------------------------------------------------------------------
    # Backend
    # ------------------------------------------------------------------
    backend_base_url: str = Field(
        default="https://www.realvistamanagement.com",
        description="Marketplace backend root URL.",
    )
    backend_auth_scheme: str = Field(
        default="Token",
        description="Prefix of the Authorization header value.",
    )
    backend_connect_timeout: float = Field(
        default=10.0,
        gt=0.0,
        description="TCP connect timeout in seconds.",
    )
    backend_read_timeout: float = Field(
        default=20.0,
        gt=0.0,
        description="Timeout waiting for a response in seconds.",
    )
    backend_write_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Timeout uploading a request body in seconds.",
    )
    backend_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Total attempts per request, including the first (1 = no retries).",
    )

    # ------------------------------------------------------------------
    # Screens
    # ------------------------------------------------------------------
    load_timeout_s: float = Field(
        default=60.0,
        gt=0.0,
        description="Upper bound on any single screen operation (load, publish, delete).",
    )
    removal_confirmation_token: str = Field(
        default="REMOVE",
        min_length=1,
        description="Word the vendor must type to remove a local draft.",
    )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    database_path: str = Field(
        default="data/listingsync.db",
        description="Path to the SQLite key-value database file.",
    )
    drafts_storage_key: str = Field(
        default="marketplaceListings",
        min_length=1,
        description="Key under which the draft collection is stored.",
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("backend_base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"backend_base_url must be an http(s) URL, got {v!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower

    # ------------------------------------------------------------------
    # Model validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def _token_requires_vendor(self) -> Settings:
        """A token without an owner cannot scope any remote call."""
        if self.auth_token and not self.vendor_email:
            raise ValueError("auth_token is set but vendor_email is empty")
        return self

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def vendor_configured(self) -> bool:
        """``True`` if both the vendor email and auth token are set."""
        return bool(self.vendor_email and self.auth_token)

    def to_vendor_context(self) -> VendorContext:
        """Build the session's :class:`VendorContext`.

        Raises:
            ConfigError: If ``VENDOR_EMAIL`` is not set.
        """
        if not self.vendor_email:
            raise ConfigError("VENDOR_EMAIL is not configured")
        return VendorContext(
            owner_id=self.vendor_email,
            auth_token=self.auth_token,
            auth_scheme=self.backend_auth_scheme,
        )
