"""Vendor context: who is acting, and with which credentials.

A :class:`VendorContext` is built once per session (from
:class:`~listingsync.core.settings.Settings` or from the app's auth layer)
and passed to every component that talks to the backend or scopes data to an
owner.  It is immutable for the lifetime of the session.

Typical usage::

    from listingsync.core.vendor_context import VendorContext

    vendor = VendorContext(owner_id="vendor@example.com", auth_token="abc123")
    vendor.authorization_header      # {"Authorization": "Token abc123"}
"""

from __future__ import annotations

from dataclasses import dataclass

from listingsync.core.exceptions import ConfigError

__all__ = ["VendorContext"]


@dataclass(frozen=True)
class VendorContext:
    """Immutable identity of the signed-in vendor.

    Attributes:
        owner_id: Vendor account email; used to scope remote fetches and
            stamped on new drafts.
        auth_token: Backend API token.  Empty when the vendor is offline or
            not signed in; reads of local drafts still work.
        auth_scheme: Prefix of the ``Authorization`` header value.
    """

    owner_id: str
    auth_token: str = ""
    auth_scheme: str = "Token"

    @property
    def is_authenticated(self) -> bool:
        """``True`` if a backend token is available."""
        return bool(self.auth_token)

    @property
    def authorization_header(self) -> dict[str, str]:
        """Header dict for authenticated backend calls.

        Raises:
            ConfigError: If no auth token is set.
        """
        if not self.auth_token:
            raise ConfigError("Authentication token not found; sign in first")
        return {"Authorization": f"{self.auth_scheme} {self.auth_token}"}

    def __str__(self) -> str:
        auth = "authenticated" if self.is_authenticated else "anonymous"
        return f"VendorContext(owner_id={self.owner_id!r}, {auth})"
