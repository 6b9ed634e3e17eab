"""Removal router.

Dispatches a removal to the store that owns the listing, keyed on
:attr:`Listing.origin`.  Either way the vendor must first type the
confirmation word (``REMOVE`` by default, compared case-insensitively).

* **local** — the draft is deleted from the draft store; no network call is
  made.
* **remote** — an authenticated ``DELETE`` is sent for the numeric server
  id.  The draft store is not touched, and nothing is cached locally: the
  next fetch reflects the deletion.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from listingsync.core import events
from listingsync.core.exceptions import BackendError, ConfirmationMismatchError, RemovalError
from listingsync.core.ids import server_id_from_listing_id
from listingsync.core.models import Listing, ListingOrigin
from listingsync.remote.backend import BackendApi
from listingsync.storage.drafts import DraftStore

__all__ = ["DEFAULT_CONFIRMATION_TOKEN", "RemovalOutcome", "RemovalRouter"]

logger = logging.getLogger(__name__)

#: Word a vendor types to confirm removing a listing.
DEFAULT_CONFIRMATION_TOKEN = "REMOVE"


@dataclass(frozen=True, slots=True)
class RemovalOutcome:
    """Result of one removal.

    Attributes:
        listing_id: The id that was removed.
        origin: Which store handled the removal.
        removed: ``False`` only for a local id that was already gone.
        server_id: The server id for remote removals.
        message: Confirmation text suitable for the user.
    """

    listing_id: str
    origin: ListingOrigin
    removed: bool
    server_id: int | None = None
    message: str = ""


class RemovalRouter:
    """Route removals to the owning store.

    Args:
        drafts: The local draft store.
        api: Backend API for server deletes.
        confirmation_token: Word required to remove any listing.
    """

    def __init__(
        self,
        drafts: DraftStore,
        api: BackendApi,
        *,
        confirmation_token: str = DEFAULT_CONFIRMATION_TOKEN,
    ) -> None:
        self._drafts = drafts
        self._api = api
        self._token = confirmation_token

    @property
    def confirmation_token(self) -> str:
        return self._token

    async def remove(
        self,
        listing: Listing,
        *,
        confirmation: str | None = None,
        reason: str | None = None,
    ) -> RemovalOutcome:
        """Remove *listing* from the store that owns it.

        Args:
            listing: The listing to remove.
            confirmation: Text the vendor typed.
            reason: Optional free-text reason, logged with the removal.

        Raises:
            ConfirmationMismatchError: The typed word does not match.
            RemovalError: A remote listing id without a numeric server id.
            BackendError: The server delete failed.
        """
        if (confirmation or "").strip().upper() != self._token.upper():
            logger.info(
                "Removal of %s refused: confirmation mismatch.",
                listing.id,
                extra={"event": events.REMOVAL_REJECTED},
            )
            raise ConfirmationMismatchError(self._token)

        if listing.origin is ListingOrigin.LOCAL:
            return await self._remove_local(listing, reason)
        return await self._remove_remote(listing, reason)

    async def _remove_local(self, listing: Listing, reason: str | None) -> RemovalOutcome:
        removed = await self._drafts.remove_by_id(listing.id)
        logger.info(
            "Local draft %s removal: %s (reason=%r).",
            listing.id,
            "removed" if removed else "already gone",
            reason,
        )
        return RemovalOutcome(
            listing_id=listing.id,
            origin=ListingOrigin.LOCAL,
            removed=removed,
            message="Listing removed successfully",
        )

    async def _remove_remote(self, listing: Listing, reason: str | None) -> RemovalOutcome:
        server_id = server_id_from_listing_id(listing.id)
        if server_id is None:
            raise RemovalError(f"Listing {listing.id!r} has no server id")

        try:
            message = await self._api.delete_property(server_id)
        except BackendError as exc:
            logger.warning(
                "Server delete of %d failed: %s",
                server_id,
                exc,
                extra={"event": events.REMOTE_DELETE_ERROR, "server_id": server_id},
            )
            raise

        logger.info(
            "Server listing %d deleted (reason=%r).",
            server_id,
            reason,
            extra={"event": events.REMOTE_DELETE_OK, "server_id": server_id},
        )
        return RemovalOutcome(
            listing_id=listing.id,
            origin=ListingOrigin.REMOTE,
            removed=True,
            server_id=server_id,
            message=message,
        )
