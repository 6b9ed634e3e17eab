"""Session wiring: assemble the engine from :class:`Settings`.

:func:`open_session` opens the SQLite database, builds the draft store, the
backend API, the fetcher, the catalog and the removal router, and tears all
of them down on exit, including on exceptions.

Typical usage::

    async with open_session(Settings()) as session:
        async with session.listings_screen() as screen:
            rows = await screen.load()
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass

from listingsync.core.settings import Settings
from listingsync.core.vendor_context import VendorContext
from listingsync.engine.catalog import ListingCatalog
from listingsync.engine.removal import RemovalRouter
from listingsync.engine.screens import ListingsScreen, WorkflowScreen
from listingsync.engine.workflow import MediaUploader
from listingsync.remote.backend import BackendApi
from listingsync.remote.fetcher import RemoteListingFetcher
from listingsync.storage.database import open_db
from listingsync.storage.drafts import DraftStore
from listingsync.storage.kv import KeyValueStore

__all__ = ["EngineSession", "open_session"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EngineSession:
    """The wired engine for one signed-in vendor."""

    settings: Settings
    catalog: ListingCatalog
    router: RemovalRouter
    api: BackendApi

    def listings_screen(self) -> ListingsScreen:
        return ListingsScreen(
            self.catalog, self.router, timeout_s=self.settings.load_timeout_s
        )

    def workflow_screen(
        self, listing_id: str, *, uploader: MediaUploader | None = None
    ) -> WorkflowScreen:
        return WorkflowScreen(
            self.catalog,
            self.api,
            listing_id,
            uploader=uploader,
            timeout_s=self.settings.load_timeout_s,
        )


@asynccontextmanager
async def open_session(
    settings: Settings, vendor: VendorContext | None = None
) -> AsyncIterator[EngineSession]:
    """Open every resource the engine needs and yield an :class:`EngineSession`.

    Args:
        settings: Loaded settings.
        vendor: Signed-in vendor; built from *settings* when omitted.

    Raises:
        ConfigError: If no vendor is given and ``VENDOR_EMAIL`` is unset.
    """
    if vendor is None:
        vendor = settings.to_vendor_context()

    logger.info(
        "Opening session for %s (db=%s, backend=%s).",
        vendor,
        settings.database_path,
        settings.backend_base_url,
    )
    async with AsyncExitStack() as stack:
        conn = await open_db(settings.database_path)
        stack.push_async_callback(conn.close)

        drafts = DraftStore(KeyValueStore(conn), settings.drafts_storage_key)
        api = await stack.enter_async_context(BackendApi.from_settings(settings, vendor))
        catalog = ListingCatalog(drafts, RemoteListingFetcher(api), vendor)
        router = RemovalRouter(
            drafts, api, confirmation_token=settings.removal_confirmation_token
        )
        yield EngineSession(settings=settings, catalog=catalog, router=router, api=api)
    logger.debug("Session closed.")
