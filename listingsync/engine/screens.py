"""Screen models for the listings index and the step-by-step workflow.

These are the outermost layer of the engine.  They own a
:class:`~listingsync.engine.scope.ScreenScope` for their lifetime, call into
the catalog, controllers and removal router, and turn every
:class:`~listingsync.core.exceptions.ListingSyncError` into a
:class:`Notice` the UI can show.  No engine error propagates past a screen.

* :class:`ListingsScreen` loads both sources, re-filters locally, creates
  drafts and removes listings.
* :class:`WorkflowScreen` resolves one listing, reports its step states and
  runs step saves through :meth:`WorkflowScreen.save`.  Controllers it hands
  out run their store calls inside the screen scope, and
  :meth:`WorkflowScreen.editing` reloads the listing when the step is closed.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import StrEnum
from types import TracebackType

from listingsync.core.exceptions import (
    BackendError,
    ConfigError,
    ConfirmationMismatchError,
    ListingNotFoundError,
    ListingSyncError,
    OperationTimeoutError,
    PublishError,
    PublishNotAllowedError,
    StepValidationError,
)
from listingsync.core.models import Listing, ListingCategory
from listingsync.core.progress import TOTAL_STEPS, ListingProgress, Step, StepState
from listingsync.core.query import ListingQuery
from listingsync.engine.aggregator import ListingPerformance, ListingRow, performance
from listingsync.engine.catalog import CatalogSnapshot, ListingCatalog
from listingsync.engine.removal import RemovalRouter
from listingsync.engine.scope import DEFAULT_TIMEOUT_S, ScreenScope
from listingsync.engine.workflow import (
    BasicInfoController,
    CoordinatesController,
    FeaturesController,
    ImagesController,
    MediaUploader,
    PublishController,
    StepController,
)
from listingsync.remote.backend import BackendApi

__all__ = ["NoticeLevel", "Notice", "notice_for", "ListingsScreen", "WorkflowScreen"]

logger = logging.getLogger(__name__)


class NoticeLevel(StrEnum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Notice:
    """A message for the user: a toast, alert or inline banner."""

    level: NoticeLevel
    title: str
    message: str

    @classmethod
    def success(cls, message: str, title: str = "Success") -> Notice:
        return cls(NoticeLevel.SUCCESS, title, message)

    @classmethod
    def error(cls, message: str, title: str = "Error") -> Notice:
        return cls(NoticeLevel.ERROR, title, message)


def notice_for(exc: ListingSyncError) -> Notice:
    """Map an engine error to the notice shown for it."""
    if isinstance(exc, StepValidationError):
        return Notice(NoticeLevel.WARNING, "Validation Error", "; ".join(exc.errors.values()))
    if isinstance(exc, ConfirmationMismatchError):
        return Notice(NoticeLevel.WARNING, "Confirmation Required", str(exc))
    if isinstance(exc, PublishNotAllowedError):
        return Notice(
            NoticeLevel.WARNING,
            "Incomplete Listing",
            f"Complete these steps first: {', '.join(exc.missing)}",
        )
    if isinstance(exc, ListingNotFoundError):
        return Notice.error("This listing no longer exists.", title="Not Found")
    if isinstance(exc, OperationTimeoutError):
        return Notice.error(str(exc), title="Request Timed Out")
    if isinstance(exc, ConfigError):
        return Notice.error(str(exc), title="Sign In Required")
    if isinstance(exc, PublishError):
        return Notice.error(str(exc), title="Publish Failed")
    if isinstance(exc, BackendError):
        return Notice.error(str(exc), title="Network Error")
    return Notice.error(str(exc))


class _ScopedScreen:
    """Base for screens: owns a :class:`ScreenScope` between enter and exit."""

    name = "screen"

    def __init__(self, *, timeout_s: float | None) -> None:
        self._scope = ScreenScope(self.name, timeout_s=timeout_s)

    @property
    def scope(self) -> ScreenScope:
        return self._scope

    async def __aenter__(self) -> _ScopedScreen:
        await self._scope.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self._scope.__aexit__(exc_type, exc, tb)


# ---------------------------------------------------------------------------
# Listings index
# ---------------------------------------------------------------------------


class ListingsScreen(_ScopedScreen):
    """The listings index: every draft and server listing of the vendor.

    Args:
        catalog: The listing catalog.
        router: Removal router.
        timeout_s: Per-operation timeout.
    """

    name = "listings"

    def __init__(
        self,
        catalog: ListingCatalog,
        router: RemovalRouter,
        *,
        timeout_s: float | None = DEFAULT_TIMEOUT_S,
    ) -> None:
        super().__init__(timeout_s=timeout_s)
        self._catalog = catalog
        self._router = router
        self._snapshot = CatalogSnapshot()
        self._notice: Notice | None = None

    async def __aenter__(self) -> ListingsScreen:
        await super().__aenter__()
        return self

    @property
    def query(self) -> ListingQuery:
        return self._snapshot.query

    @property
    def rows(self) -> list[ListingRow]:
        return self._snapshot.rows

    @property
    def notice(self) -> Notice | None:
        """Banner for the last load, e.g. when server listings are unavailable."""
        return self._notice

    async def load(self, query: ListingQuery | None = None) -> list[ListingRow]:
        """Reload both sources and return the filtered rows.

        Drafts are shown even when the server fetch fails or times out; the
        failure is reported through :attr:`notice`.  If the drafts cannot be
        read either, the previous rows are kept.
        """
        try:
            snapshot = await self._scope.run(
                self._catalog.load(query or self.query, fetch_timeout_s=self._scope.timeout_s),
                timeout_s=None,
            )
        except ListingSyncError as exc:
            logger.info("Loading listings failed: %s", exc)
            self._notice = notice_for(exc)
            return self._snapshot.rows
        self._snapshot = snapshot
        if snapshot.remote_error is not None:
            self._notice = Notice(
                NoticeLevel.WARNING,
                "Server Listings Unavailable",
                f"Showing local drafts only: {snapshot.remote_error}",
            )
        else:
            self._notice = None
        return snapshot.rows

    def set_query(self, query: ListingQuery) -> list[ListingRow]:
        """Apply *query* to the loaded listings without reloading."""
        self._snapshot = self._snapshot.with_query(query)
        return self._snapshot.rows

    def find(self, listing_id: str) -> Listing | None:
        return self._snapshot.find(listing_id)

    def performance(self, listing_id: str) -> ListingPerformance | None:
        listing = self.find(listing_id)
        return performance(listing) if listing is not None else None

    async def create_listing(
        self, category: ListingCategory = ListingCategory.CORPORATE
    ) -> Listing | None:
        """Create an empty draft; the caller opens it in the workflow.

        Returns ``None`` and sets :attr:`notice` when the draft cannot be stored.
        """
        try:
            draft = await self._scope.run(self._catalog.create_draft(category))
        except ListingSyncError as exc:
            logger.info("Creating a draft failed: %s", exc)
            self._notice = notice_for(exc)
            return None
        await self.load()
        return draft

    async def remove(
        self,
        listing_id: str,
        *,
        confirmation: str | None = None,
        reason: str | None = None,
    ) -> Notice:
        """Remove a listing through the router and reload on success."""
        listing = self.find(listing_id)
        try:
            if listing is None:
                listing = await self._scope.run(self._catalog.get(listing_id))
            outcome = await self._scope.run(
                self._router.remove(listing, confirmation=confirmation, reason=reason)
            )
        except ListingSyncError as exc:
            logger.info("Removal of %s failed: %s", listing_id, exc)
            return notice_for(exc)
        await self.load()
        return Notice.success(outcome.message or "Listing removed successfully")


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------

_CONTROLLERS: dict[Step, type[StepController]] = {
    Step.BASIC_INFO: BasicInfoController,
    Step.IMAGES: ImagesController,
    Step.COORDINATES: CoordinatesController,
    Step.FEATURES: FeaturesController,
}


class WorkflowScreen(_ScopedScreen):
    """The step-by-step editor for one listing.

    Args:
        catalog: The listing catalog.
        api: Backend API used by the publish step.
        listing_id: The listing being edited.
        uploader: Optional image uploader for the publish step.
        timeout_s: Per-operation timeout.
    """

    name = "workflow"

    def __init__(
        self,
        catalog: ListingCatalog,
        api: BackendApi,
        listing_id: str,
        *,
        uploader: MediaUploader | None = None,
        timeout_s: float | None = DEFAULT_TIMEOUT_S,
    ) -> None:
        super().__init__(timeout_s=timeout_s)
        self._catalog = catalog
        self._api = api
        self._listing_id = listing_id
        self._uploader = uploader
        self._listing: Listing | None = None
        self._notice: Notice | None = None

    async def __aenter__(self) -> WorkflowScreen:
        await super().__aenter__()
        return self

    @property
    def listing_id(self) -> str:
        return self._listing_id

    @property
    def listing(self) -> Listing | None:
        return self._listing

    @property
    def notice(self) -> Notice | None:
        """Result of the last :meth:`load`; ``None`` when the listing is loaded."""
        return self._notice

    @property
    def progress(self) -> ListingProgress | None:
        return self._listing.progress if self._listing is not None else None

    @property
    def steps(self) -> tuple[StepState, ...]:
        progress = self.progress
        return progress.steps if progress is not None else ()

    @property
    def resume_step(self) -> Step:
        """The step to open: the first incomplete one, or publish when done."""
        progress = self.progress
        if progress is None:
            return Step.BASIC_INFO
        return Step(min(progress.current_step, TOTAL_STEPS - 1))

    async def load(self) -> Notice | None:
        """Resolve the listing from its owning store.

        Returns:
            ``None`` on success, otherwise the notice to show.
        """
        try:
            self._listing = await self._scope.run(self._catalog.get(self._listing_id))
        except ListingSyncError as exc:
            logger.info("Cannot open %s: %s", self._listing_id, exc)
            self._notice = notice_for(exc)
        else:
            self._notice = None
        return self._notice

    def controller(self, step: Step) -> StepController:
        """Build *step*'s controller; its reads and saves run in this screen's scope."""
        if step is Step.PUBLISH:
            return self._publisher()
        return _CONTROLLERS[step](self._catalog, self._listing_id, runner=self._scope.run)

    def _publisher(self) -> PublishController:
        return PublishController(
            self._catalog,
            self._listing_id,
            self._api,
            uploader=self._uploader,
            runner=self._scope.run,
        )

    @asynccontextmanager
    async def editing(self, step: Step) -> AsyncIterator[StepController]:
        """Open *step*'s controller; the listing is reloaded when it closes.

        Errors raised by the controller reach the caller, which shows them
        next to the form.  A failed reload is reported through :attr:`notice`.
        """
        controller = self.controller(step)
        try:
            yield controller
        finally:
            await self.load()

    async def save(
        self, step: Step, operation: Callable[[StepController], Awaitable[object]]
    ) -> Notice:
        """Run one save on *step*'s controller and describe the result.

        Example::

            notice = await screen.save(
                Step.COORDINATES, lambda c: c.submit(lat, lon)
            )
        """
        controller = self.controller(step)
        try:
            await operation(controller)
        except ListingSyncError as exc:
            logger.info("%s not saved for %s: %s", step.label, self._listing_id, exc)
            return notice_for(exc)
        finally:
            await self.load()
        return Notice.success(f"{step.label} saved")

    async def publish(self) -> Notice:
        """Run the publish step and describe the result."""
        publisher = self._publisher()
        try:
            outcome = await self._scope.run(publisher.submit())
        except ListingSyncError as exc:
            await self.load()
            return notice_for(exc)
        self._listing_id = outcome.remote_id
        self._listing = None
        return Notice.success(f"Listing published as {outcome.remote_id}")
