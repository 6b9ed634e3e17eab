"""Listingsync exception taxonomy.

Every custom exception inherits from :class:`ListingSyncError`.  Exceptions
are organised by architectural layer so callers can catch at the right
granularity:

    Layer hierarchy
    ---------------
    ListingSyncError
    ├── ConfigError
    ├── OperationTimeoutError
    ├── StorageError
    │   ├── StorageReadError
    │   └── DraftNotFoundError
    ├── BackendError
    │   ├── BackendRequestError
    │   ├── BackendAuthError
    │   ├── BackendRateLimitError
    │   ├── BackendUnavailableError
    │   └── BackendParseError
    ├── WorkflowError
    │   ├── ListingNotFoundError
    │   ├── ListingNotEditableError
    │   ├── StepValidationError
    │   ├── PublishNotAllowedError
    │   └── PublishError
    └── RemovalError
        └── ConfirmationMismatchError

Usage:

    from listingsync.core.exceptions import BackendRequestError

    raise BackendRequestError("/market/delete-property/42/", "Not found", 404) from exc

Screen models (:mod:`listingsync.engine.screens`) are the only place these
errors are converted into user-facing notices.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

__all__ = [
    "ListingSyncError",
    # Config
    "ConfigError",
    "OperationTimeoutError",
    # Storage
    "StorageError",
    "StorageReadError",
    "DraftNotFoundError",
    # Backend
    "BackendError",
    "BackendRequestError",
    "BackendAuthError",
    "BackendRateLimitError",
    "BackendUnavailableError",
    "BackendParseError",
    # Workflow
    "WorkflowError",
    "ListingNotFoundError",
    "ListingNotEditableError",
    "StepValidationError",
    "PublishNotAllowedError",
    "PublishError",
    # Removal
    "RemovalError",
    "ConfirmationMismatchError",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class ListingSyncError(Exception):
    """Root exception for all listingsync errors.

    Catch this to handle any application-level error uniformly.  Prefer
    catching layer-specific subclasses wherever possible.
    """


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(ListingSyncError):
    """Raised when the application configuration is invalid or incomplete.

    Examples:
        - No vendor email configured for a command that needs one.
        - An auth token is required (publish, remote delete) but missing.
    """


class OperationTimeoutError(ListingSyncError):
    """Raised when a screen operation does not finish within its timeout.

    Args:
        operation: Name of the screen or operation that timed out.
        timeout_s: The timeout that was exceeded, in seconds.
    """

    def __init__(self, operation: str, timeout_s: float | None) -> None:
        self.operation = operation
        self.timeout_s = timeout_s
        super().__init__(f"{operation} did not respond within {timeout_s}s")


# ---------------------------------------------------------------------------
# Storage layer
# ---------------------------------------------------------------------------


class StorageError(ListingSyncError):
    """Raised when a key-value or draft-store operation fails."""


class StorageReadError(StorageError):
    """Raised when the stored draft collection cannot be read or decoded.

    The draft store catches this internally on the read path and treats the
    collection as empty; it only escapes from low-level helpers.

    Args:
        key: Storage key that could not be read.
        message: Human-readable error description.
    """

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(f"Cannot read {key!r}: {message}")


class DraftNotFoundError(StorageError):
    """Raised when :meth:`DraftStore.update` targets an id that is not stored.

    Args:
        listing_id: The local listing id that was looked up.
    """

    def __init__(self, listing_id: str) -> None:
        self.listing_id = listing_id
        super().__init__(f"No local draft with id {listing_id!r}")


# ---------------------------------------------------------------------------
# Backend layer
# ---------------------------------------------------------------------------


class BackendError(ListingSyncError):
    """Base class for all errors talking to the marketplace backend.

    Args:
        endpoint: Request path or URL that failed.
        message: Human-readable error description.
    """

    def __init__(self, endpoint: str, message: str) -> None:
        self.endpoint = endpoint
        super().__init__(f"[{endpoint}] {message}")


class BackendRequestError(BackendError):
    """Raised when the backend rejects a request with a non-retryable status.

    Args:
        endpoint: Request path or URL.
        message: Error detail reported by the server, if any.
        status_code: HTTP status code of the rejected response.
    """

    def __init__(self, endpoint: str, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(endpoint, message)


class BackendAuthError(BackendError):
    """Raised on HTTP 401/403: the vendor token is missing, invalid or expired."""


class BackendRateLimitError(BackendError):
    """Raised when the backend answers HTTP 429 and retries are exhausted.

    Args:
        endpoint: Request path or URL.
        retry_after: Recommended back-off interval in seconds, if known.
    """

    def __init__(self, endpoint: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        detail = f"retry after {retry_after}s" if retry_after is not None else "no retry hint"
        super().__init__(endpoint, f"Rate limited ({detail})")


class BackendUnavailableError(BackendError):
    """Raised when the backend stays unreachable or keeps failing with 5xx.

    Covers timeouts, refused connections and persistent server faults once
    the retry budget has been spent.
    """


class BackendParseError(BackendError):
    """Raised when a backend response body does not have the expected shape."""


# ---------------------------------------------------------------------------
# Workflow layer
# ---------------------------------------------------------------------------


class WorkflowError(ListingSyncError):
    """Base class for errors raised by step controllers and the catalog."""


class ListingNotFoundError(WorkflowError):
    """Raised when a listing id resolves to nothing in either store.

    Args:
        listing_id: The id that was looked up.
    """

    def __init__(self, listing_id: str) -> None:
        self.listing_id = listing_id
        super().__init__(f"Listing not found: {listing_id!r}")


class ListingNotEditableError(WorkflowError):
    """Raised when a step controller is asked to edit a server-owned listing.

    Remote listings are read-only in this engine: there is no update
    endpoint, so edits are refused rather than silently dropped.

    Args:
        listing_id: The ``backend_<id>`` listing id.
    """

    def __init__(self, listing_id: str) -> None:
        self.listing_id = listing_id
        super().__init__(f"Listing {listing_id!r} is owned by the server and cannot be edited")


class StepValidationError(WorkflowError):
    """Raised when a step submission fails validation.

    Args:
        errors: Mapping of field name to human-readable message.
    """

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors: dict[str, str] = dict(errors)
        summary = "; ".join(f"{field}: {msg}" for field, msg in self.errors.items())
        super().__init__(f"Validation failed ({summary})")


class PublishNotAllowedError(WorkflowError):
    """Raised when publishing is requested before steps 1–4 are complete.

    Args:
        listing_id: The draft id.
        missing: Labels of the incomplete steps.
    """

    def __init__(self, listing_id: str, missing: list[str]) -> None:
        self.listing_id = listing_id
        self.missing = missing
        super().__init__(
            f"Listing {listing_id!r} cannot be published yet; incomplete: {', '.join(missing)}"
        )


class PublishError(WorkflowError):
    """Raised when the backend fails part-way through publishing a draft.

    Args:
        listing_id: The draft id.
        message: Human-readable error description.
        server_id: Server id of the record created before the failure, if any.
    """

    def __init__(self, listing_id: str, message: str, server_id: int | None = None) -> None:
        self.listing_id = listing_id
        self.server_id = server_id
        super().__init__(f"Publishing {listing_id!r} failed: {message}")


# ---------------------------------------------------------------------------
# Removal layer
# ---------------------------------------------------------------------------


class RemovalError(ListingSyncError):
    """Base class for errors raised by the removal router."""


class ConfirmationMismatchError(RemovalError):
    """Raised when the typed confirmation token does not match.

    Args:
        expected: The token the user had to type.
    """

    def __init__(self, expected: str) -> None:
        self.expected = expected
        super().__init__(f"Please type {expected!r} to confirm removal")
