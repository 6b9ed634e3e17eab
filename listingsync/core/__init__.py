"""Listingsync core package — models, settings, logging, and exceptions."""

from listingsync.core.exceptions import (
    BackendAuthError,
    BackendError,
    BackendParseError,
    BackendRateLimitError,
    BackendRequestError,
    BackendUnavailableError,
    ConfigError,
    ConfirmationMismatchError,
    DraftNotFoundError,
    ListingNotEditableError,
    ListingNotFoundError,
    ListingSyncError,
    OperationTimeoutError,
    PublishError,
    PublishNotAllowedError,
    RemovalError,
    StepValidationError,
    StorageError,
    StorageReadError,
    WorkflowError,
)
from listingsync.core.logging_config import JsonFormatter, configure_logging

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Exceptions
    "ListingSyncError",
    "ConfigError",
    "OperationTimeoutError",
    "StorageError",
    "StorageReadError",
    "DraftNotFoundError",
    "BackendError",
    "BackendRequestError",
    "BackendAuthError",
    "BackendRateLimitError",
    "BackendUnavailableError",
    "BackendParseError",
    "WorkflowError",
    "ListingNotFoundError",
    "ListingNotEditableError",
    "StepValidationError",
    "PublishNotAllowedError",
    "PublishError",
    "RemovalError",
    "ConfirmationMismatchError",
]
