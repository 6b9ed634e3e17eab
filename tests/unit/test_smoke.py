"""Smoke tests — verify the test harness itself is wired up correctly.

These tests assert nothing about business logic.  Their sole purpose is to
confirm:

1. pytest discovers and runs tests in this suite.
2. pytest-asyncio's ``asyncio_mode = "auto"`` setting works (async tests
   run without any decorator).
3. Core listingsync modules import without errors.
4. ``configure_logging()`` executes without raising.
5. The exception taxonomy is importable and the hierarchy is intact.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from unittest.mock import patch

import pytest

from listingsync.__main__ import main

from listingsync.core import (
    BackendAuthError,
    BackendError,
    BackendParseError,
    BackendRateLimitError,
    BackendRequestError,
    BackendUnavailableError,
    ConfigError,
    ConfirmationMismatchError,
    DraftNotFoundError,
    JsonFormatter,
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
    configure_logging,
)
from listingsync.core.logging_config import SCOPE_ID_CTX

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Import & startup smoke
# ---------------------------------------------------------------------------


def test_core_imports_succeed() -> None:
    """All public names exported from ``listingsync.core`` are importable."""
    assert configure_logging is not None
    assert JsonFormatter is not None
    assert ListingSyncError is not None


def test_engine_imports_succeed() -> None:
    """The engine package imports without side effects."""
    import listingsync.engine as engine  # noqa: PLC0415

    assert engine.ListingCatalog is not None
    assert engine.RemovalRouter is not None


def test_configure_logging_text() -> None:
    """``configure_logging`` runs without raising in text mode."""
    configure_logging(level="INFO", fmt="text", force=True)


def test_configure_logging_json() -> None:
    """``configure_logging`` runs without raising in JSON mode."""
    configure_logging(level="DEBUG", fmt="json", force=True)
    # Restore text mode so subsequent test output remains readable.
    configure_logging(level="DEBUG", fmt="text", force=True)


def test_configure_logging_invalid_level() -> None:
    """``configure_logging`` raises ``ValueError`` for unknown log levels."""
    with pytest.raises(ValueError, match="Unknown LOG_LEVEL"):
        configure_logging(level="VERBOSE", force=True)


def test_configure_logging_invalid_format() -> None:
    """``configure_logging`` raises ``ValueError`` for unknown log formats."""
    with pytest.raises(ValueError, match="Unknown LOG_FORMAT"):
        configure_logging(fmt="xml", force=True)


def test_json_formatter_carries_scope_and_event() -> None:
    """The JSON formatter emits the scope id and ``extra`` event fields."""
    record = logging.LogRecord("listingsync.test", logging.INFO, __file__, 1, "hello", None, None)
    record.scope_id = "abcd1234"
    record.event = "LISTINGS_LOAD_COMPLETE"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "hello"
    assert payload["extra"]["scope_id"] == "abcd1234"
    assert payload["extra"]["event"] == "LISTINGS_LOAD_COMPLETE"


def test_scope_id_defaults_to_dash() -> None:
    """Outside any screen scope the context variable reads ``"-"``."""
    assert SCOPE_ID_CTX.get() == "-"


@pytest.mark.usefixtures("clean_env")
def test_main_exits_cleanly_on_invalid_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """An out-of-range setting ends the CLI with exit code 1, not a traceback."""
    monkeypatch.setenv("BACKEND_MAX_ATTEMPTS", "0")
    monkeypatch.setattr(sys, "argv", ["listingsync", "list"])

    with patch("listingsync.__main__.asyncio.run") as run, pytest.raises(SystemExit) as exc_info:
        main()

    assert exc_info.value.code == 1
    run.assert_not_called()


# ---------------------------------------------------------------------------
# Exception taxonomy
# ---------------------------------------------------------------------------


def test_exception_hierarchy_base() -> None:
    """All custom exceptions are subclasses of ``ListingSyncError``."""
    for exc_class in (
        ConfigError,
        OperationTimeoutError,
        StorageError,
        StorageReadError,
        DraftNotFoundError,
        BackendError,
        BackendRequestError,
        BackendAuthError,
        BackendRateLimitError,
        BackendUnavailableError,
        BackendParseError,
        WorkflowError,
        ListingNotFoundError,
        ListingNotEditableError,
        StepValidationError,
        PublishNotAllowedError,
        PublishError,
        RemovalError,
        ConfirmationMismatchError,
    ):
        assert issubclass(exc_class, ListingSyncError), (
            f"{exc_class.__name__} is not a subclass of ListingSyncError"
        )


def test_exception_hierarchy_layers() -> None:
    """Layer-specific subclass relationships are correct."""
    assert issubclass(StorageReadError, StorageError)
    assert issubclass(DraftNotFoundError, StorageError)
    assert issubclass(BackendAuthError, BackendError)
    assert issubclass(BackendRateLimitError, BackendError)
    assert issubclass(BackendUnavailableError, BackendError)
    assert issubclass(StepValidationError, WorkflowError)
    assert issubclass(PublishError, WorkflowError)
    assert issubclass(ConfirmationMismatchError, RemovalError)


def test_backend_error_formats_message() -> None:
    """``BackendError`` includes the endpoint in its string representation."""
    exc = BackendRequestError("/market/list-property/", "HTTP 400: bad price", status_code=400)
    assert "/market/list-property/" in str(exc)
    assert "bad price" in str(exc)
    assert exc.status_code == 400


def test_rate_limit_carries_retry_after() -> None:
    """``BackendRateLimitError`` exposes the optional retry_after value."""
    exc = BackendRateLimitError("/market/", retry_after=45.0)
    assert exc.retry_after == 45.0
    assert BackendRateLimitError("/market/").retry_after is None


def test_step_validation_error_exposes_errors() -> None:
    """``StepValidationError`` keeps the field → message map."""
    exc = StepValidationError({"title": "Title is required."})
    assert exc.errors == {"title": "Title is required."}
    assert "title" in str(exc)


def test_publish_error_carries_server_id() -> None:
    exc = PublishError("abc", "boom", server_id=42)
    assert exc.listing_id == "abc"
    assert exc.server_id == 42


# ---------------------------------------------------------------------------
# Async harness
# ---------------------------------------------------------------------------


async def test_async_test_runs() -> None:
    """Simplest possible async test — confirms pytest-asyncio is operational."""
    await asyncio.sleep(0)
    assert True


async def test_async_exception_is_catchable() -> None:
    """Async tests can raise and catch custom exceptions correctly."""

    async def _failing_coro() -> None:
        raise BackendUnavailableError("/market/", "simulated failure")

    with pytest.raises(BackendUnavailableError, match="simulated failure"):
        await _failing_coro()
