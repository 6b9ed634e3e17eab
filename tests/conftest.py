"""Shared pytest fixtures and configuration for the Listingsync test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across the unit tests.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncGenerator

import aiosqlite
import pytest
from pydantic_settings import SettingsConfigDict

from listingsync.core import configure_logging
from listingsync.core.settings import Settings
from listingsync.storage.database import create_schema
from listingsync.storage.drafts import DraftStore
from listingsync.storage.kv import KeyValueStore


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test.

    ``force=True`` applies the configuration even when pytest's own
    ``log_cli`` handler is already present.
    """
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove all Listingsync env vars for the duration of a test.

    Also disables pydantic-settings `.env` file loading so that credentials
    present in a local `.env` file do not leak into Settings isolation tests.
    """
    sensitive_prefixes = (
        "VENDOR_",
        "AUTH_",
        "BACKEND_",
        "LOAD_",
        "REMOVAL_",
        "DATABASE_",
        "DRAFTS_",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if any(key.startswith(prefix) for prefix in sensitive_prefixes):
            monkeypatch.delenv(key, raising=False)

    # pydantic-settings reads the file directly rather than via os.environ.
    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@pytest.fixture()
async def db() -> AsyncGenerator[aiosqlite.Connection, None]:
    """In-memory SQLite connection with the schema applied."""
    async with aiosqlite.connect(":memory:") as conn:
        conn.row_factory = aiosqlite.Row
        await create_schema(conn)
        yield conn


@pytest.fixture()
def kv(db: aiosqlite.Connection) -> KeyValueStore:
    return KeyValueStore(db)


@pytest.fixture()
def drafts(kv: KeyValueStore) -> DraftStore:
    return DraftStore(kv)


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a ``logging.Logger`` scoped to the running test."""
    return logging.getLogger("tests")
