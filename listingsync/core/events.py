"""Structured log event name constants for listingsync.

Every key transition emits a log record with an ``event`` field (passed via
``extra={"event": events.X}``).  In ``LOG_FORMAT=json`` mode the value
surfaces as ``extra.event``; in text mode the message is self-describing and
the event name is not interpolated.

Usage example::

    import logging
    from listingsync.core import events

    logger = logging.getLogger(__name__)

    logger.info("Listings loaded", extra={"event": events.LISTINGS_LOAD_COMPLETE})
"""

from __future__ import annotations

__all__ = [
    # Catalog load
    "LISTINGS_LOAD_START",
    "LISTINGS_LOAD_COMPLETE",
    "LISTINGS_LOAD_ABORT",
    # Remote fetch
    "REMOTE_FETCH_OK",
    "REMOTE_FETCH_ERROR",
    "REMOTE_RECORD_SKIPPED",
    # Draft store
    "DRAFT_STORE_READ_ERROR",
    "DRAFT_STORE_QUARANTINE",
    "DRAFT_CREATED",
    "DRAFT_UPSERTED",
    "DRAFT_REMOVED",
    # Aggregation
    "ORIGIN_MISMATCH",
    # Workflow
    "STEP_SAVED",
    "STEP_REJECTED",
    "LISTING_PUBLISHED",
    "PUBLISH_FAILED",
    # Removal
    "REMOTE_DELETE_OK",
    "REMOTE_DELETE_ERROR",
    "REMOVAL_REJECTED",
]

# ---------------------------------------------------------------------------
# Catalog load
# ---------------------------------------------------------------------------

#: Concurrent draft read + remote fetch started for a screen.
LISTINGS_LOAD_START = "LISTINGS_LOAD_START"

#: Both sources settled; fields: ``drafts``, ``remote``, ``remote_ok``.
LISTINGS_LOAD_COMPLETE = "LISTINGS_LOAD_COMPLETE"

#: Load cancelled (screen unmounted) or timed out.
LISTINGS_LOAD_ABORT = "LISTINGS_LOAD_ABORT"

# ---------------------------------------------------------------------------
# Remote fetch
# ---------------------------------------------------------------------------

#: Vendor's server listings fetched; fields: ``count``, ``skipped``.
REMOTE_FETCH_OK = "REMOTE_FETCH_OK"

#: Remote fetch failed; fields: ``error``.
REMOTE_FETCH_ERROR = "REMOTE_FETCH_ERROR"

#: One server record failed schema validation and was skipped.
REMOTE_RECORD_SKIPPED = "REMOTE_RECORD_SKIPPED"

# ---------------------------------------------------------------------------
# Draft store
# ---------------------------------------------------------------------------

#: Stored draft collection unreadable; treated as empty.
DRAFT_STORE_READ_ERROR = "DRAFT_STORE_READ_ERROR"

#: Unreadable payload copied aside before being overwritten.
DRAFT_STORE_QUARANTINE = "DRAFT_STORE_QUARANTINE"

#: Empty local draft created.
DRAFT_CREATED = "DRAFT_CREATED"

#: Draft record written (replace or append).
DRAFT_UPSERTED = "DRAFT_UPSERTED"

#: Draft record removed from the store.
DRAFT_REMOVED = "DRAFT_REMOVED"

# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

#: A record arrived in the wrong source collection and was dropped.
ORIGIN_MISMATCH = "ORIGIN_MISMATCH"

# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------

#: A step controller persisted its fields; fields: ``step``, ``completion``.
STEP_SAVED = "STEP_SAVED"

#: A step submission failed validation; fields: ``step``, ``errors``.
STEP_REJECTED = "STEP_REJECTED"

#: A draft was promoted to a server listing; fields: ``server_id``.
LISTING_PUBLISHED = "LISTING_PUBLISHED"

#: Publishing failed part-way; fields: ``server_id`` (may be ``None``).
PUBLISH_FAILED = "PUBLISH_FAILED"

# ---------------------------------------------------------------------------
# Removal
# ---------------------------------------------------------------------------

#: Server listing deleted; fields: ``server_id``.
REMOTE_DELETE_OK = "REMOTE_DELETE_OK"

#: Server delete failed; fields: ``server_id``, ``error``.
REMOTE_DELETE_ERROR = "REMOTE_DELETE_ERROR"

#: Local removal refused (confirmation token mismatch).
REMOVAL_REJECTED = "REMOVAL_REJECTED"
