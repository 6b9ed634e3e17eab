"""Listing id strategy for listingsync.

This module defines the **id contract** that keeps the two id spaces
(local drafts and server listings) disjoint:

Local contract
--------------
A draft created on the device gets an opaque, random token from
:func:`new_local_id` (a ``uuid4`` hex string).  Local ids never carry the
remote prefix.

Remote contract
---------------
A listing fetched from the backend is addressed client-side as
``"backend_<server id>"``.  The prefix is applied by the normaliser and is
never sent to the server: mutation calls (delete, publish follow-ups) use
the bare numeric id recovered with :func:`server_id_from_listing_id`.

Summary
-------
+-----------+---------------------------------+---------------------------------+
| Origin    | ``listing.id``                  | Server call uses                |
+===========+=================================+=================================+
| local     | ``"3f2b…"`` (uuid4 hex)         | nothing (no server record)      |
+-----------+---------------------------------+---------------------------------+
| remote    | ``"backend_42"``                | ``42``                          |
+-----------+---------------------------------+---------------------------------+

Typical usage::

    from listingsync.core.ids import remote_listing_id, server_id_from_listing_id

    listing_id = remote_listing_id(42)            # "backend_42"
    server_id_from_listing_id(listing_id)         # 42
"""

from __future__ import annotations

import logging
import uuid
from typing import Final

__all__ = [
    "REMOTE_ID_PREFIX",
    "new_local_id",
    "remote_listing_id",
    "is_remote_listing_id",
    "server_id_from_listing_id",
]

logger = logging.getLogger(__name__)

#: Prefix marking a listing id as belonging to the server id space.
REMOTE_ID_PREFIX: Final[str] = "backend_"


def new_local_id() -> str:
    """Return a fresh random id for a local draft."""
    return uuid.uuid4().hex


def remote_listing_id(server_id: int | str) -> str:
    """Build the client-side id for a server record.

    Args:
        server_id: The numeric id issued by the backend.

    Returns:
        ``"backend_<server_id>"``.

    Raises:
        ValueError: If *server_id* is not a non-negative integer.
    """
    text = str(server_id).strip()
    if not text.isdigit():
        raise ValueError(f"server_id must be a non-negative integer, got {server_id!r}")
    return f"{REMOTE_ID_PREFIX}{int(text)}"


def is_remote_listing_id(listing_id: str) -> bool:
    """Return ``True`` if *listing_id* lives in the server id space."""
    return listing_id.startswith(REMOTE_ID_PREFIX)


def server_id_from_listing_id(listing_id: str) -> int | None:
    """Recover the numeric server id from a ``backend_<id>`` listing id.

    Returns:
        The server id, or ``None`` when *listing_id* is a local id or the
        suffix is not numeric.
    """
    if not is_remote_listing_id(listing_id):
        return None
    suffix = listing_id[len(REMOTE_ID_PREFIX) :]
    if not suffix.isdigit():
        logger.debug("Remote-prefixed id %r has a non-numeric suffix.", listing_id)
        return None
    return int(suffix)
