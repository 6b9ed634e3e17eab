"""Process-wide logging setup for listingsync.

:func:`configure_logging` runs once, from the CLI entry point, before the
engine is imported.  Modules log through ``logging.getLogger(__name__)`` and
never touch handlers themselves.

``LOG_LEVEL`` and ``LOG_FORMAT`` supply the defaults for the two arguments.
Each line carries the id of the screen scope it was logged from, so one
screen's load or save can be followed through the output.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Callable
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Final

__all__ = ["configure_logging", "JsonFormatter", "SCOPE_ID_CTX", "ScopeContextFilter"]

logger = logging.getLogger(__name__)

#: Id of the screen scope running the current task; ``"-"`` outside any scope.
#: :class:`~listingsync.engine.scope.ScreenScope` sets it, and tasks it
#: spawns inherit it.
SCOPE_ID_CTX: ContextVar[str] = ContextVar("scope_id", default="-")

_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

#: Third-party loggers held at WARNING unless DEBUG output is requested.
_CHATTY_LOGGERS: Final[tuple[str, ...]] = ("httpx", "httpcore", "asyncio", "aiosqlite")

#: Attribute names present on every record; anything else arrived via ``extra=``.
_BUILTIN_RECORD_KEYS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}


class ScopeContextFilter(logging.Filter):
    """Copy :data:`SCOPE_ID_CTX` onto each record as ``scope_id``."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.scope_id = SCOPE_ID_CTX.get()
        return True


class JsonFormatter(logging.Formatter):
    """Render each record as one line of JSON.

    Keys are ``ts`` (UTC, millisecond precision), ``level``, ``logger``,
    ``message`` and ``extra``.  ``extra`` holds the fields a call passed with
    ``extra=`` together with the ``scope_id`` set by
    :class:`ScopeContextFilter`.  ``exc_info`` and ``stack_info`` appear only
    when the record has them.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        created = datetime.fromtimestamp(record.created, tz=UTC)
        payload: dict[str, Any] = {
            "ts": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "extra": {
                key: value
                for key, value in vars(record).items()
                if key not in _BUILTIN_RECORD_KEYS
            },
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(payload, default=str)


def _text_formatter() -> logging.Formatter:
    return logging.Formatter(
        fmt="%(asctime)s %(levelname)-8s [%(scope_id)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


_FORMATTERS: Final[dict[str, Callable[[], logging.Formatter]]] = {
    "text": _text_formatter,
    "json": JsonFormatter,
}


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Send all records to one stderr handler on the root logger.

    Args:
        level: Level name; ``$LOG_LEVEL`` or ``INFO`` when omitted.
        fmt: ``"text"`` or ``"json"``; ``$LOG_FORMAT`` or ``text`` when omitted.
        force: Replace a handler installed by an earlier call.  Otherwise a
            repeat call only changes the root level.

    Raises:
        ValueError: For a level or format name that is not recognised.
    """
    level_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    fmt_name = (fmt or os.environ.get("LOG_FORMAT") or "text").lower()
    if level_name not in _LEVELS:
        raise ValueError(f"Unknown LOG_LEVEL {level_name!r}; use one of {', '.join(_LEVELS)}")
    if fmt_name not in _FORMATTERS:
        raise ValueError(f"Unknown LOG_FORMAT {fmt_name!r}; use one of {', '.join(_FORMATTERS)}")

    root = logging.getLogger()
    root.setLevel(level_name)
    if root.handlers and not force:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level_name)
    handler.addFilter(ScopeContextFilter())
    handler.setFormatter(_FORMATTERS[fmt_name]())
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)

    chatty_level = logging.DEBUG if level_name == "DEBUG" else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)
    logger.debug("Logging configured (level=%s, format=%s).", level_name, fmt_name)
