"""Listingsync command-line entry-point.

Usage:
    python -m listingsync [--log-level LEVEL] [--log-format FORMAT] COMMAND

Commands:
    list     Show drafts and server listings (``--category``, ``--status``,
             ``--query`` filter the index).
    new      Create an empty local draft.
    show     Show one listing and its step states.
    remove   Remove a listing (needs ``--confirm REMOVE``).
    publish  Publish a complete draft to the backend.

The engine lives in ``listingsync.engine``.  This module calls
``configure_logging()`` first, then wires a session from
:class:`~listingsync.core.settings.Settings` and runs one command.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from pydantic import ValidationError

from listingsync.core import configure_logging
from listingsync.core.exceptions import ConfigError
from listingsync.core.models import ListingCategory, ListingStatus
from listingsync.core.query import ALL
from listingsync.core.settings import Settings

if TYPE_CHECKING:
    from listingsync.engine.screens import Notice
    from listingsync.engine.session import EngineSession


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="listingsync",
        description="Manage marketplace listings across local drafts and the backend.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    list_cmd = commands.add_parser("list", help="Show drafts and server listings.")
    list_cmd.add_argument(
        "--category", default=ALL, choices=[ALL, *(c.value for c in ListingCategory)]
    )
    list_cmd.add_argument(
        "--status", default=ALL, choices=[ALL, *(s.value for s in ListingStatus)]
    )
    list_cmd.add_argument("--query", default="", help="Match on name or location.")

    new_cmd = commands.add_parser("new", help="Create an empty local draft.")
    new_cmd.add_argument(
        "--category",
        default=ListingCategory.CORPORATE.value,
        choices=[c.value for c in ListingCategory],
    )

    show_cmd = commands.add_parser("show", help="Show one listing and its steps.")
    show_cmd.add_argument("listing_id")

    remove_cmd = commands.add_parser("remove", help="Remove a listing.")
    remove_cmd.add_argument("listing_id")
    remove_cmd.add_argument(
        "--confirm", default=None, metavar="TEXT", help="Confirmation word (REMOVE)."
    )
    remove_cmd.add_argument("--reason", default=None)

    publish_cmd = commands.add_parser("publish", help="Publish a complete draft.")
    publish_cmd.add_argument("listing_id")

    return parser


def _print_notice(notice: Notice) -> None:
    print(f"[{notice.level}] {notice.title}: {notice.message}")  # noqa: T201


async def _run_command(args: argparse.Namespace, session: EngineSession) -> int:
    from listingsync.core.query import ListingQuery  # noqa: PLC0415
    from listingsync.engine.aggregator import performance  # noqa: PLC0415
    from listingsync.engine.screens import NoticeLevel  # noqa: PLC0415

    if args.command == "list":
        async with session.listings_screen() as screen:
            query = ListingQuery(category=args.category, status=args.status, search=args.query)
            rows = await screen.load(query)
            if screen.notice is not None:
                _print_notice(screen.notice)
            for row in rows:
                listing = row.listing
                print(  # noqa: T201
                    f"{listing.id:<34} {listing.status:<9} {row.progress.completion_percentage:>3}%  "
                    f"{listing.name or '(untitled)'} | {listing.location}"
                )
            print(f"{len(rows)} listing(s)")  # noqa: T201
        return 0

    if args.command == "new":
        async with session.listings_screen() as screen:
            draft = await screen.create_listing(ListingCategory(args.category))
            if draft is None:
                if screen.notice is not None:
                    _print_notice(screen.notice)
                return 1
            print(draft.id)  # noqa: T201
        return 0

    if args.command == "show":
        async with session.workflow_screen(args.listing_id) as workflow:
            notice = await workflow.load()
            if notice is not None or workflow.listing is None:
                if notice is not None:
                    _print_notice(notice)
                return 1
            listing = workflow.listing
            stats = performance(listing)
            print(f"{listing.id}: {listing.name or '(untitled)'} [{listing.status}]")  # noqa: T201
            for state in workflow.steps:
                mark = "x" if state.completed else " "
                print(f"  [{mark}] {state.label}")  # noqa: T201
            print(  # noqa: T201
                f"  {workflow.progress.summary if workflow.progress else ''}; "
                f"resume at {workflow.resume_step.label}"
            )
            print(  # noqa: T201
                f"  views={stats.views} inquiries={stats.inquiries} bookmarks={stats.bookmarks}"
            )
        return 0

    if args.command == "remove":
        async with session.listings_screen() as screen:
            await screen.load()
            notice = await screen.remove(
                args.listing_id, confirmation=args.confirm, reason=args.reason
            )
            _print_notice(notice)
        return 0 if notice.level is NoticeLevel.SUCCESS else 1

    async with session.workflow_screen(args.listing_id) as workflow:
        notice = await workflow.publish()
        _print_notice(notice)
    return 0 if notice.level is NoticeLevel.SUCCESS else 1


async def _main(args: argparse.Namespace, settings: Settings) -> int:
    from listingsync.engine.session import open_session  # noqa: PLC0415

    async with open_session(settings) as session:
        return await _run_command(args, session)


def main() -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    args = _build_parser().parse_args()

    # Configure logging before the engine is imported.
    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"listingsync: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger = logging.getLogger(__name__)
    logger.info("Listingsync starting up (command=%s)", args.command)

    try:
        settings = Settings()
        exit_code = asyncio.run(_main(args, settings))
    except ConfigError as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)
    except ValidationError as exc:
        logger.critical("Invalid settings: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting.")
        sys.exit(0)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
