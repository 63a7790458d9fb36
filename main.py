# main.py

"""Entry point for the cruise_watch price tracker CLI."""

import argparse
import asyncio
import logging
import sys

from cruise_watch.config.logging_config import setup_logging

logger = logging.getLogger("cruise_watch.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="cruise_watch",
        description="Track cruise offer prices over time.",
        epilog="With no action the watch list is printed.",
    )
    actions = parser.add_mutually_exclusive_group()
    actions.add_argument(
        "-w",
        "--watch",
        metavar="OFFER_ID",
        default=None,
        help="Fetch an offer from Cruiseway and start watching it.",
    )
    actions.add_argument(
        "-u",
        "--unwatch",
        metavar="OFFER_ID",
        default=None,
        help="Stop watching an offer and drop its price history.",
    )
    actions.add_argument(
        "-r",
        "--refresh",
        action="store_true",
        default=False,
        help="Record a fresh price for every watched offer.",
    )
    actions.add_argument(
        "-l",
        "--list",
        action="store_true",
        default=False,
        dest="list_watches",
        help="Show watched offers with price analytics (default).",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="table",
        dest="output_format",
        help="Output format for the watch list (default: table).",
    )
    return parser


def main() -> None:
    """Route to the requested watch-list command."""
    log_file = setup_logging()
    logger.info("cruise_watch starting, log file: %s", log_file)

    parser = _build_parser()
    args = parser.parse_args()

    from cruise_watch.cli.runner import (
        cli_list,
        cli_refresh,
        cli_unwatch,
        cli_watch,
    )

    try:
        if args.watch is not None:
            exit_code = cli_watch(args.watch)
        elif args.unwatch is not None:
            exit_code = cli_unwatch(args.unwatch)
        elif args.refresh:
            exit_code = asyncio.run(cli_refresh())
        else:
            exit_code = cli_list(args.output_format)
    except Exception:
        logger.critical("Fatal error during CLI run", exc_info=True)
        raise
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
