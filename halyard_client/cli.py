"""Command-line interface for the Halyard lending client."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import load_config
from .engine.classifier import classify
from .errors import HalyardError
from .logging_setup import configure_logging
from .models import Action
from .services import LendingClient

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="halyard-client",
        description="Halyard lending client",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("markets", help="Reserve totals, utilization and APYs")
    sub.add_parser("position", help="Live balances and available-to-borrow")

    for action in Action:
        action_parser = sub.add_parser(action.value, help=f"{action.value.capitalize()} an asset")
        action_parser.add_argument("symbol", help="Token symbol, e.g. USDC")
        action_parser.add_argument("amount", help="Amount in token units, e.g. 12.5")

    return parser


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command; returns the exit status."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    client = LendingClient(config)

    try:
        if args.command == "markets":
            print(await client.markets_report())
            return 0
        if args.command == "position":
            print(await client.position_report())
            return 0
        run = await client.transact(Action(args.command), args.symbol, args.amount)
    except HalyardError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"❌ {classify(str(e)).message}", file=sys.stderr)
        return 1

    if run.outcome == "confirmed":
        print(f"✅ {args.command} confirmed: {run.write_hash}")
        return 0
    if run.outcome == "failed" and run.error:
        print(f"❌ {run.error.message}", file=sys.stderr)
    else:
        print(f"⏸ {args.command} {run.outcome} (tx: {run.pending_hash or 'none'})", file=sys.stderr)
    return 1


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(_run(args)))
