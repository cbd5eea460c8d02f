"""Command-line interface for the flash-borrow leverage keeper."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .config import AppConfig, load_config
from .logging_setup import configure_logging
from .services import Keeper
from .services.keeper import format_ratio


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="flashlever",
        description="Flash-borrow leveraged position keeper",
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

    sub.add_parser("validate", help="Load and validate the configuration")
    sub.add_parser("status", help="Print the current position report")
    sub.add_parser("tend", help="Run a single keeper cycle")

    keeper_parser = sub.add_parser("keeper", help="Continuous keeper loop")
    keeper_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Check interval in minutes (overrides config)",
    )

    return parser


def _print_params(config: AppConfig) -> None:
    strategy = config.strategy
    params = strategy.leverage
    print(f"Strategy: {strategy.collateral}/{strategy.asset} ({config.market.kind} market)")
    if params.is_idle:
        print("Leverage: idle")
    else:
        print(
            f"Leverage: target {format_ratio(params.target_leverage_ratio)}"
            f" ± {format_ratio(params.leverage_buffer)},"
            f" max {format_ratio(params.max_leverage_ratio)}"
        )
    print(f"Slippage: {strategy.limits.slippage_bps} bps")


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)

    if args.command == "validate":
        _print_params(config)
        print("Configuration OK")
        return

    keeper = Keeper(config)
    if args.command == "status":
        await keeper.refresh_price()
        print(keeper.format_report(keeper.controller.report()))
    elif args.command == "tend":
        tended = await keeper.check_and_tend()
        print("Tended" if tended else "Tend not triggered")
    elif args.command == "keeper":
        await keeper.run_continuous(args.interval)
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    asyncio.run(_run(args))
