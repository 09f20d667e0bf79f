"""Command-line interface for the DeFi position monitor."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys

from .config import load_config
from .logging_setup import configure_logging
from .services import Monitor
from .services.monitor import SIMULATION_ACTIONS


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="position-monitor",
        description="Event-sourced DeFi position monitor",
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

    sub.add_parser("check", help="Single position check with alerts")
    sub.add_parser("report", help="Generate daily position report")

    monitor_parser = sub.add_parser("monitor", help="Continuous monitoring loop")
    monitor_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Check interval in minutes (overrides config)",
    )

    simulate_parser = sub.add_parser("simulate", help="What-if health factor projection")
    simulate_parser.add_argument("wallet", help="Wallet label from config")
    simulate_parser.add_argument("protocol", help="Protocol name from config")
    simulate_parser.add_argument("action", choices=SIMULATION_ACTIONS)
    simulate_parser.add_argument("asset", help="Asset symbol, e.g. SUI")
    simulate_parser.add_argument(
        "amount",
        type=float,
        help="Token amount, or percent change for the 'price' action",
    )

    history_parser = sub.add_parser("history", help="Print the event stream of an aggregate")
    history_parser.add_argument("aggregate_id", help="Position id or user id")

    return parser


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    monitor = Monitor(config)

    try:
        if args.command == "check":
            await monitor.check_and_alert()
        elif args.command == "report":
            await monitor.generate_daily_report()
        elif args.command == "monitor":
            await monitor.run_continuous(args.interval)
        elif args.command == "simulate":
            result = await monitor.simulate(
                args.wallet, args.protocol, args.action, args.asset, args.amount
            )
            print(json.dumps(result, indent=2))
        elif args.command == "history":
            for stored in await monitor.history(args.aggregate_id):
                print(json.dumps(stored.to_record()))
        else:
            build_parser().print_help()
            sys.exit(1)
    finally:
        await monitor.close()


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    asyncio.run(_run(args))
