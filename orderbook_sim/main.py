#!/usr/bin/env python3
"""
Orderbook Sim - live order books and order impact simulation for OKX, Bybit and Deribit.

Usage:
    orderbook-sim view OKX BTC-USDT
    orderbook-sim view Bybit BTCUSDT --side buy --quantity 2
    orderbook-sim simulate Deribit BTC-PERPETUAL --side sell --quantity 5
    orderbook-sim simulate OKX BTC-USDT --type limit --price 42950 --quantity 1 --mock

Controls (view):
    q - Quit
    s - Simulate the configured order against the current book
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional

from loguru import logger

from .types import OrderSide, OrderSimulation, OrderType, TimingDelay, Venue

DEFAULT_LOG_FILE = "orderbook-sim.log"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Route logs to log_file if given, else stderr."""
    logger.remove()
    if log_file:
        logger.add(log_file, level=level, rotation="10 MB", enqueue=True)
    else:
        logger.add(sys.stderr, level=level)


def parse_venue(text: str) -> Venue:
    for venue in Venue:
        if venue.value.lower() == text.lower():
            return venue
    raise argparse.ArgumentTypeError(
        f"unknown venue {text!r} (choose from {', '.join(v.value for v in Venue)})"
    )


def build_simulation(args: argparse.Namespace) -> Optional[OrderSimulation]:
    """Order request from CLI flags. None when no quantity was given."""
    if args.quantity is None:
        return None
    return OrderSimulation(
        venue=args.venue,
        symbol=args.symbol,
        order_type=OrderType.LIMIT if args.type == "limit" else OrderType.MARKET,
        side=OrderSide.SELL if args.side == "sell" else OrderSide.BUY,
        quantity=args.quantity,
        price=args.price,
        timing=TimingDelay(args.timing),
    )


async def view(args: argparse.Namespace) -> None:
    """Stream one book into the TUI."""

    # Import here to avoid slow startup for --help
    import aiohttp

    from .datafeed.adapters import build_feeds
    from .datafeed.manager import ExchangeManager
    from .errors import OrderbookSimError
    from .ui.book_view import run_ui

    async with aiohttp.ClientSession() as session:
        manager = ExchangeManager(build_feeds(session, mock=args.mock, seed=args.seed))
        try:
            try:
                await manager.get_orderbook(args.venue, args.symbol)
            except OrderbookSimError as e:
                # The stream will still deliver a book once it connects
                logger.warning("Initial snapshot failed: {}", e)

            subscription = await manager.subscribe(args.venue, args.symbol)
            await run_ui(manager, subscription, build_simulation(args), args.levels)
        finally:
            await manager.close()


async def simulate(args: argparse.Namespace) -> int:
    """Fetch one snapshot, simulate the order and print the result."""
    import aiohttp
    from rich.console import Console

    from .datafeed.adapters import build_feeds
    from .datafeed.manager import ExchangeManager
    from .errors import OrderbookSimError
    from .ui.book_view import render_ladder, render_simulation

    console = Console()
    request = build_simulation(args)

    async with aiohttp.ClientSession() as session:
        manager = ExchangeManager(build_feeds(session, mock=args.mock, seed=args.seed))
        try:
            book = await manager.get_orderbook(args.venue, args.symbol)
            result = await manager.simulate_order(request)
        except OrderbookSimError as e:
            console.print(f"[red]Error:[/red] {e}")
            return 1
        finally:
            await manager.close()

    if args.show_book:
        console.print(render_ladder(book, args.levels, result.affected_levels))
    console.print(render_simulation(result))
    return 0


def add_order_arguments(parser: argparse.ArgumentParser, required: bool) -> None:
    parser.add_argument(
        "--side",
        choices=("buy", "sell"),
        default="buy",
        help="Order side (default: buy)"
    )

    parser.add_argument(
        "--type",
        choices=("market", "limit"),
        default="market",
        help="Order type (default: market)"
    )

    parser.add_argument(
        "--quantity",
        type=float,
        required=required,
        help="Order quantity in base units"
    )

    parser.add_argument(
        "--price",
        type=float,
        default=None,
        help="Limit price (limit orders only)"
    )

    parser.add_argument(
        "--timing",
        choices=[t.value for t in TimingDelay],
        default=TimingDelay.IMMEDIATE.value,
        help="Delay before the simulation is evaluated (default: immediate)"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orderbook-sim",
        description="Orderbook Sim - live order books and order impact simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    orderbook-sim view OKX BTC-USDT
    orderbook-sim view Bybit ETHUSDT --mock --side sell --quantity 3
    orderbook-sim simulate Deribit BTC-PERPETUAL --quantity 50000 --timing 5s
        """
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Log level (default: INFO)"
    )

    parser.add_argument(
        "--log-file",
        default=None,
        help=f"Log file (default: stderr, or {DEFAULT_LOG_FILE} while the viewer runs)"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("view", "Stream a live book into the terminal viewer"),
        ("simulate", "Simulate one order against a fresh snapshot"),
    ):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument("venue", type=parse_venue, help="OKX, Bybit or Deribit")
        sub.add_argument("symbol", help="Venue symbol, e.g. BTC-USDT or BTCUSDT")
        sub.add_argument(
            "--mock",
            action="store_true",
            help="Use synthetic books instead of connecting to the venue"
        )
        sub.add_argument(
            "--seed",
            type=int,
            default=None,
            help="Random seed for --mock"
        )
        sub.add_argument(
            "--levels",
            type=int,
            default=15,
            help="Number of price levels to show per side (default: 15)"
        )
        add_order_arguments(sub, required=(name == "simulate"))

    commands.choices["simulate"].add_argument(
        "--show-book",
        action="store_true",
        help="Also print the ladder with the walked levels highlighted"
    )

    return parser


def cli(argv: Optional[list[str]] = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "view":
        # stderr output would corrupt the TUI
        configure_logging(args.log_level, args.log_file or DEFAULT_LOG_FILE)
        runner = view(args)
    else:
        configure_logging(args.log_level, args.log_file)
        runner = simulate(args)

    try:
        code = asyncio.run(runner)
    except KeyboardInterrupt:
        print("\nShutdown requested.")
        sys.exit(0)

    sys.exit(code or 0)


if __name__ == "__main__":
    cli()
