"""
Order book ladder TUI using Textual.

Displays:
- Top: venue/symbol, best bid/ask, spread, imbalance, connection status
- Middle: price ladder (asks above, bids below) with cumulative totals and depth bars
- Bottom: result of the last order simulation, with the walked levels highlighted

Rendering notes:
- Renders at most one book per refresh tick; older pending books are skipped
- Rich renderables are rebuilt from immutable books, no shared mutable state
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Optional

from rich.console import Group, RenderableType
from rich.style import Style
from rich.table import Table
from rich.text import Text

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import Footer, Static

from .. import config
from ..engine.depth import compute_depth, compute_imbalance, is_stale, spread_bps
from ..errors import NoBookDataError
from ..types import ConnectionStatus, DominantSide, OrderbookLevel

if TYPE_CHECKING:
    from ..datafeed.manager import BookSubscription, ExchangeManager
    from ..types import Orderbook, OrderSimulation, OrderSimulationResult

# Color scheme (dark theme)
BID_COLOR = "#22c55e"      # Green
ASK_COLOR = "#ef4444"      # Red
PRICE_COLOR = "#f8fafc"
HEADER_COLOR = "#94a3b8"
HIGHLIGHT_COLOR = "#facc15"
BAR_BG = "#1e293b"

STATUS_COLORS = {
    ConnectionStatus.CONNECTED: BID_COLOR,
    ConnectionStatus.CONNECTING: HIGHLIGHT_COLOR,
    ConnectionStatus.RECONNECTING: HIGHLIGHT_COLOR,
    ConnectionStatus.DISCONNECTED: ASK_COLOR,
}


def format_price(price: float) -> str:
    """Decimal places scale down with price magnitude."""
    if price > 1000:
        decimals = 0
    elif price > 100:
        decimals = 1
    elif price > 10:
        decimals = 2
    elif price > 1:
        decimals = 3
    elif price > 0.1:
        decimals = 4
    elif price > 0.01:
        decimals = 5
    elif price > 0.001:
        decimals = 6
    else:
        decimals = 8
    return f"{price:.{decimals}f}"


def format_quantity(qty: float) -> str:
    if qty >= 1000:
        return f"{qty/1000:.1f}K"
    elif qty >= 100:
        return f"{qty:.0f}"
    elif qty >= 10:
        return f"{qty:.1f}"
    elif qty >= 1:
        return f"{qty:.2f}"
    else:
        return f"{qty:.4f}"


def make_bar(value: float, max_value: float, width: int, color: str) -> Text:
    """Create a horizontal bar using block characters."""
    if max_value <= 0:
        return Text(" " * width)

    fill_ratio = min(1.0, value / max_value)
    fill_width = int(fill_ratio * width)

    bar = "█" * fill_width + " " * (width - fill_width)
    return Text(bar, style=Style(color=color, bgcolor=BAR_BG))


def render_ladder(
    book: Orderbook,
    levels: int = 15,
    highlight: tuple[OrderbookLevel, ...] = (),
) -> Table:
    """Asks (worst at top) over bids, with cumulative total bars."""
    depth = compute_depth(book.bids[:levels], book.asks[:levels])
    highlighted = {level.price for level in highlight}

    table = Table(
        show_header=True,
        header_style=HEADER_COLOR,
        box=None,
        padding=(0, 1),
        collapse_padding=True,
    )
    table.add_column("Total", justify="right", width=10)
    table.add_column("Depth", justify="left", width=16, no_wrap=True)
    table.add_column("Price", justify="center", width=14)
    table.add_column("Qty", justify="left", width=10)

    for point in reversed(depth.asks):
        price_style = HIGHLIGHT_COLOR if point.price in highlighted else ASK_COLOR
        table.add_row(
            Text(format_quantity(point.cumulative), style="dim"),
            make_bar(point.cumulative, depth.max_cumulative, 16, ASK_COLOR),
            Text(format_price(point.price), style=price_style),
            Text(format_quantity(point.volume), style=ASK_COLOR),
        )

    table.add_row(
        Text(""), Text(""),
        Text(f"spread {format_price(depth.spread)}", style="dim"),
        Text(""),
    )

    for point in depth.bids:
        price_style = HIGHLIGHT_COLOR if point.price in highlighted else BID_COLOR
        table.add_row(
            Text(format_quantity(point.cumulative), style="dim"),
            make_bar(point.cumulative, depth.max_cumulative, 16, BID_COLOR),
            Text(format_price(point.price), style=price_style),
            Text(format_quantity(point.volume), style=BID_COLOR),
        )

    return table


def render_simulation(result: OrderSimulationResult) -> RenderableType:
    """Metrics table plus warnings for one simulation."""
    sim = result.simulation
    metrics = result.impact_metrics

    table = Table(title="Order Simulation", title_style="bold", box=None, padding=(0, 1))
    table.add_column("Metric", style=HEADER_COLOR)
    table.add_column("Value", justify="right")

    order = f"{sim.order_type.value} {sim.side.value} {format_quantity(sim.quantity)}"
    if sim.price is not None:
        order += f" @ {format_price(sim.price)}"
    table.add_row("Order", order)
    table.add_row("Venue", f"{sim.venue.value} {sim.symbol}")
    table.add_row("Fill", f"{metrics.estimated_fill_percentage:.1f}%")
    table.add_row("Avg fill price", format_price(metrics.average_fill_price))
    table.add_row("Slippage", f"{metrics.slippage:.3f}%")
    table.add_row("Market impact", f"{metrics.market_impact:.2f}%")
    if metrics.time_to_fill is not None:
        table.add_row("Time to fill", f"{metrics.time_to_fill:.1f}s")
    table.add_row("Levels walked", str(len(result.affected_levels)))

    warnings = [Text(f"! {w}", style=HIGHLIGHT_COLOR) for w in result.warnings]
    return Group(table, *warnings)


class LadderTable(Static):
    """Price ladder widget."""

    DEFAULT_CSS = """
    LadderTable {
        width: 100%;
        height: auto;
    }
    """

    def __init__(self, levels: int = 15) -> None:
        super().__init__()
        self.levels = levels
        self._book: Optional[Orderbook] = None
        self._highlight: tuple[OrderbookLevel, ...] = ()

    def update_book(self, book: Orderbook, highlight: tuple[OrderbookLevel, ...] = ()) -> None:
        self._book = book
        self._highlight = highlight
        self.refresh()

    def render(self) -> RenderableType:
        if self._book is None:
            return Text("Waiting for data...", style="dim")
        if not self._book.bids and not self._book.asks:
            return Text("No levels", style="dim")
        return render_ladder(self._book, self.levels, self._highlight)


class StatusBar(Static):
    """Status bar showing venue, symbol, spread, imbalance and connection state."""

    DEFAULT_CSS = """
    StatusBar {
        dock: top;
        height: 3;
        padding: 0 2;
        background: #0f172a;
    }
    """

    def __init__(self) -> None:
        super().__init__()
        self._book: Optional[Orderbook] = None
        self._status = ConnectionStatus.CONNECTING

    def update_book(self, book: Orderbook, status: ConnectionStatus) -> None:
        self._book = book
        self._status = status
        self.refresh()

    def update_status(self, status: ConnectionStatus) -> None:
        self._status = status
        self.refresh()

    def render(self) -> RenderableType:
        status = Text(f" {self._status.value} ", style=f"bold black on {STATUS_COLORS[self._status]}")
        if self._book is None:
            return Text.assemble(status, Text("  Connecting...", style="dim"))

        book = self._book
        imbalance = compute_imbalance(book.bids, book.asks)
        imbalance_color = {
            DominantSide.BID: BID_COLOR,
            DominantSide.ASK: ASK_COLOR,
            DominantSide.BALANCED: PRICE_COLOR,
        }[imbalance.dominant_side]

        parts = [
            Text(f" {book.venue.value} {book.symbol} ", style="bold white on #1e40af"),
            Text("  "),
            status,
            Text("  Bid: ", style="dim"),
            Text(format_price(book.best_bid), style=BID_COLOR),
            Text("  Ask: ", style="dim"),
            Text(format_price(book.best_ask), style=ASK_COLOR),
            Text("  Spread: ", style="dim"),
            Text(f"{spread_bps(book):.1f}bps", style="yellow"),
            Text("  Imbalance: ", style="dim"),
            Text(f"{imbalance.ratio:+.2f} ({imbalance.dominant_side.value})", style=imbalance_color),
        ]
        if is_stale(book, config.STALE_AFTER_MS):
            parts.append(Text("  STALE", style=f"bold {ASK_COLOR}"))

        return Text.assemble(*parts)


class SimulationPanel(Static):
    """Latest simulation result."""

    def __init__(self) -> None:
        super().__init__()
        self._result: Optional[OrderSimulationResult] = None
        self._error: Optional[str] = None

    def update_result(self, result: OrderSimulationResult) -> None:
        self._result = result
        self._error = None
        self.refresh()

    def update_error(self, message: str) -> None:
        self._error = message
        self.refresh()

    def render(self) -> RenderableType:
        if self._error is not None:
            return Text(self._error, style=ASK_COLOR)
        if self._result is None:
            return Text("Press 's' to simulate", style="dim")
        return render_simulation(self._result)


class BookApp(App):
    """Order book viewer with optional live order simulation."""

    CSS = """
    Screen {
        background: #0f172a;
    }

    #main-container {
        width: 100%;
        height: 100%;
        padding: 1 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("s", "simulate", "Simulate"),
    ]

    def __init__(
        self,
        manager: ExchangeManager,
        subscription: BookSubscription,
        simulation: Optional[OrderSimulation] = None,
        levels: int = 15,
    ) -> None:
        super().__init__()
        self.manager = manager
        self.subscription = subscription
        self.simulation = simulation
        self._status_bar = StatusBar()
        self._ladder = LadderTable(levels)
        self._sim_panel = SimulationPanel()
        self._highlight: tuple[OrderbookLevel, ...] = ()

    def compose(self) -> ComposeResult:
        yield self._status_bar
        yield Container(self._ladder, self._sim_panel, id="main-container")
        yield Footer()

    async def on_mount(self) -> None:
        """Start the book consumer task."""
        self.run_worker(self._consume_books(), exclusive=True)

    async def _consume_books(self) -> None:
        """Consume books from the subscription and update the UI."""
        while True:
            try:
                book = await asyncio.wait_for(self.subscription.get(), timeout=1.0)
            except asyncio.TimeoutError:
                self._status_bar.update_status(self.subscription.status)
                continue
            except asyncio.CancelledError:
                break

            if book is None:
                self._status_bar.update_status(self.subscription.status)
                self._sim_panel.update_error("Stream disconnected")
                break

            self._status_bar.update_book(book, self.subscription.status)
            self._ladder.update_book(book, self._highlight)

    async def action_simulate(self) -> None:
        """Run the configured simulation against the current book (bound to 's')."""
        if self.simulation is None:
            self._sim_panel.update_error("No order configured (see --side/--quantity)")
            return
        try:
            result = await self.manager.simulate_order(self.simulation)
        except NoBookDataError as exc:
            self._sim_panel.update_error(str(exc))
            return
        self._highlight = result.affected_levels
        self._sim_panel.update_result(result)
        self._ladder.update_book(result.orderbook, self._highlight)


async def run_ui(
    manager: ExchangeManager,
    subscription: BookSubscription,
    simulation: Optional[OrderSimulation] = None,
    levels: int = 15,
) -> None:
    """Run the TUI application."""
    app = BookApp(manager, subscription, simulation, levels)
    await app.run_async()
