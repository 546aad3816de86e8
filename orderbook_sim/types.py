"""
Data types for Orderbook Sim.

Notes:
- NamedTuple for immutable, memory-efficient structures. A book update never
  mutates a level in place; it produces a new Orderbook with new level tuples.
- Level sequences inside an Orderbook are tuples so a stored book can be
  shared between the feed and any number of readers.
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple, Optional


class Venue(str, Enum):
    OKX = "OKX"
    BYBIT = "Bybit"
    DERIBIT = "Deribit"


class OrderType(str, Enum):
    MARKET = "Market"
    LIMIT = "Limit"


class OrderSide(str, Enum):
    BUY = "Buy"
    SELL = "Sell"


class TimingDelay(str, Enum):
    """Delay applied before a simulation is evaluated."""
    IMMEDIATE = "immediate"
    FIVE_SECONDS = "5s"
    TEN_SECONDS = "10s"
    THIRTY_SECONDS = "30s"

    @property
    def seconds(self) -> float:
        if self is TimingDelay.IMMEDIATE:
            return 0.0
        return float(self.value.rstrip("s"))


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"  # Terminal: reconnect attempts exhausted


class DominantSide(str, Enum):
    BID = "bid"
    ASK = "ask"
    BALANCED = "balanced"


class OrderbookLevel(NamedTuple):
    """Single canonical price level."""
    price: float
    quantity: float
    total: float = 0.0  # Cumulative quantity from best price down to this level


class Orderbook(NamedTuple):
    """
    Canonical order book for one (venue, symbol).

    bids are descending by price, asks ascending, both unique by price.
    """
    symbol: str
    venue: Venue
    timestamp: int                      # Epoch millis
    bids: tuple[OrderbookLevel, ...]
    asks: tuple[OrderbookLevel, ...]
    sequence: Optional[int] = None      # Venue update id, observability only

    @property
    def best_bid(self) -> float:
        """Best bid price. Returns 0.0 if no bids."""
        return self.bids[0].price if self.bids else 0.0

    @property
    def best_ask(self) -> float:
        """Best ask price. Returns 0.0 if no asks."""
        return self.asks[0].price if self.asks else 0.0

    @property
    def mid_price(self) -> float:
        """Mid price. Returns 0.0 unless both sides are present."""
        if self.bids and self.asks:
            return (self.best_bid + self.best_ask) / 2.0
        return 0.0

    @property
    def spread(self) -> float:
        if self.bids and self.asks:
            return self.best_ask - self.best_bid
        return 0.0


class OrderSimulation(NamedTuple):
    """Hypothetical order to evaluate against the current book."""
    venue: Venue
    symbol: str
    order_type: OrderType
    side: OrderSide
    quantity: float
    price: Optional[float] = None       # Required iff order_type is LIMIT
    timing: TimingDelay = TimingDelay.IMMEDIATE


class OrderImpactMetrics(NamedTuple):
    estimated_fill_percentage: float    # [0, 100]
    market_impact: float                # Percent of top-of-book quantity
    slippage: float                     # Percent vs best opposite price
    average_fill_price: float
    time_to_fill: Optional[float] = None  # Seconds, 0 for market orders


class SimulatedOrderPosition(NamedTuple):
    position: int                       # Index of the deepest level filled
    impact_metrics: OrderImpactMetrics
    affected_levels: tuple[OrderbookLevel, ...]


class OrderSimulationResult(NamedTuple):
    position: int
    impact_metrics: OrderImpactMetrics
    affected_levels: tuple[OrderbookLevel, ...]
    orderbook: Orderbook
    simulation: OrderSimulation
    warnings: tuple[str, ...]


class DepthPoint(NamedTuple):
    """One point on a cumulative depth curve."""
    price: float
    volume: float
    cumulative: float
    side: str  # 'bid' or 'ask'


class DepthChartData(NamedTuple):
    bids: list[DepthPoint]    # Best (highest) bid first
    asks: list[DepthPoint]    # Best (lowest) ask first
    max_cumulative: float
    spread: float


class OrderbookImbalance(NamedTuple):
    bid_total: float
    ask_total: float
    ratio: float              # (bid - ask) / (bid + ask), 0 when both empty
    dominant_side: DominantSide
