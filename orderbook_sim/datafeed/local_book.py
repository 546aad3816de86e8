"""
Per-symbol raw depth cache for venues that stream snapshot + delta messages.

OKX (action=update), Bybit (type=delta) and Deribit (type=change) only send the
levels that changed after the first snapshot. The canonical representation never
carries deltas, so adapters merge them here and emit a full replacement book.

Strategy:
1. dict[float, float] for O(1) lookup/update of individual prices
2. Sorted price lists rebuilt lazily, only when a book is emitted
3. Dirty flag avoids re-sorting when nothing changed
"""

from __future__ import annotations

from typing import Iterable, Optional

from ..errors import ParseError
from ..types import Orderbook, OrderbookLevel, Venue
from .levels import build_orderbook


class LocalDepth:
    """
    Raw price -> quantity maps for one symbol.

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    __slots__ = (
        'venue', 'symbol', 'bids', 'asks', 'last_update_id', 'has_snapshot',
        '_bid_prices_sorted', '_ask_prices_sorted', '_dirty',
    )

    def __init__(self, venue: Venue, symbol: str) -> None:
        self.venue = venue
        self.symbol = symbol

        # Core data: price -> quantity
        self.bids: dict[float, float] = {}
        self.asks: dict[float, float] = {}

        self.last_update_id: Optional[int] = None
        self.has_snapshot: bool = False

        self._bid_prices_sorted: list[float] = []  # Descending (best bid first)
        self._ask_prices_sorted: list[float] = []  # Ascending (best ask first)
        self._dirty: bool = True

    def load_snapshot(
        self,
        bids: Iterable[OrderbookLevel],
        asks: Iterable[OrderbookLevel],
        sequence: Optional[int] = None,
    ) -> None:
        """
        Replace all state with a full snapshot. Zero-quantity levels are skipped.

        A crossed snapshot leaves the depth empty and raises ParseError; deltas
        are then ignored until the next snapshot.
        """
        self.bids.clear()
        self.asks.clear()

        for level in bids:
            if level.quantity > 0:
                self.bids[level.price] = level.quantity

        for level in asks:
            if level.quantity > 0:
                self.asks[level.price] = level.quantity

        self._dirty = True
        if self._crossed():
            best_bid, best_ask = max(self.bids), min(self.asks)
            self.reset()
            raise ParseError(
                f"crossed snapshot for {self.venue.value} {self.symbol}: "
                f"bid {best_bid} >= ask {best_ask}"
            )

        self.last_update_id = sequence
        self.has_snapshot = True

    def apply_delta(
        self,
        bids: Iterable[OrderbookLevel],
        asks: Iterable[OrderbookLevel],
        sequence: Optional[int] = None,
    ) -> bool:
        """
        Merge changed levels; quantity 0 removes the price.

        Returns False (and changes nothing) if no snapshot has been loaded yet.
        A delta that would cross the book is rolled back and raises ParseError,
        so later deltas still merge onto the last good state.
        """
        if not self.has_snapshot:
            return False

        # (side, price, previous quantity or None if absent)
        undo: list[tuple[dict[float, float], float, Optional[float]]] = []

        for side, levels in ((self.bids, bids), (self.asks, asks)):
            for level in levels:
                undo.append((side, level.price, side.get(level.price)))
                if level.quantity == 0:
                    side.pop(level.price, None)
                else:
                    side[level.price] = level.quantity

        self._dirty = True
        if self._crossed():
            best_bid, best_ask = max(self.bids), min(self.asks)
            for side, price, previous in reversed(undo):
                if previous is None:
                    side.pop(price, None)
                else:
                    side[price] = previous
            raise ParseError(
                f"delta would cross book for {self.venue.value} {self.symbol}: "
                f"bid {best_bid} >= ask {best_ask}"
            )

        if sequence is not None:
            self.last_update_id = sequence
        return True

    def _crossed(self) -> bool:
        return bool(self.bids) and bool(self.asks) and max(self.bids) >= min(self.asks)

    def _ensure_sorted(self) -> None:
        """Rebuild sorted price arrays if dirty."""
        if not self._dirty:
            return
        self._bid_prices_sorted = sorted(self.bids, reverse=True)
        self._ask_prices_sorted = sorted(self.asks)
        self._dirty = False

    def to_orderbook(self, timestamp: int, depth: int = 0) -> Orderbook:
        """
        Emit the current state as a canonical replacement book.

        depth > 0 truncates each side to the best `depth` levels.
        Raises ParseError if the merged state is crossed.
        """
        self._ensure_sorted()

        bid_prices = self._bid_prices_sorted[:depth] if depth > 0 else self._bid_prices_sorted
        ask_prices = self._ask_prices_sorted[:depth] if depth > 0 else self._ask_prices_sorted

        return build_orderbook(
            self.venue,
            self.symbol,
            timestamp,
            [OrderbookLevel(p, self.bids[p]) for p in bid_prices],
            [OrderbookLevel(p, self.asks[p]) for p in ask_prices],
            sequence=self.last_update_id,
        )

    def reset(self) -> None:
        self.bids.clear()
        self.asks.clear()
        self.last_update_id = None
        self.has_snapshot = False
        self._dirty = True
