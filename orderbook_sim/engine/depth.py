"""
Depth and imbalance analytics over canonical book sides.

Pure functions: inputs are never mutated and need not be pre-sorted.
"""

from __future__ import annotations

import time
from typing import Optional, Sequence

import numpy as np

from ..types import DepthChartData, DepthPoint, DominantSide, Orderbook, OrderbookImbalance, OrderbookLevel

# |ratio| below this is reported as balanced
BALANCED_THRESHOLD = 0.1


def _series(levels: Sequence[OrderbookLevel], descending: bool, side: str) -> list[DepthPoint]:
    ordered = sorted(levels, key=lambda level: level.price, reverse=descending)
    if not ordered:
        return []

    volumes = np.fromiter((level.quantity for level in ordered), dtype=np.float64, count=len(ordered))
    cumulative = np.cumsum(volumes)

    return [
        DepthPoint(level.price, level.quantity, float(total), side)
        for level, total in zip(ordered, cumulative)
    ]


def compute_depth(bids: Sequence[OrderbookLevel], asks: Sequence[OrderbookLevel]) -> DepthChartData:
    """
    Cumulative volume by price for each side.

    bid series runs from the highest bid down, ask series from the lowest ask up.
    spread is 0 when either side is empty.
    """
    bid_series = _series(bids, descending=True, side="bid")
    ask_series = _series(asks, descending=False, side="ask")

    max_cumulative = max(
        bid_series[-1].cumulative if bid_series else 0.0,
        ask_series[-1].cumulative if ask_series else 0.0,
    )
    spread = ask_series[0].price - bid_series[0].price if bid_series and ask_series else 0.0

    return DepthChartData(bid_series, ask_series, max_cumulative, spread)


def compute_imbalance(bids: Sequence[OrderbookLevel], asks: Sequence[OrderbookLevel]) -> OrderbookImbalance:
    """Bid/ask volume totals, their ratio in [-1, 1] and the dominant side."""
    bid_total = float(sum(level.quantity for level in bids))
    ask_total = float(sum(level.quantity for level in asks))

    total = bid_total + ask_total
    ratio = (bid_total - ask_total) / total if total > 0 else 0.0

    if abs(ratio) < BALANCED_THRESHOLD:
        dominant = DominantSide.BALANCED
    elif ratio > 0:
        dominant = DominantSide.BID
    else:
        dominant = DominantSide.ASK

    return OrderbookImbalance(bid_total, ask_total, ratio, dominant)


def spread_stats(book: Orderbook) -> tuple[float, float]:
    """(absolute, percent of best ask). Both 0 if either side is empty."""
    if not book.bids or not book.asks:
        return 0.0, 0.0
    absolute = book.best_ask - book.best_bid
    return absolute, absolute / book.best_ask * 100


def spread_bps(book: Orderbook) -> float:
    mid = book.mid_price
    return (book.spread / mid * 10000) if mid > 0 else 0.0


def is_stale(book: Orderbook, max_age_ms: int, now_ms: Optional[int] = None) -> bool:
    """True if the book is older than max_age_ms."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return now_ms - book.timestamp > max_age_ms
