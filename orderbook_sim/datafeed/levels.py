"""
Level normalization: venue price/quantity pairs -> canonical OrderbookLevel.

Venues disagree on level shapes:
    OKX      ["43000.1", "1.5", "0", "3"]   strings, trailing liquidation/order counts
    Bybit    ["43000.1", "1.5"]             strings
    Deribit  [43000.1, 1.5]                 numbers (REST)
             ["new", 43000.1, 1.5]          action triples (WS, handled by the adapter)

Everything funnels through normalize() so a bad number is caught in one place.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, Optional, Sequence

from ..errors import ParseError
from ..types import Orderbook, OrderbookLevel, Venue


def _to_float(value: Any, field: str) -> float:
    # bool is an int subclass; a venue never means True as a price
    if isinstance(value, bool) or value is None:
        raise ParseError(f"{field} is not numeric: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ParseError(f"{field} is not numeric: {value!r}") from exc
    if not math.isfinite(number):
        raise ParseError(f"{field} is not finite: {value!r}")
    return number


def normalize(price_repr: Any, quantity_repr: Any) -> OrderbookLevel:
    """
    Parse one price/quantity pair.

    Raises ParseError unless price is a finite number > 0 and quantity a finite
    number >= 0. The returned level has total=0.0 until accumulate_totals().
    """
    price = _to_float(price_repr, "price")
    quantity = _to_float(quantity_repr, "quantity")
    if price <= 0:
        raise ParseError(f"price must be positive: {price_repr!r}")
    if quantity < 0:
        raise ParseError(f"quantity must be non-negative: {quantity_repr!r}")
    return OrderbookLevel(price, quantity, 0.0)


def parse_pair(entry: Any) -> OrderbookLevel:
    """Normalize a [price, qty, ...] array as sent by REST endpoints."""
    if not isinstance(entry, (list, tuple)) or len(entry) < 2:
        raise ParseError(f"level is not a [price, quantity] array: {entry!r}")
    return normalize(entry[0], entry[1])


def parse_pairs(entries: Any) -> list[OrderbookLevel]:
    if not isinstance(entries, (list, tuple)):
        raise ParseError(f"levels are not an array: {type(entries).__name__}")
    return [parse_pair(entry) for entry in entries]


def accumulate_totals(levels: Iterable[OrderbookLevel]) -> tuple[OrderbookLevel, ...]:
    """
    Set each level's total to the running quantity sum, best price first.

    O(n), walks in the order given, never reorders. Totals are re-derived from
    quantity only, so applying this twice gives the same result.
    """
    running = 0.0
    result = []
    for level in levels:
        running += level.quantity
        result.append(level._replace(total=running))
    return tuple(result)


def build_side(levels: Iterable[OrderbookLevel], descending: bool) -> tuple[OrderbookLevel, ...]:
    """
    Canonicalize one side of a book.

    Sorts (bids descending, asks ascending), collapses duplicate prices keeping
    the last occurrence, drops empty levels and accumulates totals.
    """
    by_price: dict[float, float] = {}
    for level in levels:
        by_price[level.price] = level.quantity

    prices = sorted(by_price, reverse=descending)
    return accumulate_totals(
        OrderbookLevel(price, by_price[price], 0.0)
        for price in prices
        if by_price[price] > 0
    )


def build_orderbook(
    venue: Venue,
    symbol: str,
    timestamp: int,
    bids: Iterable[OrderbookLevel],
    asks: Iterable[OrderbookLevel],
    sequence: Optional[int] = None,
) -> Orderbook:
    """Build a canonical book. Raises ParseError if the result is crossed."""
    bid_side = build_side(bids, descending=True)
    ask_side = build_side(asks, descending=False)

    if bid_side and ask_side and bid_side[0].price >= ask_side[0].price:
        raise ParseError(
            f"crossed book for {venue.value} {symbol}: "
            f"bid {bid_side[0].price} >= ask {ask_side[0].price}"
        )

    return Orderbook(
        symbol=symbol,
        venue=venue,
        timestamp=parse_timestamp(timestamp),
        bids=bid_side,
        asks=ask_side,
        sequence=sequence,
    )


def parse_timestamp(value: Any) -> int:
    """Epoch millis from an int or numeric string (OKX sends strings)."""
    if isinstance(value, bool):
        raise ParseError(f"timestamp is not numeric: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ParseError(f"timestamp is not numeric: {value!r}") from exc


def parse_sequence(value: Any) -> Optional[int]:
    """Optional venue update id; anything unparseable is treated as absent."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def levels_from_pairs(pairs: Sequence[tuple[float, float]]) -> tuple[OrderbookLevel, ...]:
    """Already-sorted (price, qty) pairs -> levels with totals. Used by tests and the mock feed."""
    return accumulate_totals(normalize(price, qty) for price, qty in pairs)
