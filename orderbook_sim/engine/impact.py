"""
Order impact simulation: walk the opposite side of the book.

A buy consumes asks, a sell consumes bids, best price first.

Market orders fill level by level until the quantity is exhausted or the side
runs out. Limit orders only fill at marketable levels (ask <= limit for a buy,
bid >= limit for a sell); a non-marketable level is skipped, not a stop.

Known simplifications, kept deliberately:
- Limit orders report the limit price as their average fill price, even when
  some quantity would fill at better prices.
- market_impact is measured against the top-of-book quantity only, not the
  total depth walked.
- time_to_fill for a limit order that does not fully fill is a uniform random
  placeholder in [5, 35) seconds, not a queue-position model.
"""

from __future__ import annotations

import math
import random
from typing import Optional

from ..errors import InvalidOrderError
from ..types import (
    OrderImpactMetrics,
    Orderbook,
    OrderbookLevel,
    OrderSide,
    OrderSimulation,
    OrderType,
    SimulatedOrderPosition,
)

# Limit order fill-time placeholder bounds (seconds)
LIMIT_FILL_TIME_MIN = 5.0
LIMIT_FILL_TIME_SPAN = 30.0

HIGH_SLIPPAGE_PCT = 5.0
HIGH_IMPACT_PCT = 10.0
LONG_FILL_TIME_SEC = 60.0


def validate_simulation(request: OrderSimulation) -> None:
    """Raise InvalidOrderError for requests the simulator cannot evaluate."""
    if not request.symbol:
        raise InvalidOrderError("Symbol is required")
    if not _is_positive(request.quantity):
        raise InvalidOrderError("Quantity must be a finite number greater than 0")
    if request.order_type is OrderType.LIMIT:
        if not _is_positive(request.price):
            raise InvalidOrderError("Price must be a finite number greater than 0")
    elif request.price is not None:
        raise InvalidOrderError("Market orders do not take a price")


def _is_positive(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def _is_marketable(level: OrderbookLevel, side: OrderSide, limit_price: float) -> bool:
    if side is OrderSide.BUY:
        return level.price <= limit_price
    return level.price >= limit_price


def simulate_order_impact(
    book: Orderbook,
    side: OrderSide,
    quantity: float,
    order_type: OrderType,
    limit_price: Optional[float] = None,
    rng: Optional[random.Random] = None,
) -> SimulatedOrderPosition:
    """
    Estimate fill percentage, average price, slippage, impact and time to fill.

    The book is only read. `position` is the index of the deepest level that
    received a fill (0 if nothing filled); affected_levels are the levels that
    received a fill, in walk order.
    """
    if not _is_positive(quantity):
        raise InvalidOrderError("Quantity must be a finite number greater than 0")
    if order_type is OrderType.LIMIT and not _is_positive(limit_price):
        raise InvalidOrderError("Limit orders require a positive limit price")

    levels = book.asks if side is OrderSide.BUY else book.bids
    remaining = quantity
    cost = 0.0
    position = 0
    affected: list[OrderbookLevel] = []

    for index, level in enumerate(levels):
        if remaining <= 0:
            break
        if order_type is OrderType.LIMIT and not _is_marketable(level, side, limit_price):
            continue

        filled = min(remaining, level.quantity)
        if filled <= 0:
            continue
        cost += filled * level.price
        remaining -= filled
        position = index
        affected.append(level)

    remaining = max(remaining, 0.0)
    filled_total = quantity - remaining

    if order_type is OrderType.LIMIT:
        average_fill_price = float(limit_price)
        if remaining > 0:
            rng = rng or random.Random()
            time_to_fill = LIMIT_FILL_TIME_MIN + rng.random() * LIMIT_FILL_TIME_SPAN
        else:
            time_to_fill = 0.0
    else:
        average_fill_price = cost / filled_total if filled_total > 0 else 0.0
        time_to_fill = 0.0

    best = levels[0] if levels else None
    best_price = best.price if best is not None else 0.0
    slippage = abs(average_fill_price - best_price) / best_price * 100 if best_price > 0 else 0.0

    # Empty side or empty top level: the whole order is unabsorbed at the top
    if best is not None and best.quantity > 0:
        market_impact = quantity / best.quantity * 100
    else:
        market_impact = 100.0

    metrics = OrderImpactMetrics(
        estimated_fill_percentage=filled_total / quantity * 100,
        market_impact=market_impact,
        slippage=slippage,
        average_fill_price=average_fill_price,
        time_to_fill=time_to_fill,
    )
    return SimulatedOrderPosition(position, metrics, tuple(affected))


def generate_warnings(simulation: OrderSimulation, metrics: OrderImpactMetrics) -> tuple[str, ...]:
    """Human-readable warnings for risky simulated orders, in fixed order."""
    warnings: list[str] = []

    if metrics.slippage > HIGH_SLIPPAGE_PCT:
        warnings.append(f"High slippage warning: {metrics.slippage:.2f}% slippage expected")

    if metrics.market_impact > HIGH_IMPACT_PCT:
        warnings.append(f"High market impact: {metrics.market_impact:.2f}% of available liquidity")

    if metrics.estimated_fill_percentage < 100:
        warnings.append(
            f"Partial fill expected: Only {metrics.estimated_fill_percentage:.1f}% may be filled"
        )

    if metrics.time_to_fill is not None and metrics.time_to_fill > LONG_FILL_TIME_SEC:
        warnings.append(f"Long fill time: Estimated {round(metrics.time_to_fill)}s to complete")

    return tuple(warnings)
