"""
Synthetic venue feed for offline use (--mock) and tests.

Generates books around a per-symbol base price with a 0.1% spread, 15 levels per
side and random size, re-jittered on every update. Pass a seed for repeatable
output.
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

import numpy as np
from loguru import logger

from ... import config
from ...types import ConnectionStatus, Orderbook, Venue
from ..levels import build_orderbook, normalize
from .base import BookCallback, StatusListener
from .common import FeedSubscriptions


def generate_book(
    venue: Venue,
    symbol: str,
    rng: np.random.Generator,
    levels: int = config.MOCK_LEVELS,
    timestamp: Optional[int] = None,
    jitter: bool = True,
) -> Orderbook:
    """Generate a plausible, uncrossed book for symbol."""
    base_price = config.MOCK_BASE_PRICES.get(symbol, config.MOCK_DEFAULT_PRICE)
    if jitter:
        base_price *= 1 + (rng.random() - 0.5) * 0.001  # +-0.05% drift

    spread = base_price * 0.001
    steps = np.arange(levels)
    bid_prices = base_price - spread / 2 - steps * spread * 0.1
    ask_prices = base_price + spread / 2 + steps * spread * 0.1

    bid_qty = rng.random(levels) * 10 + 1
    ask_qty = rng.random(levels) * 10 + 1
    if jitter:
        bid_qty *= 0.8 + rng.random(levels) * 0.4
        ask_qty *= 0.8 + rng.random(levels) * 0.4

    return build_orderbook(
        venue,
        symbol,
        timestamp if timestamp is not None else int(time.time() * 1000),
        [normalize(p, q) for p, q in zip(bid_prices, bid_qty)],
        [normalize(p, q) for p, q in zip(ask_prices, ask_qty)],
    )


class SyntheticFeed:
    """
    VenueFeed that never touches the network.

    Each subscribed symbol gets its own task publishing a fresh book every
    `interval` seconds (uniform in the given range).
    """

    def __init__(
        self,
        venue: Venue,
        seed: Optional[int] = None,
        interval: tuple[float, float] = config.MOCK_UPDATE_INTERVAL_SEC,
        latency: tuple[float, float] = (0.1, 0.3),
    ) -> None:
        self.venue = venue
        self.interval = interval
        self.latency = latency
        self._rng = np.random.default_rng(seed)
        self._subs = FeedSubscriptions(venue)
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self.status = ConnectionStatus.DISCONNECTED

    def _uniform(self, bounds: tuple[float, float]) -> float:
        low, high = bounds
        return float(self._rng.uniform(low, high)) if high > low else low

    async def fetch_snapshot(self, symbol: str) -> Orderbook:
        await asyncio.sleep(self._uniform(self.latency))  # Simulated network delay
        return generate_book(self.venue, symbol, self._rng)

    async def subscribe_to_stream(self, symbol: str, on_update: BookCallback) -> None:
        if not self._subs.add(symbol, on_update):
            return
        if self.status is not ConnectionStatus.CONNECTED:
            self.status = ConnectionStatus.CONNECTED
            self._subs.notify_status(self.status)
        self._tasks[symbol] = asyncio.create_task(
            self._publish(symbol), name=f"{self.venue.value}-{symbol}-mock"
        )

    async def unsubscribe(self, symbol: str) -> None:
        if not self._subs.discard(symbol):
            return
        task = self._tasks.pop(symbol, None)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def list_supported_symbols(self) -> frozenset[str]:
        return frozenset(config.VENUES[self.venue].symbols)

    def add_status_listener(self, listener: StatusListener) -> None:
        self._subs.add_status_listener(listener)

    async def close(self) -> None:
        for symbol in list(self._tasks):
            await self.unsubscribe(symbol)
        if self.status is not ConnectionStatus.DISCONNECTED:
            self.status = ConnectionStatus.DISCONNECTED
            self._subs.notify_status(self.status)

    async def _publish(self, symbol: str) -> None:
        logger.debug("Synthetic {} {} feed started", self.venue.value, symbol)
        while True:
            self._subs.deliver(generate_book(self.venue, symbol, self._rng))
            await asyncio.sleep(self._uniform(self.interval))
