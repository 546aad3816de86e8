"""
Exchange manager: the surface the display layer talks to.

Owns the BookStore, the per-venue feeds and one BookSubscription channel per
subscribed (venue, symbol). Feed callbacks write the store first, then publish
to the channel, so a consumer woken by a book always finds at least that book
in the store.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Mapping, Optional

from loguru import logger

from .. import config
from ..engine.orchestrator import SimulationOrchestrator
from ..errors import UnsupportedVenueError
from ..types import ConnectionStatus, Orderbook, OrderSimulation, OrderSimulationResult, Venue
from .adapters.base import VenueFeed
from .book_store import BookKey, BookStore

UpdateCallback = Callable[[Orderbook], None]


class BookSubscription:
    """
    Channel of replacement books for one (venue, symbol).

    Bounded queue: when the consumer falls behind, the oldest pending book is
    dropped in favour of the newest. Iteration ends when the subscription is
    closed or the venue stream is terminally disconnected.

    Usage:
        sub = await manager.subscribe(Venue.OKX, "BTC-USDT")
        async for book in sub:
            ...
    """

    def __init__(
        self,
        venue: Venue,
        symbol: str,
        maxsize: int = config.SUBSCRIPTION_QUEUE_SIZE,
        on_update: Optional[UpdateCallback] = None,
    ) -> None:
        self.venue = venue
        self.symbol = symbol
        self.on_update = on_update
        self.active = True
        self.status = ConnectionStatus.CONNECTING
        self.latest: Optional[Orderbook] = None
        self.dropped = 0
        self._queue: asyncio.Queue[Optional[Orderbook]] = asyncio.Queue(maxsize=max(1, maxsize))
        self._finished = False

    def publish(self, book: Orderbook) -> bool:
        """Queue a book for the consumer. Returns False once the subscription is inactive."""
        if not self.active:
            return False
        self.latest = book
        self._put(book)
        if self.on_update is not None:
            try:
                self.on_update(book)
            except Exception:
                logger.exception("on_update failed for {} {}", self.venue.value, self.symbol)
        return True

    def set_status(self, status: ConnectionStatus) -> None:
        self.status = status
        if status is ConnectionStatus.DISCONNECTED and self.active:
            logger.warning("{} {} stream disconnected", self.venue.value, self.symbol)
            self.active = False
            self._finish()

    def close(self) -> None:
        self.active = False
        self._finish()

    def get_nowait(self) -> Optional[Orderbook]:
        """Newest pending book, discarding older ones. None if nothing is pending."""
        newest: Optional[Orderbook] = None
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return newest
            if item is None:
                # Keep the end-of-stream marker for iterators
                self._put(None)
                return newest
            newest = item

    async def get(self) -> Optional[Orderbook]:
        """Next book, or None once the subscription has ended."""
        item = await self._queue.get()
        if item is None:
            self._put(None)
        return item

    def __aiter__(self) -> BookSubscription:
        return self

    async def __anext__(self) -> Orderbook:
        book = await self.get()
        if book is None:
            raise StopAsyncIteration
        return book

    def _finish(self) -> None:
        if not self._finished:
            self._finished = True
            self._put(None)

    def _put(self, item: Optional[Orderbook]) -> None:
        # Non-blocking put; drop oldest when full
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            try:
                self._queue.get_nowait()
                self.dropped += 1
            except asyncio.QueueEmpty:
                pass
            self._queue.put_nowait(item)


class ExchangeManager:
    """
    Coordinates venue feeds, the book store and order simulation.

    Usage:
        async with aiohttp.ClientSession() as session:
            manager = ExchangeManager(build_feeds(session))
            await manager.get_orderbook(Venue.BYBIT, "BTCUSDT")
            result = await manager.simulate_order(request)
    """

    def __init__(
        self,
        feeds: Mapping[Venue, VenueFeed],
        store: Optional[BookStore] = None,
        orchestrator: Optional[SimulationOrchestrator] = None,
        queue_size: int = config.SUBSCRIPTION_QUEUE_SIZE,
    ) -> None:
        self._feeds = dict(feeds)
        self.store = store if store is not None else BookStore()
        self.orchestrator = orchestrator or SimulationOrchestrator(self.store)
        self.queue_size = queue_size

        self._subscriptions: dict[BookKey, BookSubscription] = {}
        self._status: dict[Venue, ConnectionStatus] = {
            venue: ConnectionStatus.DISCONNECTED for venue in self._feeds
        }
        for feed in self._feeds.values():
            feed.add_status_listener(self._on_status)

    @property
    def venues(self) -> list[Venue]:
        return list(self._feeds)

    def feed(self, venue: Venue) -> VenueFeed:
        try:
            return self._feeds[venue]
        except KeyError:
            raise UnsupportedVenueError(f"No feed registered for {venue}") from None

    def status(self, venue: Venue) -> ConnectionStatus:
        return self._status.get(venue, ConnectionStatus.DISCONNECTED)

    def list_supported_symbols(self, venue: Venue) -> list[str]:
        return sorted(self.feed(venue).list_supported_symbols())

    def all_supported_symbols(self) -> dict[Venue, list[str]]:
        return {venue: self.list_supported_symbols(venue) for venue in self._feeds}

    def cached_orderbook(self, venue: Venue, symbol: str) -> Optional[Orderbook]:
        return self.store.peek(venue, symbol)

    async def get_orderbook(self, venue: Venue, symbol: str) -> Orderbook:
        """
        Fetch a REST snapshot and store it.

        A snapshot older than a book already streamed in is not stored; the
        fresher stored book is returned instead. Raises NetworkError,
        VenueProtocolError or ParseError.
        """
        book = await self.feed(venue).fetch_snapshot(symbol)
        if self.store.put_if_newer(venue, symbol, book):
            return book
        return self.store.get(venue, symbol)

    async def subscribe(
        self,
        venue: Venue,
        symbol: str,
        on_update: Optional[UpdateCallback] = None,
    ) -> BookSubscription:
        """Start streaming (venue, symbol). Subscribing again returns the live channel."""
        key = (venue, symbol)
        feed = self.feed(venue)

        existing = self._subscriptions.get(key)
        if existing is not None and existing.active:
            if on_update is not None:
                existing.on_update = on_update
            return existing

        subscription = BookSubscription(venue, symbol, self.queue_size, on_update)
        self._subscriptions[key] = subscription

        def deliver(book: Orderbook) -> None:
            # Re-checked on every delivery: nothing lands after unsubscribe
            if self._subscriptions.get(key) is not subscription or not subscription.active:
                return
            self.store.put(venue, symbol, book)
            subscription.publish(book)

        await feed.subscribe_to_stream(symbol, deliver)
        if self.status(venue) is ConnectionStatus.CONNECTED:
            subscription.status = ConnectionStatus.CONNECTED
        logger.info("Subscribed to {} {}", venue.value, symbol)
        return subscription

    async def unsubscribe(self, venue: Venue, symbol: str) -> None:
        """Stop delivery for (venue, symbol) and drop its stored book. Safe to call any time."""
        subscription = self._subscriptions.pop((venue, symbol), None)
        if subscription is not None:
            subscription.close()
        self.store.remove(venue, symbol)
        await self.feed(venue).unsubscribe(symbol)
        logger.info("Unsubscribed from {} {}", venue.value, symbol)

    async def simulate_order(self, request: OrderSimulation) -> OrderSimulationResult:
        """Raises NoBookDataError if no book exists yet for the request's key."""
        return await self.orchestrator.simulate(request)

    async def close(self) -> None:
        for venue, symbol in list(self._subscriptions):
            await self.unsubscribe(venue, symbol)
        for feed in self._feeds.values():
            await feed.close()
        self.store.clear()

    def _on_status(self, venue: Venue, status: ConnectionStatus) -> None:
        self._status[venue] = status
        for (sub_venue, _), subscription in list(self._subscriptions.items()):
            if sub_venue is venue:
                subscription.set_status(status)
