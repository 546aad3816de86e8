"""
Subscription lifecycle shared by the streaming venue feeds.

A StreamingVenueFeed is composed of:
- a VenueCodec (what the venue's requests and messages look like)
- an HttpClient for snapshots
- one Stream for the venue's public WebSocket

Venue differences live entirely in the codec.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from ...errors import ParseError
from ...types import ConnectionStatus, Orderbook, Venue
from ..local_book import LocalDepth
from .base import BookCallback, HttpClient, StatusListener, StreamFactory, VenueCodec


class FeedSubscriptions:
    """Symbol -> callback registry plus connection status listeners."""

    __slots__ = ('venue', '_callbacks', '_status_listeners')

    def __init__(self, venue: Venue) -> None:
        self.venue = venue
        self._callbacks: dict[str, BookCallback] = {}
        self._status_listeners: list[StatusListener] = []

    def add(self, symbol: str, callback: BookCallback) -> bool:
        """Register a callback. Returns False if the symbol was already subscribed."""
        is_new = symbol not in self._callbacks
        self._callbacks[symbol] = callback
        return is_new

    def discard(self, symbol: str) -> bool:
        return self._callbacks.pop(symbol, None) is not None

    def symbols(self) -> list[str]:
        return list(self._callbacks)

    def deliver(self, book: Orderbook) -> bool:
        """
        Invoke the callback for book.symbol.

        The registry is consulted at call time, so nothing reaches a callback
        after its symbol has been unsubscribed.
        """
        callback = self._callbacks.get(book.symbol)
        if callback is None:
            return False
        try:
            callback(book)
        except Exception:
            logger.exception("Subscriber callback failed for {} {}", self.venue.value, book.symbol)
        return True

    def add_status_listener(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def notify_status(self, status: ConnectionStatus) -> None:
        for listener in list(self._status_listeners):
            try:
                listener(self.venue, status)
            except Exception:
                logger.exception("Status listener failed for {}", self.venue.value)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._callbacks

    def __len__(self) -> int:
        return len(self._callbacks)


class StreamingVenueFeed:
    """
    VenueFeed backed by a REST snapshot endpoint and a public WebSocket.

    Usage:
        feed = StreamingVenueFeed(OKXCodec(), http, stream_factory)
        book = await feed.fetch_snapshot("BTC-USDT")
        await feed.subscribe_to_stream("BTC-USDT", on_update)
    """

    def __init__(self, codec: VenueCodec, http: HttpClient, stream_factory: StreamFactory) -> None:
        self.codec = codec
        self.venue: Venue = codec.config.name
        self._http = http
        self._subs = FeedSubscriptions(self.venue)
        self._depths: dict[str, LocalDepth] = {}
        self._stream = stream_factory(
            self.venue,
            codec.config.ws_url,
            self.handle_message,
            self._resubscribe,
            self._on_status,
        )

    async def fetch_snapshot(self, symbol: str) -> Orderbook:
        """
        One-shot REST snapshot.

        Raises NetworkError, VenueProtocolError or ParseError.
        """
        url, params = self.codec.snapshot_request(symbol)
        payload = await self._http.get_json(url, params)
        book = self.codec.parse_snapshot(symbol, payload)
        logger.debug(
            "{} {} snapshot: {} bids / {} asks",
            self.venue.value, symbol, len(book.bids), len(book.asks),
        )
        return book

    async def subscribe_to_stream(self, symbol: str, on_update: BookCallback) -> None:
        """
        Deliver full replacement books for symbol to on_update.

        Subscribing again only swaps the callback.
        """
        is_new = self._subs.add(symbol, on_update)
        if is_new:
            self._depths[symbol] = LocalDepth(self.venue, symbol)

        # Restarts a stream that gave up after exhausting its reconnects
        self._stream.start()
        if is_new and self._stream.is_open:
            await self._stream.send(self.codec.subscribe_frame([symbol]))

    async def unsubscribe(self, symbol: str) -> None:
        # Detach first: no await happens before the callback is gone
        if not self._subs.discard(symbol):
            return
        self._depths.pop(symbol, None)

        if self._stream.is_open:
            await self._stream.send(self.codec.unsubscribe_frame([symbol]))

        if not len(self._subs):
            logger.info("No {} subscriptions left, closing stream", self.venue.value)
            await self._stream.close()

    def list_supported_symbols(self) -> frozenset[str]:
        return frozenset(self.codec.config.symbols)

    def add_status_listener(self, listener: StatusListener) -> None:
        self._subs.add_status_listener(listener)

    @property
    def status(self) -> ConnectionStatus:
        return self._stream.status

    def subscribed_symbols(self) -> list[str]:
        return self._subs.symbols()

    async def close(self) -> None:
        for symbol in self._subs.symbols():
            self._subs.discard(symbol)
        self._depths.clear()
        await self._stream.close()

    def handle_message(self, message: Any) -> None:
        """
        Normalize one decoded stream message and deliver the resulting books.

        Malformed messages are logged and dropped.
        """
        try:
            books = self.codec.parse_message(message, self._depths)
        except ParseError as exc:
            logger.warning("Dropping malformed {} message: {}", self.venue.value, exc)
            return

        for book in books:
            self._subs.deliver(book)

    async def _resubscribe(self) -> None:
        symbols = self._subs.symbols()
        # The venue replays a snapshot after subscribe; stale deltas must not survive
        for depth in self._depths.values():
            depth.reset()
        if symbols:
            logger.info("Subscribing {} to {}", self.venue.value, ", ".join(symbols))
            await self._stream.send(self.codec.subscribe_frame(symbols))

    def _on_status(self, status: ConnectionStatus) -> None:
        logger.debug("{} stream status: {}", self.venue.value, status.value)
        self._subs.notify_status(status)
