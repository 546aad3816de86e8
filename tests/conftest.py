"""
Shared fixtures: book builders and in-memory stand-ins for the network.

Nothing here opens a socket. Adapters get a FakeHttp (canned JSON per URL) and a
FakeStream (records sent frames, lets the test drive on_open and status).
"""
from __future__ import annotations

from typing import Any, Optional

import pytest

from orderbook_sim.datafeed.book_store import BookStore
from orderbook_sim.datafeed.levels import build_orderbook, normalize
from orderbook_sim.types import ConnectionStatus, Orderbook, Venue


def make_book(
    bids: list[tuple[float, float]],
    asks: list[tuple[float, float]],
    venue: Venue = Venue.OKX,
    symbol: str = "BTC-USDT",
    timestamp: int = 1_700_000_000_000,
    sequence: Optional[int] = None,
) -> Orderbook:
    return build_orderbook(
        venue,
        symbol,
        timestamp,
        [normalize(p, q) for p, q in bids],
        [normalize(p, q) for p, q in asks],
        sequence=sequence,
    )


class FakeHttp:
    def __init__(self, payload: Any = None, error: Optional[Exception] = None) -> None:
        self.payload = payload
        self.error = error
        self.calls: list[tuple[str, Optional[dict]]] = []

    async def get_json(self, url: str, params: Optional[dict] = None) -> Any:
        self.calls.append((url, params))
        if self.error is not None:
            raise self.error
        return self.payload


class FakeStream:
    def __init__(self, venue, url, on_message, on_open, on_status) -> None:
        self.venue = venue
        self.url = url
        self.on_message = on_message
        self.on_open = on_open
        self.on_status = on_status
        self.sent: list[dict] = []
        self.opened = False
        self.starts = 0
        self.closed = 0
        self.status = ConnectionStatus.DISCONNECTED

    @property
    def is_open(self) -> bool:
        return self.opened

    def start(self) -> None:
        self.starts += 1

    async def send(self, payload: dict) -> bool:
        if not self.opened:
            return False
        self.sent.append(payload)
        return True

    async def close(self) -> None:
        self.closed += 1
        self.opened = False
        self.set_status(ConnectionStatus.DISCONNECTED)

    def set_status(self, status: ConnectionStatus) -> None:
        self.status = status
        self.on_status(status)

    async def connect(self) -> None:
        """Simulate a successful (re)connect."""
        self.opened = True
        self.set_status(ConnectionStatus.CONNECTED)
        await self.on_open()


class StreamRecorder:
    """StreamFactory that keeps the created FakeStream."""

    def __init__(self) -> None:
        self.stream: Optional[FakeStream] = None

    def __call__(self, venue, url, on_message, on_open, on_status) -> FakeStream:
        self.stream = FakeStream(venue, url, on_message, on_open, on_status)
        return self.stream


@pytest.fixture
def store() -> BookStore:
    return BookStore()


@pytest.fixture
def simple_book() -> Orderbook:
    return make_book(bids=[(100.0, 2.0)], asks=[(101.0, 3.0)])


@pytest.fixture
def deep_book() -> Orderbook:
    return make_book(
        bids=[(100.0, 1.0), (99.0, 2.0), (98.0, 3.0)],
        asks=[(101.0, 1.0), (102.0, 2.0), (103.0, 3.0)],
    )


@pytest.fixture
def streams() -> StreamRecorder:
    return StreamRecorder()
