"""Capability protocols implemented by venue feeds, wire codecs and streams."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Protocol

from ...config import VenueConfig
from ...types import ConnectionStatus, Orderbook, Venue
from ..local_book import LocalDepth
from ..transport import MessageHandler, OpenHandler, StatusHandler

BookCallback = Callable[[Orderbook], None]
StatusListener = Callable[[Venue, ConnectionStatus], None]


class VenueFeed(Protocol):
    """What the rest of the system needs from a venue."""

    venue: Venue

    async def fetch_snapshot(self, symbol: str) -> Orderbook: ...

    async def subscribe_to_stream(self, symbol: str, on_update: BookCallback) -> None: ...

    async def unsubscribe(self, symbol: str) -> None: ...

    def list_supported_symbols(self) -> frozenset[str]: ...

    def add_status_listener(self, listener: StatusListener) -> None: ...

    async def close(self) -> None: ...


class VenueCodec(Protocol):
    """Venue-specific request building and message normalization."""

    config: VenueConfig

    def snapshot_request(self, symbol: str) -> tuple[str, dict[str, Any]]: ...

    def parse_snapshot(self, symbol: str, payload: Any) -> Orderbook: ...

    def subscribe_frame(self, symbols: list[str]) -> dict[str, Any]: ...

    def unsubscribe_frame(self, symbols: list[str]) -> dict[str, Any]: ...

    def parse_message(self, message: Any, depths: Mapping[str, LocalDepth]) -> list[Orderbook]: ...


class Stream(Protocol):
    status: ConnectionStatus

    @property
    def is_open(self) -> bool: ...

    def start(self) -> None: ...

    async def send(self, payload: dict[str, Any]) -> bool: ...

    async def close(self) -> None: ...


class HttpClient(Protocol):
    async def get_json(self, url: str, params: Optional[dict[str, Any]] = None) -> Any: ...


StreamFactory = Callable[[Venue, str, MessageHandler, OpenHandler, StatusHandler], Stream]
