"""Exception taxonomy for feeds, the book store and simulation."""

from __future__ import annotations

from typing import Optional


def _name(venue: object) -> str:
    return str(getattr(venue, "value", venue))


class OrderbookSimError(Exception):
    """Base class for all errors raised by orderbook_sim."""


class ParseError(OrderbookSimError):
    """Malformed numeric value or venue payload."""


class NetworkError(OrderbookSimError):
    """Transport failure on a one-shot request."""


class VenueProtocolError(OrderbookSimError):
    """The venue answered, but reported an application-level error."""

    def __init__(self, venue: object, message: str, code: Optional[object] = None) -> None:
        self.venue = venue
        self.code = code
        self.message = message
        detail = f" (code {code})" if code is not None else ""
        super().__init__(f"{_name(venue)} API error{detail}: {message}")


class NoBookDataError(OrderbookSimError):
    """No order book has been received yet for the requested key."""

    def __init__(self, venue: object, symbol: str) -> None:
        self.venue = venue
        self.symbol = symbol
        super().__init__(f"No orderbook data available for {_name(venue)} {symbol}")


class InvalidOrderError(OrderbookSimError, ValueError):
    """Simulation request failed validation."""


class UnsupportedVenueError(OrderbookSimError, KeyError):
    """No feed is registered for the venue."""
