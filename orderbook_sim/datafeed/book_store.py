"""
In-memory store of the latest canonical book per (venue, symbol).

Books are immutable NamedTuples, so a write is a single dict assignment of a new
object: readers either see the old book or the new one, never a half-updated one.
No locks are needed under the single-threaded asyncio model.
"""

from __future__ import annotations

from typing import Iterator, Optional

from loguru import logger

from ..errors import NoBookDataError
from ..types import Orderbook, Venue

BookKey = tuple[Venue, str]


class BookStore:
    """
    Latest-book-per-key store consulted by simulation and display.

    Thread-safety: designed for single-threaded async use (one writer task per
    key, any number of readers).
    """

    __slots__ = ('_books',)

    def __init__(self) -> None:
        self._books: dict[BookKey, Orderbook] = {}

    def put(self, venue: Venue, symbol: str, book: Orderbook) -> None:
        """Replace the entry for the key unconditionally (last write wins)."""
        self._books[(venue, symbol)] = book

    def put_if_newer(self, venue: Venue, symbol: str, book: Orderbook) -> bool:
        """
        Replace the entry unless the stored book has a strictly newer timestamp.

        Used for one-shot snapshot fetches, which can complete after a fresher
        streamed update has already landed.
        """
        current = self._books.get((venue, symbol))
        if current is not None and book.timestamp < current.timestamp:
            logger.debug(
                "Ignoring stale {} {} book (ts {} < stored {})",
                venue.value, symbol, book.timestamp, current.timestamp,
            )
            return False
        self._books[(venue, symbol)] = book
        return True

    def get(self, venue: Venue, symbol: str) -> Orderbook:
        try:
            return self._books[(venue, symbol)]
        except KeyError:
            raise NoBookDataError(venue, symbol) from None

    def peek(self, venue: Venue, symbol: str) -> Optional[Orderbook]:
        return self._books.get((venue, symbol))

    def remove(self, venue: Venue, symbol: str) -> None:
        self._books.pop((venue, symbol), None)

    def clear(self) -> None:
        self._books.clear()

    def keys(self) -> list[BookKey]:
        return list(self._books)

    def __contains__(self, key: object) -> bool:
        return key in self._books

    def __len__(self) -> int:
        return len(self._books)

    def __iter__(self) -> Iterator[BookKey]:
        return iter(list(self._books))
