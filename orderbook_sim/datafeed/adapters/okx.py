"""
OKX public order book.

REST:  GET /api/v5/market/books?instId=BTC-USDT&sz=15
       {"code": "0", "msg": "", "data": [{"asks": [["43000.1", "1.5", "0", "3"]], "bids": [...], "ts": "..."}]}
WS:    {"op": "subscribe", "args": [{"channel": "books", "instId": "BTC-USDT"}]}
       {"arg": {"channel": "books", "instId": ...}, "action": "snapshot" | "update", "data": [{...}]}
"""

from __future__ import annotations

from typing import Any, Mapping

from loguru import logger

from ... import config
from ...errors import ParseError, VenueProtocolError
from ...types import Orderbook
from ..levels import build_orderbook, parse_pairs, parse_sequence, parse_timestamp
from ..local_book import LocalDepth

BOOK_CHANNEL = "books"


class OKXCodec:
    """Request building and message normalization for OKX."""

    def __init__(self, venue_config: config.VenueConfig = config.OKX) -> None:
        self.config = venue_config

    def snapshot_request(self, symbol: str) -> tuple[str, dict[str, Any]]:
        url = f"{self.config.api_url}/api/v5/market/books"
        return url, {"instId": symbol, "sz": str(self.config.snapshot_depth)}

    def parse_snapshot(self, symbol: str, payload: Any) -> Orderbook:
        if not isinstance(payload, dict):
            raise ParseError(f"OKX response is not an object: {type(payload).__name__}")

        code = str(payload.get("code", ""))
        data = payload.get("data")
        if code != "0" or not data:
            raise VenueProtocolError(self.config.name, payload.get("msg") or "no data", code=code or None)

        try:
            book = data[0]
            return build_orderbook(
                self.config.name,
                symbol,
                parse_timestamp(book["ts"]),
                parse_pairs(book["bids"]),
                parse_pairs(book["asks"]),
                sequence=parse_sequence(book.get("seqId")),
            )
        except (KeyError, IndexError, TypeError) as exc:
            raise ParseError(f"unexpected OKX book shape: {exc!r}") from exc

    def subscribe_frame(self, symbols: list[str]) -> dict[str, Any]:
        return {"op": "subscribe", "args": [{"channel": BOOK_CHANNEL, "instId": s} for s in symbols]}

    def unsubscribe_frame(self, symbols: list[str]) -> dict[str, Any]:
        return {"op": "unsubscribe", "args": [{"channel": BOOK_CHANNEL, "instId": s} for s in symbols]}

    def parse_message(self, message: Any, depths: Mapping[str, LocalDepth]) -> list[Orderbook]:
        if not isinstance(message, dict):
            raise ParseError(f"OKX message is not an object: {type(message).__name__}")

        event = message.get("event")
        if event is not None:
            if event == "error":
                logger.warning("OKX stream error {}: {}", message.get("code"), message.get("msg"))
            else:
                logger.debug("OKX event {}: {}", event, message.get("arg"))
            return []

        arg = message.get("arg")
        if not isinstance(arg, dict) or arg.get("channel") != BOOK_CHANNEL:
            return []

        symbol = arg.get("instId")
        depth = depths.get(symbol)
        data = message.get("data")
        if depth is None or not data:
            return []

        try:
            entry = data[0]
            bids = parse_pairs(entry.get("bids", []))
            asks = parse_pairs(entry.get("asks", []))
            ts = parse_timestamp(entry["ts"])
            seq = parse_sequence(entry.get("seqId"))
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ParseError(f"unexpected OKX book update shape: {exc!r}") from exc

        # books5/bbo-tbt style channels omit action and always carry a full book
        if message.get("action", "snapshot") == "snapshot":
            depth.load_snapshot(bids, asks, seq)
        elif not depth.apply_delta(bids, asks, seq):
            logger.debug("OKX {} update before snapshot, dropped", symbol)
            return []

        return [depth.to_orderbook(ts, depth=self.config.stream_depth)]
