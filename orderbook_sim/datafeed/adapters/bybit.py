"""
Bybit v5 spot order book.

REST:  GET /v5/market/orderbook?category=spot&symbol=BTCUSDT&limit=25
       {"retCode": 0, "retMsg": "OK", "result": {"s": ..., "b": [["p", "q"]], "a": [...], "ts": ..., "u": ...}}
WS:    {"op": "subscribe", "args": ["orderbook.50.BTCUSDT"]}
       {"topic": "orderbook.50.BTCUSDT", "type": "snapshot" | "delta", "ts": ..., "data": {"s", "b", "a", "u", "seq"}}

A delta with u == 1 means Bybit restarted its book service and is a full snapshot.
"""

from __future__ import annotations

from typing import Any, Mapping

from loguru import logger

from ... import config
from ...errors import ParseError, VenueProtocolError
from ...types import Orderbook
from ..levels import build_orderbook, parse_pairs, parse_sequence, parse_timestamp
from ..local_book import LocalDepth

CATEGORY = "spot"


class BybitCodec:
    """Request building and message normalization for Bybit."""

    def __init__(self, venue_config: config.VenueConfig = config.BYBIT) -> None:
        self.config = venue_config

    def topic(self, symbol: str) -> str:
        return f"orderbook.{self.config.stream_depth}.{symbol}"

    def snapshot_request(self, symbol: str) -> tuple[str, dict[str, Any]]:
        url = f"{self.config.api_url}/v5/market/orderbook"
        return url, {"category": CATEGORY, "symbol": symbol, "limit": str(self.config.snapshot_depth)}

    def parse_snapshot(self, symbol: str, payload: Any) -> Orderbook:
        if not isinstance(payload, dict):
            raise ParseError(f"Bybit response is not an object: {type(payload).__name__}")

        ret_code = payload.get("retCode")
        result = payload.get("result")
        if ret_code != 0 or not result:
            raise VenueProtocolError(self.config.name, payload.get("retMsg") or "no result", code=ret_code)

        try:
            return build_orderbook(
                self.config.name,
                symbol,
                parse_timestamp(result["ts"]),
                parse_pairs(result["b"]),
                parse_pairs(result["a"]),
                sequence=parse_sequence(result.get("u")),
            )
        except (KeyError, TypeError) as exc:
            raise ParseError(f"unexpected Bybit book shape: {exc!r}") from exc

    def subscribe_frame(self, symbols: list[str]) -> dict[str, Any]:
        return {"op": "subscribe", "args": [self.topic(s) for s in symbols]}

    def unsubscribe_frame(self, symbols: list[str]) -> dict[str, Any]:
        return {"op": "unsubscribe", "args": [self.topic(s) for s in symbols]}

    def parse_message(self, message: Any, depths: Mapping[str, LocalDepth]) -> list[Orderbook]:
        if not isinstance(message, dict):
            raise ParseError(f"Bybit message is not an object: {type(message).__name__}")

        if "op" in message:
            if message.get("success") is False:
                logger.warning("Bybit {} failed: {}", message.get("op"), message.get("ret_msg"))
            else:
                logger.debug("Bybit {} acknowledged", message.get("op"))
            return []

        topic = message.get("topic")
        if not isinstance(topic, str) or not topic.startswith("orderbook."):
            return []

        parts = topic.split(".")
        if len(parts) != 3:
            return []
        symbol = parts[2]
        depth = depths.get(symbol)
        data = message.get("data")
        if depth is None or not data:
            return []

        try:
            bids = parse_pairs(data.get("b", []))
            asks = parse_pairs(data.get("a", []))
            ts = parse_timestamp(message["ts"])
            seq = parse_sequence(data.get("u"))
        except (KeyError, TypeError, AttributeError) as exc:
            raise ParseError(f"unexpected Bybit book update shape: {exc!r}") from exc

        if message.get("type") == "snapshot" or seq == 1:
            depth.load_snapshot(bids, asks, seq)
        elif not depth.apply_delta(bids, asks, seq):
            logger.debug("Bybit {} delta before snapshot, dropped", symbol)
            return []

        return [depth.to_orderbook(ts, depth=self.config.stream_depth)]
