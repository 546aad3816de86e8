"""
Deribit public order book (JSON-RPC over HTTP and WebSocket).

REST:  GET /api/v2/public/get_order_book?instrument_name=BTC-PERPETUAL&depth=15
       {"jsonrpc": "2.0", "result": {"bids": [[43000.5, 1200.0]], "asks": [...], "timestamp": ..., "change_id": ...}}
       {"jsonrpc": "2.0", "error": {"code": 10009, "message": "..."}}
WS:    {"jsonrpc": "2.0", "id": 1, "method": "public/subscribe", "params": {"channels": ["book.BTC-PERPETUAL.100ms"]}}
       {"method": "subscription", "params": {"channel": "book.BTC-PERPETUAL.100ms",
        "data": {"type": "snapshot" | "change", "bids": [["new", 43000.5, 1200.0]], ...}}}

Raw channel levels are [action, price, amount] triples with action new/change/delete;
grouped channels (book.<instrument>.<group>.<depth>.<interval>) send [price, amount].
"""

from __future__ import annotations

import itertools
from typing import Any, Mapping

from loguru import logger

from ... import config
from ...errors import ParseError, VenueProtocolError
from ...types import Orderbook, OrderbookLevel
from ..levels import build_orderbook, normalize, parse_pair, parse_sequence, parse_timestamp
from ..local_book import LocalDepth

INTERVAL = "100ms"
LEVEL_ACTIONS = frozenset({"new", "change", "delete"})


def parse_level(entry: Any) -> OrderbookLevel:
    """Normalize either an [action, price, amount] triple or a [price, amount] pair."""
    if isinstance(entry, (list, tuple)) and len(entry) == 3 and isinstance(entry[0], str):
        action, price, amount = entry
        if action not in LEVEL_ACTIONS:
            raise ParseError(f"unknown Deribit level action: {action!r}")
        if action == "delete":
            return normalize(price, 0)
        return normalize(price, amount)
    return parse_pair(entry)


def parse_levels(entries: Any) -> list[OrderbookLevel]:
    if not isinstance(entries, (list, tuple)):
        raise ParseError(f"levels are not an array: {type(entries).__name__}")
    return [parse_level(entry) for entry in entries]


class DeribitCodec:
    """Request building and message normalization for Deribit."""

    def __init__(self, venue_config: config.VenueConfig = config.DERIBIT) -> None:
        self.config = venue_config
        self._ids = itertools.count(1)

    def channel(self, symbol: str) -> str:
        return f"book.{symbol}.{INTERVAL}"

    def snapshot_request(self, symbol: str) -> tuple[str, dict[str, Any]]:
        url = f"{self.config.api_url}/api/v2/public/get_order_book"
        return url, {"instrument_name": symbol, "depth": str(self.config.snapshot_depth)}

    def parse_snapshot(self, symbol: str, payload: Any) -> Orderbook:
        if not isinstance(payload, dict):
            raise ParseError(f"Deribit response is not an object: {type(payload).__name__}")

        error = payload.get("error")
        if error:
            if isinstance(error, dict):
                raise VenueProtocolError(self.config.name, str(error.get("message")), code=error.get("code"))
            raise VenueProtocolError(self.config.name, str(error))

        result = payload.get("result")
        if not result:
            raise VenueProtocolError(self.config.name, "No result data")

        try:
            return build_orderbook(
                self.config.name,
                symbol,
                parse_timestamp(result["timestamp"]),
                parse_levels(result["bids"]),
                parse_levels(result["asks"]),
                sequence=parse_sequence(result.get("change_id")),
            )
        except (KeyError, TypeError) as exc:
            raise ParseError(f"unexpected Deribit book shape: {exc!r}") from exc

    def _rpc(self, method: str, symbols: list[str]) -> dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": {"channels": [self.channel(s) for s in symbols]},
        }

    def subscribe_frame(self, symbols: list[str]) -> dict[str, Any]:
        return self._rpc("public/subscribe", symbols)

    def unsubscribe_frame(self, symbols: list[str]) -> dict[str, Any]:
        return self._rpc("public/unsubscribe", symbols)

    def parse_message(self, message: Any, depths: Mapping[str, LocalDepth]) -> list[Orderbook]:
        if not isinstance(message, dict):
            raise ParseError(f"Deribit message is not an object: {type(message).__name__}")

        if "error" in message:
            error = message["error"] or {}
            logger.warning("Deribit request {} failed: {}", message.get("id"), error)
            return []

        if message.get("method") != "subscription":
            if "result" in message:
                logger.debug("Deribit request {} acknowledged: {}", message.get("id"), message["result"])
            return []

        params = message.get("params")
        if not isinstance(params, dict):
            return []
        channel = params.get("channel")
        if not isinstance(channel, str) or not channel.startswith("book."):
            return []

        symbol = channel.split(".")[1]
        depth = depths.get(symbol)
        data = params.get("data")
        if depth is None or not data:
            return []

        try:
            bids = parse_levels(data.get("bids", []))
            asks = parse_levels(data.get("asks", []))
            ts = parse_timestamp(data["timestamp"])
            seq = parse_sequence(data.get("change_id"))
        except (KeyError, TypeError, AttributeError) as exc:
            raise ParseError(f"unexpected Deribit book update shape: {exc!r}") from exc

        if data.get("type", "snapshot") == "snapshot":
            depth.load_snapshot(bids, asks, seq)
        elif not depth.apply_delta(bids, asks, seq):
            logger.debug("Deribit {} change before snapshot, dropped", symbol)
            return []

        return [depth.to_orderbook(ts, depth=self.config.stream_depth)]
