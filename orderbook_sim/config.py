"""
Venue endpoints, supported symbols and feed tuning knobs.

Reconnect and HTTP settings can be overridden through ORDERBOOK_SIM_* environment
variables; everything else is static per venue.
"""

from __future__ import annotations

import os
from typing import NamedTuple

from .types import Venue


class VenueConfig(NamedTuple):
    name: Venue
    api_url: str
    ws_url: str
    symbols: tuple[str, ...]
    snapshot_depth: int     # Levels requested per side on REST snapshots
    stream_depth: int       # Levels per side on the WS book channel


OKX = VenueConfig(
    name=Venue.OKX,
    api_url="https://www.okx.com",
    ws_url="wss://ws.okx.com:8443/ws/v5/public",
    symbols=(
        "BTC-USDT", "ETH-USDT", "BTC-USD-SWAP", "ETH-USD-SWAP",
        "SOL-USDT", "ADA-USDT", "AVAX-USDT", "DOT-USDT",
    ),
    snapshot_depth=15,
    stream_depth=400,
)

BYBIT = VenueConfig(
    name=Venue.BYBIT,
    api_url="https://api.bybit.com",
    ws_url="wss://stream.bybit.com/v5/public/spot",
    symbols=(
        "BTCUSDT", "ETHUSDT", "SOLUSDT", "ADAUSDT",
        "AVAXUSDT", "DOTUSDT", "LINKUSDT", "UNIUSDT",
    ),
    snapshot_depth=25,
    stream_depth=50,
)

DERIBIT = VenueConfig(
    name=Venue.DERIBIT,
    api_url="https://www.deribit.com",
    ws_url="wss://www.deribit.com/ws/api/v2",
    symbols=(
        "BTC-PERPETUAL", "ETH-PERPETUAL", "SOL-PERPETUAL",
        "BTC-29MAR25", "ETH-29MAR25", "BTC-28JUN25", "ETH-28JUN25",
    ),
    snapshot_depth=15,
    stream_depth=0,         # book.<instrument>.100ms carries the full book
)

VENUES: dict[Venue, VenueConfig] = {cfg.name: cfg for cfg in (OKX, BYBIT, DERIBIT)}

# Stream reconnect policy: exponential backoff, bounded attempts
RECONNECT_INTERVAL_SEC = float(os.getenv("ORDERBOOK_SIM_RECONNECT_INTERVAL", "5.0"))
RECONNECT_BACKOFF = float(os.getenv("ORDERBOOK_SIM_RECONNECT_BACKOFF", "2.0"))
MAX_RECONNECT_DELAY_SEC = float(os.getenv("ORDERBOOK_SIM_MAX_RECONNECT_DELAY", "30.0"))
MAX_RECONNECT_ATTEMPTS = int(os.getenv("ORDERBOOK_SIM_MAX_RECONNECT_ATTEMPTS", "5"))

HTTP_TIMEOUT_SEC = float(os.getenv("ORDERBOOK_SIM_HTTP_TIMEOUT", "10.0"))
WS_HEARTBEAT_SEC = 20.0

# Per-subscription queue of pending books; oldest dropped when full
SUBSCRIPTION_QUEUE_SIZE = int(os.getenv("ORDERBOOK_SIM_QUEUE_SIZE", "5"))

# Synthetic (mock) feed
MOCK_UPDATE_INTERVAL_SEC = (1.0, 3.0)
MOCK_LEVELS = 15
MOCK_BASE_PRICES: dict[str, float] = {
    "BTC-USDT": 43000.0,
    "ETH-USDT": 2600.0,
    "BTC-USD-SWAP": 43000.0,
    "ETH-USD-SWAP": 2600.0,
    "BTCUSDT": 43000.0,
    "ETHUSDT": 2600.0,
    "SOLUSDT": 100.0,
    "ADAUSDT": 0.45,
    "BTC-PERPETUAL": 43000.0,
    "ETH-PERPETUAL": 2600.0,
    "BTC-29MAR25": 43500.0,
}
MOCK_DEFAULT_PRICE = 1000.0

# Display
STALE_AFTER_MS = 30_000
