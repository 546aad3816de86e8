"""Venue feed adapters: OKX, Bybit, Deribit and a synthetic offline feed."""

from .base import VenueCodec, VenueFeed
from .bybit import BybitCodec
from .common import FeedSubscriptions, StreamingVenueFeed
from .deribit import DeribitCodec
from .okx import OKXCodec
from .registry import build_feeds
from .synthetic import SyntheticFeed, generate_book

__all__ = [
    "BybitCodec",
    "DeribitCodec",
    "FeedSubscriptions",
    "OKXCodec",
    "StreamingVenueFeed",
    "SyntheticFeed",
    "VenueCodec",
    "VenueFeed",
    "build_feeds",
    "generate_book",
]
