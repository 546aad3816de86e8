"""Venue -> feed wiring."""

from __future__ import annotations

from typing import Optional

import aiohttp

from ...types import Venue
from ..transport import HttpTransport, MessageHandler, OpenHandler, StatusHandler, VenueStream
from .base import StreamFactory, VenueCodec, VenueFeed
from .bybit import BybitCodec
from .common import StreamingVenueFeed
from .deribit import DeribitCodec
from .okx import OKXCodec
from .synthetic import SyntheticFeed

CODECS: dict[Venue, type] = {
    Venue.OKX: OKXCodec,
    Venue.BYBIT: BybitCodec,
    Venue.DERIBIT: DeribitCodec,
}


def websocket_factory(session: aiohttp.ClientSession) -> StreamFactory:
    """StreamFactory producing aiohttp-backed VenueStreams on a shared session."""

    def factory(
        venue: Venue,
        url: str,
        on_message: MessageHandler,
        on_open: OpenHandler,
        on_status: StatusHandler,
    ) -> VenueStream:
        return VenueStream(venue, url, session, on_message, on_open, on_status)

    return factory


def build_feeds(
    session: Optional[aiohttp.ClientSession] = None,
    mock: bool = False,
    seed: Optional[int] = None,
) -> dict[Venue, VenueFeed]:
    """
    One feed per venue.

    mock=True returns SyntheticFeeds and needs no session.
    """
    if mock:
        return {
            venue: SyntheticFeed(venue, seed=None if seed is None else seed + i)
            for i, venue in enumerate(Venue)
        }

    if session is None:
        raise ValueError("a ClientSession is required for live feeds")

    http = HttpTransport(session)
    streams = websocket_factory(session)
    feeds: dict[Venue, VenueFeed] = {}
    for venue, codec_cls in CODECS.items():
        codec: VenueCodec = codec_cls()
        feeds[venue] = StreamingVenueFeed(codec, http, streams)
    return feeds
