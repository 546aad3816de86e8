import numpy as np
import pytest

from orderbook_sim.datafeed.adapters import BybitCodec, DeribitCodec, OKXCodec, StreamingVenueFeed, generate_book
from orderbook_sim.datafeed.adapters.deribit import parse_level
from orderbook_sim.errors import NetworkError, ParseError, VenueProtocolError
from orderbook_sim.types import ConnectionStatus, OrderbookLevel, Venue

from .conftest import FakeHttp


def okx_book_msg(symbol, bids, asks, ts="1000", seq=1, action="snapshot", channel="books"):
    return {
        "arg": {"channel": channel, "instId": symbol},
        "action": action,
        "data": [{"bids": bids, "asks": asks, "ts": ts, "seqId": seq}],
    }


def bybit_book_msg(symbol, bids, asks, ts=1000, u=5, kind="snapshot"):
    return {
        "topic": f"orderbook.50.{symbol}",
        "type": kind,
        "ts": ts,
        "data": {"s": symbol, "b": bids, "a": asks, "u": u, "seq": u},
    }


def deribit_book_msg(symbol, bids, asks, ts=1000, change_id=1, kind="snapshot"):
    return {
        "jsonrpc": "2.0",
        "method": "subscription",
        "params": {
            "channel": f"book.{symbol}.100ms",
            "data": {
                "type": kind,
                "timestamp": ts,
                "instrument_name": symbol,
                "change_id": change_id,
                "bids": bids,
                "asks": asks,
            },
        },
    }


def pairs(levels):
    return [(l.price, l.quantity) for l in levels]


# --- REST snapshots -----------------------------------------------------------


@pytest.mark.asyncio
async def test_okx_snapshot(streams):
    http = FakeHttp({
        "code": "0",
        "msg": "",
        "data": [{
            "asks": [["101.5", "2", "0", "1"], ["101.0", "1", "0", "1"]],
            "bids": [["100.0", "1.5", "0", "2"]],
            "ts": "1700000000000",
            "seqId": 55,
        }],
    })
    feed = StreamingVenueFeed(OKXCodec(), http, streams)

    book = await feed.fetch_snapshot("BTC-USDT")

    assert http.calls == [("https://www.okx.com/api/v5/market/books", {"instId": "BTC-USDT", "sz": "15"})]
    assert book.venue is Venue.OKX
    assert book.timestamp == 1700000000000
    assert book.sequence == 55
    assert pairs(book.asks) == [(101.0, 1.0), (101.5, 2.0)]
    assert [l.total for l in book.asks] == [1.0, 3.0]
    assert pairs(book.bids) == [(100.0, 1.5)]


@pytest.mark.asyncio
async def test_okx_protocol_error(streams):
    http = FakeHttp({"code": "51001", "msg": "Instrument ID does not exist", "data": []})
    feed = StreamingVenueFeed(OKXCodec(), http, streams)

    with pytest.raises(VenueProtocolError) as exc_info:
        await feed.fetch_snapshot("NOPE-USDT")

    assert exc_info.value.code == "51001"
    assert str(exc_info.value) == "OKX API error (code 51001): Instrument ID does not exist"


@pytest.mark.asyncio
async def test_bybit_snapshot_and_error(streams):
    http = FakeHttp({
        "retCode": 0,
        "retMsg": "OK",
        "result": {"s": "BTCUSDT", "b": [["100", "1"]], "a": [["101", "2"]], "ts": 1700000000000, "u": 9},
    })
    feed = StreamingVenueFeed(BybitCodec(), http, streams)

    book = await feed.fetch_snapshot("BTCUSDT")
    url, params = http.calls[0]
    assert url == "https://api.bybit.com/v5/market/orderbook"
    assert params == {"category": "spot", "symbol": "BTCUSDT", "limit": "25"}
    assert book.venue is Venue.BYBIT
    assert book.sequence == 9
    assert pairs(book.bids) == [(100.0, 1.0)]

    http.payload = {"retCode": 10001, "retMsg": "params error", "result": {}}
    with pytest.raises(VenueProtocolError) as exc_info:
        await feed.fetch_snapshot("BTCUSDT")
    assert exc_info.value.code == 10001
    assert exc_info.value.message == "params error"


@pytest.mark.asyncio
async def test_deribit_snapshot_and_errors(streams):
    http = FakeHttp({
        "jsonrpc": "2.0",
        "result": {"bids": [[100.0, 10.0]], "asks": [[101.0, 20.0]], "timestamp": 1700000000000, "change_id": 7},
    })
    feed = StreamingVenueFeed(DeribitCodec(), http, streams)

    book = await feed.fetch_snapshot("BTC-PERPETUAL")
    assert http.calls[0][1] == {"instrument_name": "BTC-PERPETUAL", "depth": "15"}
    assert pairs(book.asks) == [(101.0, 20.0)]
    assert book.sequence == 7

    http.payload = {"jsonrpc": "2.0", "error": {"code": 10009, "message": "instrument_not_found"}}
    with pytest.raises(VenueProtocolError) as exc_info:
        await feed.fetch_snapshot("BTC-NOPE")
    assert exc_info.value.code == 10009

    http.payload = {"jsonrpc": "2.0"}
    with pytest.raises(VenueProtocolError, match="No result data"):
        await feed.fetch_snapshot("BTC-PERPETUAL")


@pytest.mark.asyncio
async def test_snapshot_errors_propagate(streams):
    feed = StreamingVenueFeed(OKXCodec(), FakeHttp(error=NetworkError("timeout")), streams)
    with pytest.raises(NetworkError):
        await feed.fetch_snapshot("BTC-USDT")

    bad = FakeHttp({"code": "0", "data": [{"bids": [["x", "1"]], "asks": [], "ts": "1"}]})
    feed = StreamingVenueFeed(OKXCodec(), bad, streams)
    with pytest.raises(ParseError):
        await feed.fetch_snapshot("BTC-USDT")


# --- streaming ----------------------------------------------------------------


@pytest.mark.asyncio
async def test_okx_snapshot_then_update(streams):
    feed = StreamingVenueFeed(OKXCodec(), FakeHttp(), streams)
    received = []
    await feed.subscribe_to_stream("BTC-USDT", received.append)

    feed.handle_message(okx_book_msg(
        "BTC-USDT",
        bids=[["100", "1", "0", "1"]],
        asks=[["101", "1", "0", "1"], ["102", "2", "0", "1"]],
    ))
    feed.handle_message(okx_book_msg(
        "BTC-USDT",
        bids=[["100.5", "3", "0", "1"]],
        asks=[["101", "0", "0", "0"]],
        ts="1001",
        seq=2,
        action="update",
    ))

    assert len(received) == 2
    latest = received[-1]
    assert pairs(latest.bids) == [(100.5, 3.0), (100.0, 1.0)]
    assert pairs(latest.asks) == [(102.0, 2.0)]
    assert latest.timestamp == 1001
    assert latest.sequence == 2
    # earlier book is untouched
    assert pairs(received[0].asks) == [(101.0, 1.0), (102.0, 2.0)]


@pytest.mark.asyncio
async def test_irrelevant_and_malformed_messages_are_dropped(streams):
    feed = StreamingVenueFeed(OKXCodec(), FakeHttp(), streams)
    received = []
    await feed.subscribe_to_stream("BTC-USDT", received.append)

    feed.handle_message({"event": "subscribe", "arg": {"channel": "books", "instId": "BTC-USDT"}})
    feed.handle_message({"event": "error", "code": "60012", "msg": "Invalid request"})
    feed.handle_message(okx_book_msg("BTC-USDT", [["100", "1"]], [["101", "1"]], channel="trades"))
    feed.handle_message(okx_book_msg("ETH-USDT", [["100", "1"]], [["101", "1"]]))
    feed.handle_message(okx_book_msg("BTC-USDT", [["abc", "1"]], [["101", "1"]]))
    feed.handle_message(okx_book_msg("BTC-USDT", [["102", "1"]], [["101", "1"]]))
    feed.handle_message(["not", "an", "object"])
    feed.handle_message(okx_book_msg("BTC-USDT", [["100", "1"]], [["101", "1"]], action="update"))

    assert received == []

    feed.handle_message(okx_book_msg("BTC-USDT", [["100", "1"]], [["101", "1"]]))
    assert len(received) == 1


@pytest.mark.asyncio
async def test_crossing_delta_is_dropped_and_stream_recovers(streams):
    feed = StreamingVenueFeed(OKXCodec(), FakeHttp(), streams)
    received = []
    await feed.subscribe_to_stream("BTC-USDT", received.append)

    feed.handle_message(okx_book_msg("BTC-USDT", [["100", "1"]], [["101", "1"]]))
    feed.handle_message(okx_book_msg("BTC-USDT", [["102", "1"]], [], seq=2, action="update"))
    assert len(received) == 1

    feed.handle_message(okx_book_msg("BTC-USDT", [], [["103", "2"]], ts="1002", seq=3, action="update"))

    assert len(received) == 2
    assert pairs(received[-1].bids) == [(100.0, 1.0)]
    assert pairs(received[-1].asks) == [(101.0, 1.0), (103.0, 2.0)]
    assert received[-1].sequence == 3


@pytest.mark.asyncio
async def test_subscribe_is_idempotent_and_resubscribes_on_connect(streams):
    feed = StreamingVenueFeed(OKXCodec(), FakeHttp(), streams)
    stream = streams.stream

    await feed.subscribe_to_stream("BTC-USDT", lambda book: None)
    await feed.subscribe_to_stream("ETH-USDT", lambda book: None)
    assert stream.starts == 2
    assert stream.sent == []

    await stream.connect()
    assert stream.sent == [{
        "op": "subscribe",
        "args": [
            {"channel": "books", "instId": "BTC-USDT"},
            {"channel": "books", "instId": "ETH-USDT"},
        ],
    }]

    received = []
    await feed.subscribe_to_stream("BTC-USDT", received.append)
    assert len(stream.sent) == 1

    # reconnect replays one subscribe for everything still active
    await stream.connect()
    assert len(stream.sent) == 2
    assert stream.sent[1] == stream.sent[0]

    feed.handle_message(okx_book_msg("BTC-USDT", [["100", "1"]], [["101", "1"]]))
    assert len(received) == 1


@pytest.mark.asyncio
async def test_reconnect_discards_merged_state(streams):
    feed = StreamingVenueFeed(BybitCodec(), FakeHttp(), streams)
    received = []
    await feed.subscribe_to_stream("BTCUSDT", received.append)
    await streams.stream.connect()

    feed.handle_message(bybit_book_msg("BTCUSDT", [["100", "1"]], [["101", "1"]]))
    await streams.stream.connect()
    feed.handle_message(bybit_book_msg("BTCUSDT", [["99", "1"]], [], u=6, kind="delta"))

    assert len(received) == 1


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery_and_closes_idle_stream(streams):
    feed = StreamingVenueFeed(OKXCodec(), FakeHttp(), streams)
    stream = streams.stream
    received = []
    await feed.subscribe_to_stream("BTC-USDT", received.append)
    await stream.connect()

    await feed.unsubscribe("BTC-USDT")
    assert stream.sent[-1] == {"op": "unsubscribe", "args": [{"channel": "books", "instId": "BTC-USDT"}]}
    assert stream.closed == 1

    feed.handle_message(okx_book_msg("BTC-USDT", [["100", "1"]], [["101", "1"]]))
    assert received == []
    assert feed.subscribed_symbols() == []

    # unknown symbol is a no-op
    await feed.unsubscribe("BTC-USDT")
    assert stream.closed == 1


@pytest.mark.asyncio
async def test_status_listeners_see_stream_status(streams):
    feed = StreamingVenueFeed(DeribitCodec(), FakeHttp(), streams)
    seen = []
    feed.add_status_listener(lambda venue, status: seen.append((venue, status)))

    await feed.subscribe_to_stream("BTC-PERPETUAL", lambda book: None)
    await streams.stream.connect()
    streams.stream.set_status(ConnectionStatus.RECONNECTING)

    assert seen == [
        (Venue.DERIBIT, ConnectionStatus.CONNECTED),
        (Venue.DERIBIT, ConnectionStatus.RECONNECTING),
    ]
    assert feed.status is ConnectionStatus.RECONNECTING


@pytest.mark.asyncio
async def test_bybit_delta_merge_and_restart_snapshot(streams):
    feed = StreamingVenueFeed(BybitCodec(), FakeHttp(), streams)
    received = []
    await feed.subscribe_to_stream("BTCUSDT", received.append)
    await streams.stream.connect()
    assert streams.stream.sent == [{"op": "subscribe", "args": ["orderbook.50.BTCUSDT"]}]

    feed.handle_message({"op": "subscribe", "success": True, "ret_msg": ""})
    feed.handle_message(bybit_book_msg("BTCUSDT", [["100", "1"], ["99", "2"]], [["101", "1"]]))
    feed.handle_message(bybit_book_msg("BTCUSDT", [["99", "0"]], [["101.5", "4"]], ts=1001, u=6, kind="delta"))

    assert pairs(received[-1].bids) == [(100.0, 1.0)]
    assert pairs(received[-1].asks) == [(101.0, 1.0), (101.5, 4.0)]

    # u == 1: service restart, the "delta" carries the full book
    feed.handle_message(bybit_book_msg("BTCUSDT", [["90", "1"]], [["91", "1"]], ts=1002, u=1, kind="delta"))
    assert pairs(received[-1].bids) == [(90.0, 1.0)]
    assert pairs(received[-1].asks) == [(91.0, 1.0)]


@pytest.mark.asyncio
async def test_deribit_change_actions(streams):
    codec = DeribitCodec()
    feed = StreamingVenueFeed(codec, FakeHttp(), streams)
    received = []
    await feed.subscribe_to_stream("BTC-PERPETUAL", received.append)
    await streams.stream.connect()

    frame = streams.stream.sent[0]
    assert frame["method"] == "public/subscribe"
    assert frame["params"] == {"channels": ["book.BTC-PERPETUAL.100ms"]}
    assert codec.unsubscribe_frame(["BTC-PERPETUAL"])["id"] > frame["id"]

    feed.handle_message({"jsonrpc": "2.0", "id": 1, "result": ["book.BTC-PERPETUAL.100ms"]})
    feed.handle_message(deribit_book_msg(
        "BTC-PERPETUAL",
        bids=[["new", 100.0, 10.0], ["new", 99.0, 5.0]],
        asks=[["new", 101.0, 5.0]],
    ))
    feed.handle_message(deribit_book_msg(
        "BTC-PERPETUAL",
        bids=[["delete", 100.0, 0.0], ["new", 99.5, 3.0]],
        asks=[["change", 101.0, 7.0]],
        ts=1001,
        change_id=2,
        kind="change",
    ))

    assert len(received) == 2
    assert pairs(received[-1].bids) == [(99.5, 3.0), (99.0, 5.0)]
    assert pairs(received[-1].asks) == [(101.0, 7.0)]


def test_deribit_parse_level_shapes():
    assert parse_level(["new", 100.0, 2.0]) == OrderbookLevel(100.0, 2.0, 0.0)
    assert parse_level(["delete", 100.0, 2.0]) == OrderbookLevel(100.0, 0.0, 0.0)
    assert parse_level([100.0, 2.0]) == OrderbookLevel(100.0, 2.0, 0.0)
    with pytest.raises(ParseError):
        parse_level(["bogus", 100.0, 2.0])


def test_supported_symbols_are_static(streams):
    feed = StreamingVenueFeed(BybitCodec(), FakeHttp(), streams)
    symbols = feed.list_supported_symbols()
    assert "BTCUSDT" in symbols
    assert symbols == feed.list_supported_symbols()


def test_generate_book_is_seeded_and_uncrossed():
    first = generate_book(Venue.OKX, "BTC-USDT", np.random.default_rng(42), timestamp=1)
    second = generate_book(Venue.OKX, "BTC-USDT", np.random.default_rng(42), timestamp=1)

    assert first == second
    assert len(first.bids) == len(first.asks) == 15
    assert first.best_bid < first.best_ask
    assert first.spread == pytest.approx(first.mid_price * 0.001, rel=0.01)

    unknown = generate_book(Venue.OKX, "XYZ-USDT", np.random.default_rng(1), jitter=False)
    assert unknown.mid_price == pytest.approx(1000.0)
