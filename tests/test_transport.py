import asyncio

import aiohttp
import pytest

from orderbook_sim.datafeed.transport import HttpTransport, VenueStream, json_loads
from orderbook_sim.errors import NetworkError, ParseError
from orderbook_sim.types import ConnectionStatus, Venue


class FakeResponse:
    def __init__(self, status, body, reason="OK"):
        self.status = status
        self.reason = reason
        self._body = body

    async def read(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, response=None, error=None, ws=None):
        self.response = response
        self.error = error
        self.ws = ws
        self.get_calls = []
        self.ws_calls = 0

    def get(self, url, params=None, timeout=None):
        self.get_calls.append((url, params))
        if self.error is not None:
            raise self.error
        return self.response

    def ws_connect(self, url, heartbeat=None):
        self.ws_calls += 1
        if self.ws is None:
            raise aiohttp.ClientConnectionError("refused")
        return self.ws


class FakeMsg:
    def __init__(self, type_, data):
        self.type = type_
        self.data = data


class FakeWS:
    def __init__(self, messages):
        self.messages = list(messages)
        self.closed = False

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for msg in self.messages:
            yield msg

    async def close(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.closed = True
        return False


def make_stream(session=None, on_message=None, on_open=None, statuses=None, **kw):
    async def noop_open():
        pass

    return VenueStream(
        Venue.OKX,
        "wss://example.invalid/ws",
        session,
        on_message or (lambda data: None),
        on_open or noop_open,
        (statuses.append if statuses is not None else (lambda status: None)),
        **kw,
    )


def test_json_loads():
    assert json_loads(b'{"a": 1}') == {"a": 1}
    with pytest.raises(ParseError):
        json_loads("{nope")


@pytest.mark.asyncio
async def test_http_returns_json_body():
    session = FakeSession(FakeResponse(200, b'{"code": "0"}'))
    http = HttpTransport(session)
    assert await http.get_json("https://x/books", {"instId": "BTC-USDT"}) == {"code": "0"}
    assert session.get_calls == [("https://x/books", {"instId": "BTC-USDT"})]


@pytest.mark.asyncio
async def test_http_error_classification():
    # server errors and transport failures are network errors
    with pytest.raises(NetworkError):
        await HttpTransport(FakeSession(FakeResponse(502, b"bad gateway", "Bad Gateway"))).get_json("u")
    with pytest.raises(NetworkError):
        await HttpTransport(FakeSession(error=aiohttp.ClientConnectionError("down"))).get_json("u")
    with pytest.raises(NetworkError):
        await HttpTransport(FakeSession(FakeResponse(404, b"<html>", "Not Found"))).get_json("u")

    # venue error bodies on 4xx are handed to the adapter
    body = await HttpTransport(FakeSession(FakeResponse(400, b'{"retCode": 10001}'))).get_json("u")
    assert body == {"retCode": 10001}

    with pytest.raises(ParseError):
        await HttpTransport(FakeSession(FakeResponse(200, b"not json"))).get_json("u")


def test_reconnect_delay_backs_off_to_cap():
    stream = make_stream(reconnect_interval=5.0, backoff=2.0, max_delay=30.0)
    assert [stream.reconnect_delay(n) for n in (1, 2, 3, 4, 5)] == [5.0, 10.0, 20.0, 30.0, 30.0]


def test_dispatch_drops_bad_frames_and_survives_handler_errors():
    received = []

    def on_message(data):
        if data == {"boom": True}:
            raise RuntimeError("handler bug")
        received.append(data)

    stream = make_stream(on_message=on_message)
    stream._dispatch('{"a": 1}')
    stream._dispatch("garbage")
    stream._dispatch('{"boom": true}')
    stream._dispatch(b'{"b": 2}')

    assert received == [{"a": 1}, {"b": 2}]


@pytest.mark.asyncio
async def test_send_when_closed_returns_false():
    stream = make_stream()
    assert stream.is_open is False
    assert await stream.send({"op": "subscribe"}) is False


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts_and_can_restart():
    session = FakeSession()
    statuses = []
    stream = make_stream(session, statuses=statuses, reconnect_interval=0.0, max_delay=0.0, max_attempts=2)

    stream.start()
    await stream._task

    assert session.ws_calls == 3
    assert statuses == [
        ConnectionStatus.CONNECTING,
        ConnectionStatus.RECONNECTING,
        ConnectionStatus.DISCONNECTED,
    ]
    assert not stream.running

    stream.start()
    await stream._task
    assert session.ws_calls == 6


@pytest.mark.asyncio
async def test_connect_runs_open_hook_and_dispatches_frames():
    ws = FakeWS([
        FakeMsg(aiohttp.WSMsgType.TEXT, '{"n": 1}'),
        FakeMsg(aiohttp.WSMsgType.TEXT, "nope"),
        FakeMsg(aiohttp.WSMsgType.BINARY, b'{"n": 2}'),
    ])
    session = FakeSession(ws=ws)
    received = []
    statuses = []
    open_seen = []

    async def on_open():
        open_seen.append(stream.is_open)

    stream = make_stream(
        session,
        on_message=received.append,
        on_open=on_open,
        statuses=statuses,
        reconnect_interval=0.0,
        max_attempts=0,
    )
    stream.start()
    await stream._task

    assert open_seen == [True]
    assert received == [{"n": 1}, {"n": 2}]
    assert statuses == [
        ConnectionStatus.CONNECTING,
        ConnectionStatus.CONNECTED,
        ConnectionStatus.DISCONNECTED,
    ]
    assert stream.is_open is False


@pytest.mark.asyncio
async def test_close_reports_disconnected():
    statuses = []
    stream = make_stream(FakeSession(), statuses=statuses, reconnect_interval=60.0, max_attempts=5)
    stream.start()
    # let the first attempt fail and park in the backoff sleep
    await asyncio.sleep(0)
    assert statuses == [ConnectionStatus.CONNECTING]

    await stream.close()

    assert statuses[-1] is ConnectionStatus.DISCONNECTED
    assert not stream.running


@pytest.mark.asyncio
async def test_connections_that_close_without_data_count_as_failures():
    session = FakeSession(ws=FakeWS([]))
    statuses = []
    stream = make_stream(session, statuses=statuses, reconnect_interval=0.0, max_delay=0.0, max_attempts=2)

    stream.start()
    await asyncio.wait_for(stream._task, 1.0)

    assert session.ws_calls == 3
    assert statuses == [
        ConnectionStatus.CONNECTING,
        ConnectionStatus.CONNECTED,
        ConnectionStatus.RECONNECTING,
        ConnectionStatus.CONNECTED,
        ConnectionStatus.RECONNECTING,
        ConnectionStatus.CONNECTED,
        ConnectionStatus.DISCONNECTED,
    ]
    assert not stream.running
