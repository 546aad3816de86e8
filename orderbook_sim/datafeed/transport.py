"""
aiohttp transport shared by the venue adapters.

Handles:
1. One-shot REST requests (snapshot fetches) with error classification
2. A persistent WebSocket per venue with bounded exponential-backoff reconnect
3. Re-subscription hook on every (re)connect
4. orjson decoding of every frame; undecodable frames are logged and dropped
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

import aiohttp
import orjson
from loguru import logger

from .. import config
from ..errors import NetworkError, ParseError
from ..types import ConnectionStatus, Venue

MessageHandler = Callable[[Any], None]
OpenHandler = Callable[[], Awaitable[None]]
StatusHandler = Callable[[ConnectionStatus], None]


def json_loads(data: bytes | str) -> Any:
    try:
        return orjson.loads(data)
    except orjson.JSONDecodeError as exc:
        raise ParseError(f"invalid JSON: {exc}") from exc


class HttpTransport:
    """
    REST capability: fetch(url) -> JSON or NetworkError.

    Bodies of 4xx responses are still returned when they decode as JSON, since
    venues put their own error code/message there; adapters turn those into
    VenueProtocolError.
    """

    def __init__(self, session: aiohttp.ClientSession, timeout: float = config.HTTP_TIMEOUT_SEC) -> None:
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def get_json(self, url: str, params: Optional[dict[str, Any]] = None) -> Any:
        try:
            async with self._session.get(url, params=params, timeout=self._timeout) as resp:
                status = resp.status
                reason = resp.reason
                body = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise NetworkError(f"GET {url} failed: {exc!r}") from exc

        if status >= 500:
            raise NetworkError(f"GET {url} failed: HTTP {status} {reason}")

        try:
            data = json_loads(body)
        except ParseError:
            if status >= 400:
                raise NetworkError(f"GET {url} failed: HTTP {status} {reason}") from None
            raise

        if status >= 400 and not isinstance(data, dict):
            raise NetworkError(f"GET {url} failed: HTTP {status} {reason}")
        return data


class VenueStream:
    """
    One WebSocket connection to a venue's public stream.

    on_open is awaited after every successful (re)connect so the adapter can
    resubscribe everything that was active before a drop. After
    max_attempts consecutive failed reconnects the stream reports
    DISCONNECTED and stops.
    """

    def __init__(
        self,
        venue: Venue,
        url: str,
        session: aiohttp.ClientSession,
        on_message: MessageHandler,
        on_open: OpenHandler,
        on_status: StatusHandler,
        reconnect_interval: float = config.RECONNECT_INTERVAL_SEC,
        backoff: float = config.RECONNECT_BACKOFF,
        max_delay: float = config.MAX_RECONNECT_DELAY_SEC,
        max_attempts: int = config.MAX_RECONNECT_ATTEMPTS,
        heartbeat: float = config.WS_HEARTBEAT_SEC,
    ) -> None:
        self.venue = venue
        self.url = url
        self._session = session
        self._on_message = on_message
        self._on_open = on_open
        self._on_status = on_status

        self.reconnect_interval = reconnect_interval
        self.backoff = backoff
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self.heartbeat = heartbeat

        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._ready = False
        self._closing = False
        self._task: Optional[asyncio.Task[None]] = None
        self.status = ConnectionStatus.DISCONNECTED

    @property
    def is_open(self) -> bool:
        return self._ready and self._ws is not None and not self._ws.closed

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the connection loop if it is not already running."""
        if self.running:
            return
        self._closing = False
        self._task = asyncio.create_task(self._run(), name=f"{self.venue.value}-stream")

    async def send(self, payload: dict[str, Any]) -> bool:
        """Send a JSON frame. Returns False if the socket is not open."""
        if not self.is_open:
            logger.debug("{} stream not open, frame deferred to next connect", self.venue.value)
            return False
        assert self._ws is not None
        await self._ws.send_str(orjson.dumps(payload).decode())
        return True

    async def close(self) -> None:
        self._closing = True
        self._ready = False
        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            await ws.close()
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._set_status(ConnectionStatus.DISCONNECTED)

    def reconnect_delay(self, attempt: int) -> float:
        """Delay before reconnect attempt number `attempt` (1-based)."""
        return min(self.reconnect_interval * self.backoff ** (attempt - 1), self.max_delay)

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self.status:
            return
        self.status = status
        self._on_status(status)

    async def _run(self) -> None:
        attempts = 0

        while not self._closing:
            self._set_status(
                ConnectionStatus.CONNECTING if attempts == 0 else ConnectionStatus.RECONNECTING
            )
            try:
                async with self._session.ws_connect(self.url, heartbeat=self.heartbeat) as ws:
                    self._ws = ws
                    self._ready = True
                    self._set_status(ConnectionStatus.CONNECTED)
                    logger.info("WebSocket connected to {}", self.venue.value)

                    await self._on_open()

                    async for msg in ws:
                        if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                            # only a connection that delivers data counts as recovered
                            attempts = 0
                            self._dispatch(msg.data)
                        elif msg.type == aiohttp.WSMsgType.ERROR:
                            logger.warning("{} WebSocket error: {}", self.venue.value, ws.exception())
                            break
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
                logger.warning("{} WebSocket connection failed: {!r}", self.venue.value, exc)
            finally:
                self._ready = False
                self._ws = None

            if self._closing:
                break

            attempts += 1
            if attempts > self.max_attempts:
                logger.error(
                    "Giving up on {} after {} reconnect attempts", self.venue.value, self.max_attempts
                )
                self._set_status(ConnectionStatus.DISCONNECTED)
                return

            delay = self.reconnect_delay(attempts)
            logger.info(
                "Reconnecting to {} in {:.1f}s ({}/{})",
                self.venue.value, delay, attempts, self.max_attempts,
            )
            await asyncio.sleep(delay)

    def _dispatch(self, raw: bytes | str) -> None:
        """Decode and hand a frame to the adapter. One bad frame never ends the stream."""
        try:
            data = json_loads(raw)
        except ParseError as exc:
            logger.warning("Dropping undecodable {} frame: {}", self.venue.value, exc)
            return

        try:
            self._on_message(data)
        except Exception:
            logger.exception("Error handling {} WebSocket message", self.venue.value)
