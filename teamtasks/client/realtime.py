"""
Client side of the team event stream.

Connects to /ws with the bearer token, hands parsed events to a callback and
reconnects with exponential backoff when the connection drops. After every
reconnect the on_reconnect callback runs so views can refetch whatever they
may have missed. Views stay correct without the channel; it only makes them
fresher.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from ..realtime.events import parse_event
from ..utils.retry import retry_with_backoff, RetryExhausted, REALTIME_RETRY

logger = logging.getLogger(__name__)

EventCallback = Callable[[Any], Awaitable[None]]
ReconnectCallback = Callable[[], Awaitable[None]]

RECONNECTABLE_ERRORS = (aiohttp.ClientConnectionError, asyncio.TimeoutError, OSError)


def websocket_url(base_url: str, token: str) -> str:
    base = base_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/ws?token={token}"


class RealtimeChannel:
    """Receive-only event channel with automatic reconnect."""

    def __init__(
        self,
        base_url: str,
        token: str,
        on_event: EventCallback,
        on_reconnect: Optional[ReconnectCallback] = None,
        session: Optional[aiohttp.ClientSession] = None,
        heartbeat: float = 30.0,
        idle_delay: float = 30.0,
    ):
        self.url = websocket_url(base_url, token)
        self.on_event = on_event
        self.on_reconnect = on_reconnect
        self.heartbeat = heartbeat
        self.idle_delay = idle_delay
        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._stopped = asyncio.Event()
        self.connected = False

    async def _connect(self) -> aiohttp.ClientWebSocketResponse:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return await self._session.ws_connect(self.url, heartbeat=self.heartbeat)

    async def _dispatch(self, data: Any) -> None:
        event = parse_event(data)
        if event is None:
            return
        try:
            await self.on_event(event)
        except Exception as e:
            logger.error(f"Event handler failed for {event.type}: {e}", exc_info=True)

    async def _listen(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        async for message in ws:
            if message.type == aiohttp.WSMsgType.TEXT:
                try:
                    data = message.json()
                except ValueError:
                    logger.debug("Ignoring non-JSON frame")
                    continue
                await self._dispatch(data)
            elif message.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                break

    async def run(self) -> None:
        """Connect and listen until stop() is called."""
        has_connected = False
        while not self._stopped.is_set():
            try:
                self._ws = await retry_with_backoff(
                    self._connect,
                    retry_on=RECONNECTABLE_ERRORS,
                    skip_on=(aiohttp.WSServerHandshakeError,),
                    **REALTIME_RETRY,
                )
            except aiohttp.WSServerHandshakeError as e:
                logger.warning(f"Event stream refused the connection ({e.status}), giving up")
                break
            except RetryExhausted as e:
                logger.warning(f"Event stream unavailable, retrying in {self.idle_delay}s: {e}")
                try:
                    await asyncio.wait_for(self._stopped.wait(), timeout=self.idle_delay)
                except asyncio.TimeoutError:
                    pass
                continue

            self.connected = True
            logger.info("Event stream connected")
            if has_connected and self.on_reconnect is not None:
                try:
                    await self.on_reconnect()
                except Exception as e:
                    logger.error(f"Reconnect handler failed: {e}", exc_info=True)
            has_connected = True

            try:
                await self._listen(self._ws)
            except RECONNECTABLE_ERRORS as e:
                logger.warning(f"Event stream dropped: {e}")
            finally:
                self.connected = False
                if not self._ws.closed:
                    await self._ws.close()
                self._ws = None

        await self._close_session()

    async def stop(self) -> None:
        self._stopped.set()
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        await self._close_session()

    async def _close_session(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None
