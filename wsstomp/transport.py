import asyncio
import logging
from typing import Any, Optional, Sequence, Union

import async_timeout
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from wsstomp.errors import StompConnectionLostError
from wsstomp.stomp import Stomp

logger = logging.getLogger("wsstomp.transport")


class WebSocketTransport:
    """Adapts a websocket connection to the ``write`` / ``close`` interface
    the session expects, and feeds inbound messages back to it.

    Writes are queued and sent in order by a single writer task.
    """

    def __init__(
        self,
        websocket: Any,
        protocol: Any,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._websocket = websocket
        self._protocol = protocol
        self._loop = loop or asyncio.get_event_loop()
        self._outbox: "asyncio.Queue[Optional[Union[str, bytes]]]" = asyncio.Queue()
        self._closing = False

        self._reader: Optional["asyncio.Task[None]"] = None
        self._writer: Optional["asyncio.Task[None]"] = None

    def start(self) -> None:
        self._writer = self._loop.create_task(self._write_loop())
        self._reader = self._loop.create_task(self._read_loop())

    def is_closing(self) -> bool:
        return self._closing

    def write(self, data: Union[str, bytes]) -> None:
        if self._closing:
            logger.debug("Transport closing, dropping %d chars", len(data))
            return

        self._outbox.put_nowait(data)

    def close(self) -> None:
        if self._closing:
            return

        self._closing = True
        # Let queued writes go out before the socket is closed
        self._outbox.put_nowait(None)

    async def _write_loop(self) -> None:
        try:
            while True:
                data = await self._outbox.get()
                if data is None:
                    break
                await self._websocket.send(data)
        except ConnectionClosed as exc:
            logger.debug("Could not write, connection closed: %s", exc)

        await self._websocket.close()

    async def _read_loop(self) -> None:
        exc: Optional[Exception] = None

        try:
            async for message in self._websocket:
                self._protocol.data_received(message)
        except ConnectionClosed as e:
            exc = e
        except Exception as e:
            logger.exception("Error handling inbound data, closing connection")
            exc = e
            await self._websocket.close()

        self._closing = True
        if self._writer and not self._writer.done():
            self._writer.cancel()

        self._protocol.connection_lost(exc)


async def open_connection(
    url: str,
    protocol: Any,
    subprotocols: Sequence[str] = Stomp.SUBPROTOCOLS,
    timeout: float = 10.0,
    loop: Optional[asyncio.AbstractEventLoop] = None,
    **kwargs: Any,
) -> WebSocketTransport:
    logger.info("Opening WebSocket to %s", url)

    try:
        async with async_timeout.timeout(timeout):
            websocket = await websockets.connect(
                url, subprotocols=list(subprotocols), **kwargs
            )
    except (WebSocketException, asyncio.TimeoutError) as exc:
        raise StompConnectionLostError(f"Could not open {url}", exc) from exc

    logger.debug("WebSocket opened, subprotocol %s", websocket.subprotocol)

    transport = WebSocketTransport(websocket, protocol, loop=loop)
    protocol.connection_made(transport)
    transport.start()

    return transport
