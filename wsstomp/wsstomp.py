import asyncio
import functools
import inspect
import logging
import os
import uuid
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Set,
    Union,
)

from wsstomp.errors import (
    StompConnectionLostError,
    StompDisconnectedError,
    StompHeartbeatTimeoutError,
    StompUnsupportedCommandError,
)
from wsstomp.frame import Frame
from wsstomp.heartbeat import StompHeartbeater, StompHeartbeatMonitor
from wsstomp.protocol import HeadersType, StompProtocol
from wsstomp.stomp import Commands, Headers, Responses, Stomp
from wsstomp.subscription import Subscription, Transaction
from wsstomp.transport import open_connection


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


WSSTOMP_ENABLE_STATS = _env_flag("WSSTOMP_ENABLE_STATS")
WSSTOMP_STATS_INTERVAL = int(os.environ.get("WSSTOMP_STATS_INTERVAL", 10))
logger = logging.getLogger("wsstomp")

Callback = Callable[..., Any]
TransportFactory = Callable[["WsStomp"], Awaitable[Any]]


class State(Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    CLOSED = "CLOSED"


class WsStompStats:
    def __init__(self) -> None:
        self.connection_count = 0
        self.interval = WSSTOMP_STATS_INTERVAL
        self.connection_stats: List[Dict[str, int]] = []

    def print_stats(self) -> None:
        logger.info("==== WsStomp Stats ====")
        logger.info("Connections count: %s", self.connection_count)
        logger.info(" con | sent_msg | rec_msg ")
        for index, stats in enumerate(self.connection_stats):
            logger.info(
                " %3d | %8d | %7d ", index + 1, stats["sent_msg"], stats["rec_msg"]
            )
        logger.info("=======================")

    def new_connection(self) -> None:
        self.connection_count += 1
        self.connection_stats.insert(0, {"sent_msg": 0, "rec_msg": 0})

        if len(self.connection_stats) > 5:
            self.connection_stats.pop()

    def increment(self, field: str) -> None:
        if not self.connection_stats:
            self.new_connection()

        self.connection_stats[0][field] = self.connection_stats[0].get(field, 0) + 1

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.print_stats()


class WsStomp:
    """One STOMP session over a message oriented transport.

    The transport calls ``connection_made``, ``data_received`` and
    ``connection_lost`` the way asyncio drives a ``Protocol``; the session
    writes to it with ``transport.write`` and ``transport.close``. Every
    public method and callback runs on the session's event loop.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        heartbeat_outgoing: int = 10000,
        heartbeat_incoming: int = 10000,
        max_frame_size: int = 16 * 1024,
        client_id: Optional[str] = None,
        host: Optional[str] = None,
        subprotocols: Sequence[str] = Stomp.SUBPROTOCOLS,
        connect_timeout: float = 10.0,
        transport_factory: Optional[TransportFactory] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.handlers_map: Dict[str, Callable[[Frame], None]] = {
            Responses.CONNECTED: self._handle_connect,
            Responses.MESSAGE: self._handle_message,
            Responses.RECEIPT: self._handle_receipt,
            Responses.ERROR: self._handle_error,
        }

        self._url = url
        self._loop = loop or asyncio.get_event_loop()

        self._heartbeat = {
            "outgoing": heartbeat_outgoing,
            "incoming": heartbeat_incoming,
        }
        self.heartbeater: Optional[StompHeartbeater] = None
        self.heartbeat_monitor: Optional[StompHeartbeatMonitor] = None

        self._max_frame_size = max_frame_size
        self._protocol = StompProtocol()
        self._transport: Any = None
        self._state = State.DISCONNECTED

        self._counter = 0
        self._subscriptions: Dict[str, Callback] = {}
        self._server_activity = 0.0
        self._server: Optional[str] = None
        self._version: Optional[str] = None

        if transport_factory is None and url is not None:
            transport_factory = functools.partial(
                open_connection,
                url,
                subprotocols=subprotocols,
                timeout=connect_timeout,
                loop=self._loop,
            )
        self._transport_factory = transport_factory
        self._opener: Optional["asyncio.Task[None]"] = None

        self._connect_requested = False
        self._connect_headers: Dict[str, Any] = {}
        if host is not None:
            self._connect_headers[Headers.Connect.HOST] = host
        if client_id is not None:
            self._connect_headers[Headers.Connect.CLIENT_ID] = f"{client_id}-{uuid.uuid4()}"

        self._on_connect: Optional[Callback] = None
        self._on_error: Optional[Callback] = None
        self._on_receipt: Optional[Callback] = None
        self._callback_tasks: Set["asyncio.Future[Any]"] = set()

        self._stats: Optional[WsStompStats] = None
        self._stats_handler: Optional["asyncio.Task[None]"] = None
        if WSSTOMP_ENABLE_STATS:
            self._stats = WsStompStats()
            self._stats_handler = self._loop.create_task(self._stats.run())

    @property
    def state(self) -> State:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is State.CONNECTED

    @property
    def server(self) -> Optional[str]:
        return self._server

    @property
    def version(self) -> Optional[str]:
        return self._version

    def connect(
        self,
        login: Optional[str] = None,
        passcode: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
        on_connect: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
        on_receipt: Optional[Callback] = None,
    ) -> None:
        if on_connect:
            self._on_connect = on_connect
        if on_error:
            self._on_error = on_error
        if on_receipt:
            self._on_receipt = on_receipt

        if self._connect_requested:
            logger.debug("connect() already called, only callbacks were updated")
            return

        self._connect_requested = True

        self._connect_headers.update(headers or {})
        if login is not None:
            self._connect_headers[Headers.Connect.LOGIN] = login
        if passcode is not None:
            self._connect_headers[Headers.Connect.PASSCODE] = passcode

        if self._transport is None and self._transport_factory is not None:
            self._opener = self._loop.create_task(self._open())

    async def _open(self) -> None:
        try:
            await self._transport_factory(self)
        except StompConnectionLostError as exc:
            logger.info("Connecting to stomp server failed: %s", exc)
            self._lose_connection(exc)
        except OSError as exc:
            logger.info("Connecting to stomp server failed: %s", exc)
            self._lose_connection(
                StompConnectionLostError(f"Could not open {self._url}", exc)
            )
        finally:
            self._opener = None

    def connection_made(self, transport: Any) -> None:
        logger.info("Connected to %s", self._url or "transport")

        self._transport = transport
        self._server_activity = self._loop.time()

        if self._stats:
            self._stats.new_connection()

        headers: Dict[str, Any] = {
            Headers.Connect.ACCEPT_VERSION: Stomp.SUPPORTED_VERSIONS,
            Headers.Connect.HEART_BEAT: "{},{}".format(
                self._heartbeat["outgoing"], self._heartbeat["incoming"]
            ),
        }
        headers.update(self._connect_headers)

        self._state = State.CONNECTING
        self._transmit(Commands.CONNECT, headers)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        logger.debug("connection lost")

        if self._state is State.CLOSED:
            return

        if isinstance(exc, StompConnectionLostError):
            error = exc
        else:
            error = StompConnectionLostError(f"Lost connection to {self._url}", exc)

        logger.info("%s", error)
        self._lose_connection(error)

    def data_received(self, data: Union[str, bytes, None]) -> None:
        if not data:
            return

        if self._state is State.CLOSED:
            logger.debug("Session closed, ignoring %d chars", len(data))
            return

        self._server_activity = self._loop.time()
        self._protocol.feed_data(data)

        for frame in self._protocol.pop_frames():
            if self._state is State.CLOSED:
                break

            if frame.is_heartbeat:
                logger.debug("<<< PONG")
                continue

            logger.debug("<<< %s", frame.command)
            self.handlers_map.get(frame.command, self._handle_unsupported)(frame)

    def disconnect(
        self,
        callback: Optional[Callback] = None,
        headers: Optional[Dict[str, Any]] = None,
    ) -> None:
        transport = self._transport

        if transport is not None:
            self._transmit(Commands.DISCONNECT, headers)

        if self._opener:
            self._opener.cancel()

        # CLOSED first, so the transport's close does not report an error
        self._state = State.CLOSED
        if transport is not None:
            transport.close()

        self._cleanup()
        logger.info("Disconnected")
        self._notify(callback)

    def send(
        self,
        destination: str,
        body: Union[str, bytes] = "",
        headers: Optional[Dict[str, Any]] = None,
    ) -> Subscription:
        headers = dict(headers or {})
        headers[Headers.DESTINATION] = destination

        self._transmit(Commands.SEND, headers, body)

        send_id = headers.get(Headers.ID)
        return Subscription(self, destination, None if send_id is None else str(send_id))

    def subscribe(
        self,
        destination: str,
        handler: Callback,
        headers: Optional[Dict[str, Any]] = None,
    ) -> Subscription:
        headers = dict(headers or {})
        if not headers.get(Headers.ID):
            headers[Headers.ID] = self._next_id("sub")
        headers[Headers.DESTINATION] = destination

        subscription_id = str(headers[Headers.ID])

        self._transmit(Commands.SUBSCRIBE, headers)
        self._subscriptions[subscription_id] = handler

        return Subscription(self, destination, subscription_id, handler, headers)

    def unsubscribe(
        self, id: str, headers: Optional[Dict[str, Any]] = None
    ) -> None:
        self._subscriptions.pop(id, None)

        headers = dict(headers or {})
        headers[Headers.ID] = id
        self._transmit(Commands.UNSUBSCRIBE, headers)

    def begin(
        self,
        transaction: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
    ) -> Transaction:
        transaction_id = transaction or self._next_id("tx")
        self._transmit(Commands.BEGIN, self._transaction_headers(transaction_id, headers))

        return Transaction(self, transaction_id)

    def commit(
        self, transaction: str, headers: Optional[Dict[str, Any]] = None
    ) -> None:
        self._transmit(Commands.COMMIT, self._transaction_headers(transaction, headers))

    def abort(
        self, transaction: str, headers: Optional[Dict[str, Any]] = None
    ) -> None:
        self._transmit(Commands.ABORT, self._transaction_headers(transaction, headers))

    def ack(
        self,
        message_id: str,
        subscription: str,
        headers: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._transmit(
            Commands.ACK, self._ack_headers(message_id, subscription, headers)
        )

    def nack(
        self,
        message_id: str,
        subscription: str,
        headers: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._transmit(
            Commands.NACK, self._ack_headers(message_id, subscription, headers)
        )

    def _next_id(self, prefix: str) -> str:
        value = f"{prefix}-{self._counter}"
        self._counter += 1
        return value

    def _transaction_headers(
        self, transaction: str, headers: Optional[Dict[str, Any]]
    ) -> Dict[str, Any]:
        result = dict(headers or {})
        result[Headers.TRANSACTION] = transaction
        return result

    def _ack_headers(
        self,
        message_id: str,
        subscription: str,
        headers: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        result = dict(headers or {})
        result[Headers.MESSAGE_ID] = message_id
        result[Headers.SUBSCRIPTION] = subscription

        # 1.2 brokers acknowledge by the "id" header
        if self._version == Stomp.V1_2:
            result.setdefault(Headers.ID, message_id)

        return result

    def _transmit(
        self,
        command: str,
        headers: Optional[HeadersType] = None,
        body: Union[str, bytes] = "",
    ) -> None:
        if self._transport is None:
            raise StompDisconnectedError()

        out = self._protocol.build_frame(command, headers, body)
        logger.debug(">>> %s", command)

        if self._stats:
            self._stats.increment("sent_msg")

        size = self._max_frame_size
        while len(out) > size:
            self._transport.write(out[:size])
            out = out[size:]
            logger.debug("remaining = %d", len(out))

        self._transport.write(out)

    def _notify(self, callback: Optional[Callback], *args: Any) -> None:
        if callback is None:
            return

        result = callback(*args)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result, loop=self._loop)
            self._callback_tasks.add(task)
            task.add_done_callback(self._callback_done)

    def _callback_done(self, task: "asyncio.Future[Any]") -> None:
        self._callback_tasks.discard(task)
        if task.cancelled():
            return

        exc = task.exception()
        if exc is not None:
            logger.error("Callback failed: %s", exc, exc_info=exc)

    def _cleanup(self) -> None:
        if self.heartbeater:
            self.heartbeater.shutdown()
            self.heartbeater = None

        if self.heartbeat_monitor:
            self.heartbeat_monitor.shutdown()
            self.heartbeat_monitor = None

        if self._stats_handler:
            self._stats_handler.cancel()
            self._stats_handler = None

        self._transport = None
        self._protocol.reset()

    def _lose_connection(self, error: StompConnectionLostError) -> None:
        self._cleanup()
        self._state = State.CLOSED
        self._notify(self._on_error, error)

    def _setup_heartbeat(self, headers: Dict[str, str]) -> None:
        if self._version == Stomp.V1_0:
            return

        heartbeat = headers.get(Headers.Connected.HEART_BEAT, "0,0")
        logger.debug("Server heartbeats: %s", heartbeat)

        try:
            server_incoming, server_outgoing = (int(x) for x in heartbeat.split(","))
        except ValueError:
            logger.warning("Invalid heart-beat header %r, heartbeats disabled", heartbeat)
            return

        outgoing = self._heartbeat["outgoing"]
        incoming = self._heartbeat["incoming"]

        if outgoing and server_incoming:
            interval = max(outgoing, server_incoming)
            logger.debug("Sending heartbeats every %sms", interval)
            self.heartbeater = StompHeartbeater(
                self._transport, logger=logger, interval=interval, loop=self._loop
            )
            self.heartbeater.start()

        if incoming and server_outgoing:
            interval = max(incoming, server_outgoing)
            logger.debug("Checking server activity every %sms", interval)
            self.heartbeat_monitor = StompHeartbeatMonitor(
                lambda: self._server_activity,
                self._handle_heartbeat_timeout,
                logger=logger,
                interval=interval,
                loop=self._loop,
            )
            self.heartbeat_monitor.start()

    def _handle_heartbeat_timeout(self, delta: float) -> None:
        error = StompHeartbeatTimeoutError(
            "Did not receive server activity for the last {}ms".format(int(delta * 1000))
        )
        logger.warning("%s, closing connection", error)

        transport = self._transport
        self._lose_connection(error)

        if transport is not None:
            transport.close()

    def _handle_connect(self, frame: Frame) -> None:
        if self._state is not State.CONNECTING:
            logger.warning("Unexpected CONNECTED frame while %s", self._state.name)
            return

        headers = frame.headers
        self._server = headers.get(Headers.Connected.SERVER)
        self._version = headers.get(Headers.Connected.VERSION, Stomp.V1_0)
        self._protocol.version = self._version

        logger.info("Connected to server %s, version %s", self._server, self._version)

        self._setup_heartbeat(headers)
        self._state = State.CONNECTED
        self._notify(self._on_connect, frame)

    def _handle_message(self, frame: Frame) -> None:
        key = frame.headers.get(Headers.SUBSCRIPTION, "")

        handler = self._subscriptions.get(key)
        if handler is None:
            logger.warning("Subscription %s not found", key)
            return

        if self._stats:
            self._stats.increment("rec_msg")

        self._notify(handler, frame)

    def _handle_receipt(self, frame: Frame) -> None:
        logger.debug("Receipt %s", frame.headers.get(Headers.RECEIPT_ID))
        self._notify(self._on_receipt, frame)

    def _handle_error(self, frame: Frame) -> None:
        logger.error("Received error: %s", frame.headers.get(Headers.MESSAGE))
        logger.debug("Error details: %s", frame.body)

        self._notify(self._on_error, frame)

    def _handle_unsupported(self, frame: Frame) -> None:
        error = StompUnsupportedCommandError(frame)
        logger.error("%s", error)

        self._notify(self._on_error, error)


def client(url: str, **kwargs: Any) -> WsStomp:
    return WsStomp(url, **kwargs)
