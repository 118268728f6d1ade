"""Connection manager for a remote SocketAPI server.

:class:`SocketAPIClient` owns one TCP connection. Incoming bytes are split on
the ``\\0\\0`` sentinel, decoded, and routed through an internal
:class:`~socketapi.bus.EventEmitter`: every valid message goes to the
``message_received`` channel (request correlation), and event messages also go
to ``event_received`` (subscribers).

Everything runs on one asyncio event loop, so the pending-request registry and
the subscriber list are never touched concurrently.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from loguru import logger

from socketapi.bus import EVENT_RECEIVED, MESSAGE_RECEIVED, EventEmitter, MessageCallback
from socketapi.config import ClientSettings
from socketapi.errors import RequestTimeoutError, classify_exception
from socketapi.pending import PendingOperation, PendingRequest, PendingRequestRegistry
from socketapi.protocol.framing import Frame, FrameDecoder, FrameKind, encode_request
from socketapi.protocol.message import Message, Request, coerce_request


class _ClientProtocol(asyncio.Protocol):
    """Forwards transport callbacks to the owning client."""

    def __init__(self, client: "SocketAPIClient"):
        self._client = client

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._client._on_connection_made(self, transport)

    def data_received(self, data: bytes) -> None:
        self._client._on_data(self, data)

    def connection_lost(self, exc: Exception | None) -> None:
        self._client._on_connection_lost(self, exc)


class SocketAPIClient:
    """Sends requests to the server, matches responses, and fans out events.

    Parameters:
        settings: Connection settings. Defaults to :class:`ClientSettings`
            built from the environment.
        on_heartbeat: Optional callable receiving the text of every heartbeat
            frame. Heartbeats are never answered.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        on_heartbeat: Callable[[str], Any] | None = None,
    ):
        self.settings = settings or ClientSettings()
        self._on_heartbeat = on_heartbeat

        self._connected = False
        self._closed = False
        self._transport: asyncio.Transport | None = None
        self._protocol: _ClientProtocol | None = None
        self._startup: PendingOperation | None = None
        self._connect_task: asyncio.Task[Any] | None = None
        self._idle_timer: asyncio.TimerHandle | None = None

        self._decoder = FrameDecoder(
            buffered=self.settings.frame_buffering,
            max_frame_bytes=self.settings.max_frame_bytes,
        )
        self._bus = EventEmitter()
        self._pending = PendingRequestRegistry()
        self._bus.on(MESSAGE_RECEIVED, self._pending.resolve)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(
        self,
        address: str | None = None,
        port: int | None = None,
        timeout_ms: int | None = None,
    ) -> bool:
        """
        Establish the TCP channel to the server.

        Args:
            address: Server host. Defaults to ``settings.host``.
            port: Server port. Defaults to ``settings.port``.
            timeout_ms: Milliseconds to wait before giving up. Defaults to
                ``settings.connect_timeout_ms``.

        Returns:
            True once connected. False if already connected (or connecting,
            or closed), or if the attempt failed or timed out.
        """
        if self._connected or self._startup is not None or self._closed:
            logger.debug("start() ignored: client is connected, connecting, or closed")
            return False

        address = address or self.settings.host
        port = self.settings.port if port is None else port
        timeout_ms = self.settings.connect_timeout_ms if timeout_ms is None else timeout_ms

        loop = asyncio.get_running_loop()
        startup = PendingOperation(loop.create_future())
        protocol = _ClientProtocol(self)
        self._startup = startup
        self._protocol = protocol
        self._decoder.reset()

        def _startup_expired() -> None:
            if self._connected:
                return
            if startup.time_out(False):
                logger.warning(f"Connecting to {address}:{port} timed out after {timeout_ms}ms")
                self._abandon_attempt(protocol)

        def _idle_expired() -> None:
            if startup.time_out(False):
                logger.warning(f"Socket to {address}:{port} idle for {self.settings.idle_timeout_ms}ms, destroying it")
                self._abandon_attempt(protocol)

        def _connect_done(task: asyncio.Task[Any]) -> None:
            if task.cancelled():
                return
            exc = task.exception()
            if exc is None:
                return
            code, _ = classify_exception(exc)
            logger.warning(f"Could not connect to {address}:{port} [{code}]: {exc}")
            if startup.resolve(False):
                self._abandon_attempt(protocol)

        logger.info(f"Connecting to {address}:{port}")
        self._connect_task = loop.create_task(loop.create_connection(lambda: protocol, address, port))
        self._connect_task.add_done_callback(_connect_done)
        startup.arm(timeout_ms, _startup_expired)
        if self.settings.idle_timeout_ms > 0:
            self._idle_timer = loop.call_later(self.settings.idle_timeout_ms / 1000.0, _idle_expired)

        try:
            return await startup.future
        finally:
            startup.disarm()
            self._cancel_idle_timer()
            if self._startup is startup:
                self._startup = None
            if not self._connected:
                self._abandon_attempt(protocol)

    def close(self) -> None:
        """Tear down the connection. Pending requests are left to their timers."""
        self._closed = True
        self._connected = False
        if self._startup is not None and self._startup.resolve(False):
            logger.info("Connection attempt abandoned by close()")
        if self._protocol is not None:
            self._abandon_attempt(self._protocol)
        if self._transport is not None:
            self._transport.close()
            self._transport = None

    def is_connected(self) -> bool:
        return self._connected

    @property
    def pending_count(self) -> int:
        """Number of requests still waiting for a response."""
        return len(self._pending)

    def _abandon_attempt(self, protocol: _ClientProtocol) -> None:
        """Detach an attempt that will never be the live connection."""
        if self._protocol is protocol and not self._connected:
            self._protocol = None
        task = self._connect_task
        if task is not None and not task.done():
            task.cancel()
        self._connect_task = None

    def _cancel_idle_timer(self) -> None:
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def _on_connection_made(self, protocol: _ClientProtocol, transport: asyncio.BaseTransport) -> None:
        startup = self._startup
        if protocol is not self._protocol or startup is None or not startup.resolve(True):
            logger.debug("Closing a connection that completed after start() gave up")
            transport.close()
            return
        # Idle detection only guards the handshake.
        self._cancel_idle_timer()
        self._transport = transport  # type: ignore[assignment]
        self._connected = True
        logger.info(f"Connected to {transport.get_extra_info('peername')}")

    def _on_data(self, protocol: _ClientProtocol, data: bytes) -> None:
        if protocol is not self._protocol:
            return
        for frame in self._decoder.feed(data):
            self._dispatch(frame)

    def _on_connection_lost(self, protocol: _ClientProtocol, exc: Exception | None) -> None:
        if protocol is not self._protocol:
            return
        if exc is not None:
            logger.warning(f"There was an error on the socket: {exc}")
        if self._connected:
            logger.info("Connection closed")
            # No reconnects: a client whose connection went away stays closed.
            self._closed = True
        self._connected = False
        self._transport = None
        self._protocol = None
        self._decoder.reset()

    # ------------------------------------------------------------------
    # Inbound routing
    # ------------------------------------------------------------------

    def _dispatch(self, frame: Frame) -> None:
        if frame.kind is FrameKind.HEARTBEAT:
            self._respond_to_heartbeat(frame.text)
            return
        if frame.kind is FrameKind.REJECTED:
            if frame.malformed:
                logger.warning(f"There was an error parsing the message: {frame.reason}")
                logger.warning(f"Decoded message: {frame.text!r}")
            else:
                logger.debug(f"Ignoring frame that is not a message ({frame.reason}): {frame.text!r}")
            return
        message = frame.message
        if message is None:
            return
        self._bus.emit(MESSAGE_RECEIVED, message)
        if message.is_event:
            self._bus.emit(EVENT_RECEIVED, message)

    def _respond_to_heartbeat(self, text: str) -> None:
        logger.debug(f"Received heartbeat: {text}")
        if self._on_heartbeat is None:
            return
        try:
            self._on_heartbeat(text)
        except Exception:
            logger.exception("Heartbeat hook raised")

    # ------------------------------------------------------------------
    # Requests and events
    # ------------------------------------------------------------------

    async def send_request(self, request: Request | dict[str, Any], timeout_ms: int | None = None) -> Message:
        """
        Send a request and wait for the response carrying the same id.

        Args:
            request: A :class:`Request` or dict with a non-null ``id``.
            timeout_ms: Milliseconds after which the response is considered
                lost. Defaults to ``settings.request_timeout_ms``.

        Returns:
            The matching response message.

        Raises:
            RequestValidationError: If the request has no id. Nothing is written.
            RequestTimeoutError: If no matching message arrives in time.
        """
        payload = coerce_request(request)
        request_id = payload["id"]
        timeout_ms = self.settings.request_timeout_ms if timeout_ms is None else timeout_ms

        loop = asyncio.get_running_loop()
        pending = PendingRequest(request_id, loop.create_future(), timeout_ms)
        data = encode_request(payload, terminate=self.settings.terminate_requests)
        self._pending.add(pending)
        self._write(data, request_id)

        def _expired() -> None:
            self._pending.discard(pending)
            error = RequestTimeoutError(request_id, timeout_ms)
            if pending.time_out(error):
                logger.bind(**error.log_fields()).warning(f"Request {request_id!r} timed out after {timeout_ms}ms")

        pending.arm(timeout_ms, _expired)
        try:
            return await pending.future
        finally:
            pending.disarm()
            self._pending.discard(pending)

    def _write(self, data: bytes, request_id: Any) -> None:
        # A failed write is only logged; the request still settles by response or timeout.
        transport = self._transport
        if transport is None or transport.is_closing():
            logger.warning(f"Cannot write request {request_id!r}: not connected")
            return
        try:
            transport.write(data)
        except (OSError, RuntimeError) as e:
            logger.warning(f"Write for request {request_id!r} failed: {e}")

    def subscribe(self, callback: MessageCallback) -> None:
        """Call *callback* with every event message the server emits."""
        self._bus.on(EVENT_RECEIVED, callback)

    def unsubscribe(self, callback: MessageCallback) -> bool:
        """Remove a callback previously passed to :meth:`subscribe`."""
        return self._bus.off(EVENT_RECEIVED, callback)
