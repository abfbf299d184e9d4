"""Transport supervisor.

Owns the socket to MPD (TCP or a local socket), reads the greeting,
runs the background read loop and recovers from failures.

Architecture:
- ConnectionHandler is the PROTOCOL the client implements to receive
  greeted connections, frames and losses
- MPDTransport handles the wire: bytes in, frames out, lines written
- Any transport error enters a fixed-interval reconnection loop that
  runs until a connection succeeds or disconnect() is called
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
from enum import Enum
from typing import Protocol

from .bus import Bus
from .config import ClientConfig
from .errors import ConnectionClosedError, ProtocolError
from .events import (
    Connected,
    ConnectedProps,
    Disconnected,
    DisconnectedProps,
    Error,
    error_props,
)
from .protocol.framing import FrameBuffer
from .protocol.responses import parse_greeting
from .types import ServerInfo

logger = logging.getLogger(__name__)

# Failures that send the supervisor into the reconnection loop
RECOVERABLE_ERRORS = (OSError, TimeoutError, EOFError, ProtocolError)


class TransportState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    GREETING = "greeting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class ConnectionHandler(Protocol):
    """Receiver of transport callbacks. All run on the event loop."""

    def connection_made(self, server: ServerInfo) -> None:
        """Greeting accepted; the transport is ready for commands."""
        ...

    def frame_received(self, frame: str) -> None:
        """One complete response frame. May raise ProtocolError."""
        ...

    def connection_lost(self, reason: str) -> None:
        """The connection is gone; outstanding requests must be failed."""
        ...


class MPDTransport:
    """Single supervised connection to an MPD server.

    Usage:
        transport = MPDTransport(config, handler, bus)
        await transport.connect()
        transport.write("status")
        ...
        await transport.disconnect()
    """

    def __init__(self, config: ClientConfig, handler: ConnectionHandler, bus: Bus):
        self.config = config
        self._handler = handler
        self._bus = bus

        self._state = TransportState.DISCONNECTED
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._frames = FrameBuffer()
        self._decoder = codecs.getincrementaldecoder(config.encoding)()
        self._server: ServerInfo | None = None
        # Set by disconnect(); suppresses reconnection
        self._closing = False

    @property
    def state(self) -> TransportState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if the transport is connected and greeted."""
        return self._state == TransportState.CONNECTED

    @property
    def server(self) -> ServerInfo | None:
        """Greeting of the current connection."""
        return self._server

    @property
    def reconnecting(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    async def connect(self) -> None:
        """Establish the connection.

        On failure the reconnection loop takes over when auto_reconnect is
        enabled; otherwise the failure is raised.

        Raises:
            ConnectionError: If connection fails and auto_reconnect is off
        """
        if self._state == TransportState.CONNECTED:
            return
        self._closing = False
        self._cancel_reconnect()
        try:
            await self._open()
        except RECOVERABLE_ERRORS as e:
            if self._closing:
                logger.debug(f"Connect to {self.config.address} abandoned: {e}")
                return
            logger.warning(f"Failed to connect to {self.config.address}: {e}")
            self._bus.emit(Error, error_props(e))
            if not self.config.auto_reconnect:
                raise ConnectionError(f"Failed to connect to {self.config.address}: {e}") from e
            self._schedule_reconnect()

    async def disconnect(self) -> None:
        """Close the connection on purpose.

        Stops reconnection and fails every outstanding request.
        """
        self._closing = True
        self._cancel_reconnect()

        task = self._reader_task
        writer = self._writer
        self._teardown("Disconnected by client", intentional=True)

        if task is not None and task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if writer is not None:
            with contextlib.suppress(OSError):
                await writer.wait_closed()

        self._state = TransportState.CLOSED
        logger.info(f"Disconnected from {self.config.address}")

    def force_reconnect(self, reason: str) -> None:
        """Drop a connection whose state can no longer be trusted."""
        if self._closing:
            return
        logger.warning(f"Forcing reconnect: {reason}")
        self._connection_failed(ProtocolError(reason))

    def write(self, line: str) -> None:
        """Send one command line.

        Raises:
            ConnectionClosedError: If not connected
        """
        if self._writer is None or self._state != TransportState.CONNECTED:
            raise ConnectionClosedError("Not connected to MPD")
        logger.debug(f"send: {line}")
        self._writer.write((line + "\n").encode(self.config.encoding))

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    async def _open(self) -> None:
        self._state = TransportState.CONNECTING
        logger.info(f"Connecting to {self.config.address}")

        try:
            if self.config.transport == "unix":
                opening = asyncio.open_unix_connection(self.config.socket_path)
            else:
                opening = asyncio.open_connection(self.config.host, self.config.port)
            reader, writer = await asyncio.wait_for(opening, timeout=self.config.connect_timeout)
        except BaseException:
            self._state = TransportState.CLOSED if self._closing else TransportState.DISCONNECTED
            raise

        self._state = TransportState.GREETING
        try:
            self._check_closing()
            line = await asyncio.wait_for(reader.readline(), timeout=self.config.greeting_timeout)
            self._check_closing()
            if not line:
                raise ConnectionResetError("Connection closed before greeting")
            server = parse_greeting(line.decode(self.config.encoding, errors="replace"))
        except BaseException:
            writer.close()
            self._state = TransportState.CLOSED if self._closing else TransportState.DISCONNECTED
            raise

        self._reader = reader
        self._writer = writer
        self._server = server
        self._frames.clear()
        self._decoder = codecs.getincrementaldecoder(self.config.encoding)()
        self._state = TransportState.CONNECTED
        self._cancel_reconnect()
        self._reader_task = asyncio.create_task(self._read_loop(reader))

        logger.info(f"Connected to {server.name} {server.version} at {self.config.address}")
        self._handler.connection_made(server)
        self._bus.emit(
            Connected,
            ConnectedProps(address=self.config.address, server=server.name, version=server.version),
        )

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        """Background task turning socket reads into frames."""
        try:
            while True:
                data = await reader.read(self.config.read_size)
                if not data:
                    raise ConnectionResetError("Connection closed by MPD")
                for frame in self._frames.feed(self._decoder.decode(data)):
                    logger.debug(f"recv: {frame!r}")
                    self._handler.frame_received(frame)
        except asyncio.CancelledError:
            raise
        except ProtocolError as e:
            logger.warning(f"Protocol error from {self.config.address}: {e}")
            self._connection_failed(e)
        except OSError as e:
            logger.warning(f"Connection to {self.config.address} lost: {e}")
            self._connection_failed(e)
        except Exception as e:
            logger.exception(f"Read loop error: {e}")
            self._connection_failed(e)

    def _check_closing(self) -> None:
        """disconnect() may run while _open is suspended."""
        if self._closing:
            raise ConnectionClosedError("Disconnected by client")

    def _connection_failed(self, exc: BaseException) -> None:
        if self._closing:
            return
        self._bus.emit(Error, error_props(exc))
        self._teardown(str(exc) or type(exc).__name__, intentional=False)
        self._schedule_reconnect()

    def _teardown(self, reason: str, intentional: bool) -> None:
        """Release the socket and fail outstanding requests. Synchronous."""
        was_connected = self._writer is not None

        task = self._reader_task
        self._reader_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

        if self._writer is not None:
            self._writer.close()
        self._writer = None
        self._reader = None
        self._server = None
        self._frames.clear()
        self._state = TransportState.DISCONNECTED

        self._handler.connection_lost(reason)
        if was_connected:
            logger.info(f"Connection to {self.config.address} closed: {reason}")
            self._bus.emit(
                Disconnected,
                DisconnectedProps(
                    address=self.config.address, reason=reason, intentional=intentional
                ),
            )

    # -------------------------------------------------------------------------
    # Reconnection
    # -------------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        if self._closing or not self.config.auto_reconnect or self.reconnecting:
            return
        self._state = TransportState.RECONNECTING
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _reconnect_loop(self) -> None:
        """Retry on a fixed interval until connected or told to stop."""
        attempt = 0
        while not self._closing:
            await asyncio.sleep(self.config.reconnect_interval)
            if self._closing:
                return
            attempt += 1
            logger.info(f"Reconnecting to {self.config.address} (attempt {attempt})")
            if self._writer is not None:
                self._teardown("Reconnecting", intentional=False)
            try:
                await self._open()
            except RECOVERABLE_ERRORS as e:
                if self._closing:
                    return
                logger.warning(f"Reconnect attempt {attempt} failed: {e}")
                self._bus.emit(Error, error_props(e))
                self._state = TransportState.RECONNECTING
                continue
            return
