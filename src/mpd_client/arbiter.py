"""Command/idle arbitration over the single MPD connection.

MPD answers exactly one request at a time, and a connection parked in
`idle` will not accept commands until `noidle` has been acknowledged.
The arbiter owns the request queue and the connection mode:

    COMMANDING --(queue drained)--> IDLE
    IDLE --(submit)--> TRANSITIONING --(noidle acknowledged)--> COMMANDING
    IDLE --(change notification)--> COMMANDING

Every method is synchronous and runs on the event loop, so the state
machine needs no locking. Callers get an asyncio.Future per request.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum

from .errors import ConnectionClosedError, MPDClientError, ProtocolError
from .protocol.commands import CommandType
from .protocol.responses import check_result, is_idle_frame, match_changed

logger = logging.getLogger(__name__)


class ArbiterState(str, Enum):
    """Connection mode as seen by the arbiter."""

    OFFLINE = "offline"  # no usable connection
    COMMANDING = "commanding"
    IDLE = "idle"
    TRANSITIONING = "transitioning"  # noidle sent, acknowledgement pending


@dataclass
class Request:
    """One queued command and the future its caller awaits."""

    line: str
    future: asyncio.Future[str] = field(repr=False)

    @property
    def abandoned(self) -> bool:
        """Future already settled before dispatch (caller cancelled)."""
        return self.future.done()


class CommandArbiter:
    """FIFO request queue with exactly one request in flight.

    Args:
        write: Sends one command line (without newline) to the server
        on_notification: Receives idle-mode frames; may submit refreshes.
            Raises ProtocolError for frames outside the idle grammar.
        interrupt_timeout: Seconds to wait for the noidle acknowledgement
            before re-issuing idle + noidle
    """

    def __init__(
        self,
        write: Callable[[str], None],
        on_notification: Callable[[str], None],
        interrupt_timeout: float = 1.0,
    ):
        self._write = write
        self._on_notification = on_notification
        self._interrupt_timeout = interrupt_timeout

        self._state = ArbiterState.OFFLINE
        self._queue: deque[Request] = deque()
        self._in_flight: Request | None = None
        # Popped from the queue, waiting for the interrupt handshake
        self._pending: Request | None = None
        self._interrupt_timer: asyncio.TimerHandle | None = None
        # idle + noidle re-sends since the current interrupt began
        self._interrupt_retries = 0

    @property
    def state(self) -> ArbiterState:
        return self._state

    @property
    def busy(self) -> bool:
        """True while a request is in flight or waiting on the handshake."""
        return self._in_flight is not None or self._pending is not None

    @property
    def queued(self) -> int:
        """Requests submitted but not yet dispatched."""
        return len(self._queue)

    def start(self, initial: Iterable[str] = ()) -> list[asyncio.Future[str]]:
        """Take over a freshly greeted connection.

        The connection starts in command mode. `initial` lines are queued
        ahead of anything else; once the queue drains the arbiter parks
        the connection in idle.
        """
        if self._state is not ArbiterState.OFFLINE:
            raise RuntimeError(f"Arbiter already started (state={self._state.value})")
        self._state = ArbiterState.COMMANDING
        logger.debug("Arbiter started in command mode")
        futures = [self._enqueue(line) for line in initial]
        self._dispatch()
        self._maybe_idle()
        return futures

    def submit(self, line: str) -> asyncio.Future[str]:
        """Queue a command line and return the future of its response frame.

        The future resolves with the frame text, or fails with
        CommandError (ACK response) or ConnectionClosedError.
        """
        if self._state is ArbiterState.OFFLINE:
            future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
            future.set_exception(ConnectionClosedError("Not connected to MPD"))
            return future
        future = self._enqueue(line)
        self._dispatch()
        return future

    def _enqueue(self, line: str) -> asyncio.Future[str]:
        request = Request(line=line, future=asyncio.get_running_loop().create_future())
        self._queue.append(request)
        return request.future

    def handle_frame(self, frame: str) -> None:
        """Route one complete response frame.

        Raises:
            ProtocolError: Unsolicited frame, or an idle frame outside
                the notification grammar (the connection is unusable)
        """
        if self._state is ArbiterState.TRANSITIONING:
            self._interrupt_acknowledged(frame)
        elif self._state is ArbiterState.IDLE:
            # The server has already left idle when it reports a change.
            self._state = ArbiterState.COMMANDING
            self._on_notification(frame)
            self._dispatch()
            self._maybe_idle()
        elif self._state is ArbiterState.COMMANDING:
            request = self._in_flight
            if request is None:
                raise ProtocolError(f"Unsolicited response: {frame!r}")
            self._in_flight = None
            self._complete(request, frame)
            self._dispatch()
            self._maybe_idle()
        else:
            logger.debug(f"Dropping frame received while offline: {frame!r}")

    def fail_all(self, reason: str = "Disconnected from MPD") -> int:
        """Fail every in-flight, pending and queued request.

        Returns the number of requests failed. The arbiter goes offline
        until the next start().
        """
        self._cancel_interrupt_timer()
        self._state = ArbiterState.OFFLINE

        requests = [r for r in (self._in_flight, self._pending) if r is not None]
        requests.extend(self._queue)
        self._queue.clear()
        self._in_flight = None
        self._pending = None

        failed = 0
        for request in requests:
            if not request.future.done():
                request.future.set_exception(ConnectionClosedError(reason))
                failed += 1
        if failed:
            logger.debug(f"Failed {failed} outstanding request(s): {reason}")
        return failed

    # -------------------------------------------------------------------------
    # State machine internals
    # -------------------------------------------------------------------------

    def _dispatch(self) -> None:
        if self._state not in (ArbiterState.COMMANDING, ArbiterState.IDLE) or self.busy:
            return

        # Callers may have cancelled while queued; never send those.
        while self._queue and self._queue[0].abandoned:
            self._queue.popleft()
        if not self._queue:
            return

        request = self._queue.popleft()
        if self._state is ArbiterState.IDLE:
            self._pending = request
            self._state = ArbiterState.TRANSITIONING
            self._interrupt_retries = 0
            logger.debug("Leaving idle")
            self._write(CommandType.NOIDLE.value)
            self._arm_interrupt_timer()
        else:
            self._send(request)

    def _send(self, request: Request) -> None:
        self._in_flight = request
        self._write(request.line)

    def _complete(self, request: Request, frame: str) -> None:
        if request.future.done():
            return
        try:
            check_result(frame)
        except MPDClientError as e:
            request.future.set_exception(e)
        else:
            request.future.set_result(frame)

    def _maybe_idle(self) -> None:
        if self._state is ArbiterState.COMMANDING and not self.busy and not self._queue:
            self._state = ArbiterState.IDLE
            logger.debug("Queue drained, entering idle")
            self._write(CommandType.IDLE.value)

    def _interrupt_acknowledged(self, frame: str) -> None:
        self._cancel_interrupt_timer()
        if not is_idle_frame(frame):
            raise ProtocolError(f"Unexpected response to noidle: {frame!r}")
        if self._interrupt_retries:
            logger.error(
                f"noidle acknowledged after {self._interrupt_retries} retry(s); "
                "the acknowledgement may belong to an earlier noidle"
            )
            self._interrupt_retries = 0
        self._state = ArbiterState.COMMANDING
        request = self._pending
        self._pending = None

        if request is not None and not request.abandoned:
            self._send(request)
        else:
            self._dispatch()

        # noidle returns whatever changed before it arrived
        if match_changed(frame):
            self._on_notification(frame)
        self._maybe_idle()

    def _arm_interrupt_timer(self) -> None:
        self._cancel_interrupt_timer()
        loop = asyncio.get_running_loop()
        self._interrupt_timer = loop.call_later(self._interrupt_timeout, self._interrupt_timed_out)

    def _cancel_interrupt_timer(self) -> None:
        if self._interrupt_timer is not None:
            self._interrupt_timer.cancel()
            self._interrupt_timer = None

    def _interrupt_timed_out(self) -> None:
        self._interrupt_timer = None
        if self._state is not ArbiterState.TRANSITIONING:
            return
        # The idle response can coalesce with an earlier transition and
        # leave noidle unanswered; park again and retry the interrupt.
        self._interrupt_retries += 1
        logger.warning("No acknowledgement for noidle, re-entering idle and retrying")
        self._write(CommandType.IDLE.value)
        self._write(CommandType.NOIDLE.value)
        self._arm_interrupt_timer()
