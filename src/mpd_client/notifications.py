"""Idle notification routing.

A frame received while the connection is idle lists the subsystems that
changed. Each one triggers the refresh that brings the matching client
snapshot up to date; the `changed:<subsystem>` event is published only
after that refresh has completed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from functools import partial
from typing import Any

from .bus import Bus
from .errors import ProtocolError
from .events import ChangedProps, subsystem_changed
from .protocol.responses import is_idle_frame, match_changed

logger = logging.getLogger(__name__)

# Starts a refresh synchronously (the command is queued before this
# returns) and hands back the task that finishes it.
Refresher = Callable[[], "asyncio.Future[Any]"]

FailureHandler = Callable[[str, BaseException], None]


class NotificationRouter:
    """Maps `changed:` announcements to refreshes and change events.

    Args:
        refreshers: Subsystem name -> refresher. Subsystems without an
            entry publish their event immediately.
        bus: Where change events are published
        on_failure: Called with (subsystem, exception) when a refresh fails
    """

    def __init__(
        self,
        refreshers: Mapping[str, Refresher],
        bus: Bus,
        on_failure: FailureHandler,
    ):
        self._refreshers = dict(refreshers)
        self._bus = bus
        self._on_failure = on_failure

    def route(self, frame: str) -> list[str]:
        """Start the refreshes announced by one idle-mode frame.

        Returns the announced subsystems in order (empty when the frame
        carries only the success marker).

        Raises:
            ProtocolError: The frame is neither the success marker nor a
                run of `changed:` announcements
        """
        if not is_idle_frame(frame):
            raise ProtocolError(f"Received unknown message during idle: {frame!r}")

        subsystems = match_changed(frame)
        for subsystem in subsystems:
            logger.debug(f"Subsystem changed: {subsystem}")
            refresh = self._refreshers.get(subsystem)
            if refresh is None:
                self._publish(subsystem)
                continue
            task = refresh()
            task.add_done_callback(partial(self._refreshed, subsystem))
        return subsystems

    def _refreshed(self, subsystem: str, task: asyncio.Future[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Refresh after '{subsystem}' change failed: {exc}")
            self._on_failure(subsystem, exc)
            return
        self._publish(subsystem)

    def _publish(self, subsystem: str) -> None:
        self._bus.emit(subsystem_changed(subsystem), ChangedProps(subsystem=subsystem))
