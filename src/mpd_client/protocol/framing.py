"""Stream framing.

MPD responses have no length prefix. A response (frame) ends with a
success line or an error line:

    OK
    ACK [<code>@<index>] {<command>} <message>

Reads from the socket carry no alignment guarantee, so incoming text is
accumulated and scanned for the first terminator; everything up to and
including it is one frame and the rest stays buffered.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

SUCCESS_MARKER = "OK"

# A terminator is a complete line: the newline must have arrived.
_TERMINATOR = re.compile(r"^(?:OK|ACK \[\d*@\d*\] \{[^}\n]*\}[^\n]*)\n", re.MULTILINE)


def find_frame_end(buffer: str) -> int:
    """Return the offset just past the first terminator line, or -1."""
    match = _TERMINATOR.search(buffer)
    if match is None:
        return -1
    return match.end()


class FrameBuffer:
    """Accumulates decoded text and slices complete frames out of it.

    Usage:
        frames = FrameBuffer()
        for frame in frames.feed(chunk):
            handle(frame)
    """

    def __init__(self) -> None:
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received but not yet part of a complete frame."""
        return self._buffer

    def feed(self, chunk: str) -> list[str]:
        """Append a chunk and return every frame it completes, in order.

        Frames are returned without their trailing newline. Empty or
        whitespace-only chunks are dropped unless they finish a partial
        line already in the buffer.
        """
        if not chunk or chunk.isspace():
            if not self._buffer or self._buffer.endswith("\n"):
                return []
        self._buffer += chunk

        frames = []
        while True:
            end = find_frame_end(self._buffer)
            if end == -1:
                break
            frame = self._buffer[:end].strip()
            self._buffer = self._buffer[end:]
            logger.debug(f"Framed response ({len(frame)} chars)")
            frames.append(frame)
        return frames

    def clear(self) -> None:
        """Drop buffered text (used when the connection is reset)."""
        self._buffer = ""
