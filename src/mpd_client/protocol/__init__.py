"""Wire protocol layer.

Pure functions and small classes with no I/O:
- framing: cut the incoming text stream into complete responses
- commands: the command table and argument quoting
- responses: decode response frames into typed records
"""

from .commands import COMMANDS, CommandSpec, CommandType, build, encode, quote
from .framing import SUCCESS_MARKER, FrameBuffer, find_frame_end
from .responses import (
    check_result,
    is_idle_frame,
    match_changed,
    parse_ack,
    parse_greeting,
    parse_kvp,
    parse_playlist,
    parse_song,
    parse_songs,
    parse_status,
    parse_update,
)

__all__ = [
    "COMMANDS",
    "CommandSpec",
    "CommandType",
    "build",
    "encode",
    "quote",
    "SUCCESS_MARKER",
    "FrameBuffer",
    "find_frame_end",
    "check_result",
    "is_idle_frame",
    "match_changed",
    "parse_ack",
    "parse_greeting",
    "parse_kvp",
    "parse_playlist",
    "parse_song",
    "parse_songs",
    "parse_status",
    "parse_update",
]
