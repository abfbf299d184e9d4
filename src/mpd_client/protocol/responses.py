"""Response decoders.

Turn the text of a complete frame into typed records. Frames are the
strings produced by FrameBuffer: `Key: value` lines followed by a
single `OK` or `ACK ...` line.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import ValidationError

from ..errors import CommandError, DecodeError, ProtocolError
from ..types import SONG_FIELDS, PlayTime, ServerInfo, Song, Status
from .framing import SUCCESS_MARKER

_GREETING = re.compile(r"^OK (\S+) (\d+(?:\.\d+)*)\s*$")
_ACK = re.compile(r"^ACK \[(\d*)@(\d*)\] \{([^}]*)\} ?(.*)$")
_KVP = re.compile(r"^([^:\s]+)\s*:\s?(.*)$")
_CHANGED = re.compile(r"^changed:\s*(\S+)\s*$")

# Keys that start a new record in list responses. Only `file` groups
# become songs; directories and stored playlists are skipped.
_RECORD_KEYS = ("file", "directory", "playlist")

_BOOL_KEYS = {"repeat", "random", "single", "consume"}
_INT_KEYS = {
    "playlist",
    "playlistlength",
    "song",
    "songid",
    "nextsong",
    "nextsongid",
    "xfade",
    "bitrate",
    "updating_db",
}
_FLOAT_KEYS = {"elapsed", "duration", "mixrampdb"}


def _lines(frame: Any) -> list[str]:
    if not isinstance(frame, str):
        return []
    return [line for line in frame.strip().split("\n") if line]


def parse_kvp(line: Any) -> tuple[str, str] | None:
    """Split a `key: value` line. Returns None for anything else."""
    if not isinstance(line, str):
        return None
    match = _KVP.match(line.strip())
    if match is None:
        return None
    return match.group(1), match.group(2).strip()


def parse_greeting(line: str) -> ServerInfo:
    """Decode the `OK <name> <version>` greeting.

    Raises:
        DecodeError: If the line does not follow the greeting grammar
    """
    match = _GREETING.match(line.strip()) if isinstance(line, str) else None
    if match is None:
        raise DecodeError(f"Unknown values while receiving initial greeting: {line!r}")
    return ServerInfo(name=match.group(1), version=match.group(2))


def parse_ack(line: str) -> CommandError | None:
    """Decode one ACK line into a CommandError (not raised)."""
    match = _ACK.match(line.strip())
    if match is None:
        return None
    code, index, command, message = match.groups()
    return CommandError(int(code or 0), int(index or 0), command, message)


def check_result(frame: str) -> None:
    """Succeed iff the trailing line is exactly the success marker.

    Raises:
        CommandError: The frame ends with an ACK line
        ProtocolError: The frame ends with anything else
    """
    lines = _lines(frame)
    last = lines[-1] if lines else ""
    if last == SUCCESS_MARKER:
        return
    error = parse_ack(last)
    if error is not None:
        raise error
    raise ProtocolError(f"Non okay return status: {last!r}")


def _status_value(key: str, value: str) -> Any:
    if key == "volume":
        volume = float(value.rstrip("%"))
        return None if volume < 0 else volume / 100
    if key in _BOOL_KEYS:
        # single also takes "oneshot"
        return {"0": False, "1": True}.get(value, value)
    if key in _INT_KEYS:
        return int(value)
    if key in _FLOAT_KEYS:
        return float(value)
    if key == "time":
        elapsed, _, length = value.partition(":")
        return PlayTime(elapsed=int(elapsed), length=int(length or 0))
    return value


def parse_status(frame: str) -> Status:
    """Decode a `status` response.

    Raises:
        DecodeError: A line is neither `key: value` nor the success marker,
            or a typed field holds an unparseable value
    """
    fields: dict[str, Any] = {}
    for line in _lines(frame):
        if line == SUCCESS_MARKER:
            continue
        kvp = parse_kvp(line)
        if kvp is None:
            raise DecodeError(f"Unknown response while fetching status: {line!r}")
        key, value = kvp
        try:
            fields[key] = _status_value(key, value)
        except ValueError as e:
            raise DecodeError(f"Bad value for status field {key!r}: {value!r}") from e
    try:
        return Status(**fields)
    except ValidationError as e:
        raise DecodeError(f"Invalid status: {e}") from e


def _fold_song(lines: list[tuple[str, str]]) -> Song:
    record: dict[str, str] = {}
    for key, value in lines:
        # Repeated tags (several Artist lines) keep the first value.
        if key in SONG_FIELDS and key not in record:
            record[key] = value
    try:
        return Song.model_validate(record)
    except ValidationError as e:
        raise DecodeError(f"Invalid song record: {e}") from e


def _group_records(frame: str) -> list[list[tuple[str, str]]]:
    groups: list[list[tuple[str, str]]] = []
    current: list[tuple[str, str]] | None = None
    for line in _lines(frame):
        if line == SUCCESS_MARKER:
            continue
        kvp = parse_kvp(line)
        if kvp is None:
            raise DecodeError(f"Unknown response while parsing song: {line!r}")
        if kvp[0] in _RECORD_KEYS:
            current = []
            groups.append(current)
        if current is None:
            raise DecodeError(f"Record field before any file entry: {line!r}")
        current.append(kvp)
    return [group for group in groups if group[0][0] == "file"]


def parse_songs(frame: str) -> list[Song]:
    """Decode a list of song records (listallinfo, search, ...)."""
    return [_fold_song(group) for group in _group_records(frame)]


def parse_song(frame: str) -> Song | None:
    """Decode a single record response (currentsong). None if empty."""
    songs = parse_songs(frame)
    return songs[0] if songs else None


def parse_playlist(frame: str) -> list[Song | None]:
    """Decode `playlistinfo` into a list indexed by each entry's Pos.

    Positions the server did not report are left as None.

    Raises:
        DecodeError: An entry has no Pos field
    """
    playlist: list[Song | None] = []
    for song in parse_songs(frame):
        if song.pos is None:
            raise DecodeError(f"Playlist entry without position: {song.file}")
        if song.pos >= len(playlist):
            playlist.extend([None] * (song.pos + 1 - len(playlist)))
        playlist[song.pos] = song
    return playlist


def parse_update(frame: str) -> int:
    """Return the job id from an `update` response."""
    for line in _lines(frame):
        kvp = parse_kvp(line)
        if kvp and kvp[0] == "updating_db":
            try:
                return int(kvp[1])
            except ValueError as e:
                raise DecodeError(f"Bad update job id: {kvp[1]!r}") from e
    raise DecodeError("No updating_db in update response")


def match_changed(frame: Any) -> list[str]:
    """Subsystems announced by `changed:` lines, in order."""
    subsystems = []
    for line in _lines(frame):
        match = _CHANGED.match(line)
        if match:
            subsystems.append(match.group(1))
    return subsystems


def is_idle_frame(frame: str) -> bool:
    """True if every line is a `changed:` announcement or the success marker."""
    lines = _lines(frame)
    if not lines or lines[-1] != SUCCESS_MARKER:
        return False
    return all(_CHANGED.match(line) for line in lines[:-1])
