"""Command table and wire encoding.

Every convenience call on the client goes through one generic
submission path; this module holds the static table that says which
command names exist and how many arguments each accepts.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import UnknownCommandError


class CommandType(str, Enum):
    """Commands the client issues itself."""

    IDLE = "idle"
    NOIDLE = "noidle"
    STATUS = "status"
    PLAYLISTINFO = "playlistinfo"
    LISTALLINFO = "listallinfo"
    CURRENTSONG = "currentsong"
    PASSWORD = "password"
    PING = "ping"


@dataclass(frozen=True)
class CommandSpec:
    """Arity of one protocol command.

    max_args of None means variadic.
    """

    name: str
    min_args: int = 0
    max_args: int | None = 0

    def check(self, args: tuple[Any, ...]) -> None:
        """Raise UnknownCommandError if args do not fit this command."""
        count = len(args)
        if count < self.min_args or (self.max_args is not None and count > self.max_args):
            if self.max_args is None:
                expected = f"at least {self.min_args}"
            elif self.min_args == self.max_args:
                expected = str(self.min_args)
            else:
                expected = f"{self.min_args} to {self.max_args}"
            raise UnknownCommandError(
                f"'{self.name}' takes {expected} argument(s), got {count}"
            )


def _spec(name: str, min_args: int = 0, max_args: int | None = 0) -> tuple[str, CommandSpec]:
    return name, CommandSpec(name, min_args, max_args)


COMMANDS: dict[str, CommandSpec] = dict(
    [
        # Playback
        _spec("play", 0, 1),
        _spec("playid", 0, 1),
        _spec("stop"),
        _spec("pause", 0, 1),
        _spec("next"),
        _spec("previous"),
        _spec("seek", 2, 2),
        _spec("seekcur", 1, 1),
        # Options and mixer
        _spec("setvol", 1, 1),
        _spec("repeat", 1, 1),
        _spec("random", 1, 1),
        _spec("single", 1, 1),
        _spec("consume", 1, 1),
        _spec("crossfade", 1, 1),
        # Queue
        _spec("add", 1, 1),
        _spec("addid", 1, 2),
        _spec("delete", 1, 1),
        _spec("deleteid", 1, 1),
        _spec("clear"),
        _spec("shuffle", 0, 1),
        _spec("searchadd", 2, None),
        _spec("playlistinfo", 0, 1),
        # Database
        _spec("update", 0, 1),
        _spec("listallinfo", 0, 1),
        _spec("search", 2, None),
        _spec("find", 2, None),
        # Status
        _spec("status"),
        _spec("currentsong"),
        _spec("stats"),
        # Connection
        _spec("ping"),
        _spec("password", 1, 1),
        _spec("idle", 0, None),
        _spec("noidle"),
    ]
)


def quote(arg: Any) -> str:
    """Quote one argument, escaping backslashes and double quotes."""
    if isinstance(arg, bool):
        arg = int(arg)
    text = str(arg)
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def encode(command: str | CommandType, *args: Any) -> str:
    """Build one command line (without the newline).

    Every argument is quoted so values containing spaces survive.
    """
    name = command.value if isinstance(command, CommandType) else command
    if "\n" in name or any("\n" in str(arg) for arg in args):
        raise ValueError("Command lines must not contain newlines")
    return " ".join([name, *(quote(arg) for arg in args)])


def build(name: str, *args: Any) -> str:
    """Validate against the command table, then encode.

    Raises:
        UnknownCommandError: Unknown command name or wrong argument count
    """
    spec = COMMANDS.get(name)
    if spec is None:
        raise UnknownCommandError(f"Unknown command: {name}")
    spec.check(args)
    return encode(name, *args)
