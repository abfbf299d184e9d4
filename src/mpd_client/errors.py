"""Exception taxonomy for the MPD client.

- ConnectionClosedError: the connection went away (requests fail with it)
- ProtocolError: the server said something outside the grammar
- DecodeError: a response could not be turned into typed records
- CommandError: the server rejected a command with an ACK line
"""

from __future__ import annotations

from enum import IntEnum


class AckCode(IntEnum):
    """Error codes carried by ACK lines."""

    NOT_LIST = 1
    ARG = 2
    PASSWORD = 3
    PERMISSION = 4
    UNKNOWN = 5
    NO_EXIST = 50
    PLAYLIST_MAX = 51
    SYSTEM = 52
    PLAYLIST_LOAD = 53
    UPDATE_ALREADY = 54
    PLAYER_SYNC = 55
    EXIST = 56


class MPDClientError(Exception):
    """Base class for all client errors."""


class ConnectionClosedError(MPDClientError, ConnectionError):
    """The connection was torn down before a response arrived."""

    def __init__(self, message: str = "Disconnected from MPD"):
        super().__init__(message)


class ProtocolError(MPDClientError):
    """Data from the server that does not fit the protocol grammar.

    Invalidates the connection: the client reconnects when it sees one.
    """


class DecodeError(ProtocolError):
    """A greeting, status or record frame could not be decoded."""


class UnknownCommandError(MPDClientError, ValueError):
    """Command name missing from the command table or called with a bad arity."""


class CommandError(MPDClientError):
    """A well-formed ACK response.

    Attributes:
        code: Numeric error code (an AckCode member when known)
        index: Position of the failing command in a command list
        command: Name of the command that failed
        message: Free-text message from the server
    """

    def __init__(self, code: int, index: int, command: str, message: str):
        try:
            self.code: int = AckCode(code)
        except ValueError:
            self.code = code
        self.index = index
        self.command = command
        self.message = message
        super().__init__(f"[{code}@{index}] {{{command}}} {message}")
