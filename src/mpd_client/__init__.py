"""Persistent asyncio client for the Music Player Daemon protocol.

One connection is shared between ordinary commands and the `idle`
wait for server-side changes:
- MPDClient: public API, snapshots and convenience commands
- CommandArbiter: request queue and idle/command state machine
- MPDTransport: connection lifecycle and reconnection
- NotificationRouter: change notifications -> refreshes -> events
"""

from .arbiter import ArbiterState, CommandArbiter
from .bus import Bus, EventDefinition
from .client import ConnectionMode, MPDClient
from .config import ClientConfig, load_config, resolve_config
from .errors import (
    AckCode,
    CommandError,
    ConnectionClosedError,
    DecodeError,
    MPDClientError,
    ProtocolError,
    UnknownCommandError,
)
from .notifications import NotificationRouter
from .transport import MPDTransport, TransportState
from .types import PlayTime, ServerInfo, Song, Status

__version__ = "0.1.0"

__all__ = [
    # Client
    "MPDClient",
    "ConnectionMode",
    # Core
    "CommandArbiter",
    "ArbiterState",
    "MPDTransport",
    "TransportState",
    "NotificationRouter",
    "Bus",
    "EventDefinition",
    # Configuration
    "ClientConfig",
    "load_config",
    "resolve_config",
    # Errors
    "MPDClientError",
    "ConnectionClosedError",
    "ProtocolError",
    "DecodeError",
    "CommandError",
    "UnknownCommandError",
    "AckCode",
    # Types
    "ServerInfo",
    "Status",
    "PlayTime",
    "Song",
]
