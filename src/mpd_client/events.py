"""Event type definitions.

Lifecycle events are advisory: they report what the transport did but
nothing waits on them. Change events are published by the notification
router once the matching snapshot has been refreshed.
"""

from pydantic import BaseModel

from .bus import Bus, EventDefinition

# =============================================================================
# Lifecycle Events
# =============================================================================


class ConnectedProps(BaseModel):
    """Transport established and greeting accepted."""

    address: str
    server: str
    version: str


class DisconnectedProps(BaseModel):
    """Transport torn down."""

    address: str
    reason: str | None = None
    intentional: bool = False


class ErrorProps(BaseModel):
    """A failure with no caller waiting for it."""

    error: str
    kind: str  # exception class name


class ReadyProps(BaseModel):
    """Initial snapshots loaded after a (re)connect."""

    server: str
    version: str


Connected = Bus.define("connected", ConnectedProps)
Disconnected = Bus.define("disconnected", DisconnectedProps)
Error = Bus.define("error", ErrorProps)
Ready = Bus.define("ready", ReadyProps)


# =============================================================================
# Change Events
# =============================================================================


class ChangedProps(BaseModel):
    """A server subsystem changed and the client snapshot is current."""

    subsystem: str


def subsystem_changed(subsystem: str) -> EventDefinition[ChangedProps]:
    """Definition of the `changed:<subsystem>` event."""
    return Bus.define(f"changed:{subsystem}", ChangedProps)


def error_props(exc: BaseException) -> ErrorProps:
    """Build ErrorProps from an exception."""
    return ErrorProps(error=str(exc) or repr(exc), kind=type(exc).__name__)
