"""MPD client facade.

Wires the transport supervisor, the command/idle arbiter and the
notification router together, keeps the status / playlist / catalog
snapshots, and exposes the public API.

Usage:
    async with MPDClient(host="localhost") as client:
        await client.wait_ready()
        await client.playback.play()
        print(client.status.state)

        async for event in client.events.stream("changed:*"):
            print(event["type"])
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from .arbiter import ArbiterState, CommandArbiter
from .bus import Bus
from .config import ClientConfig
from .errors import ConnectionClosedError, MPDClientError, ProtocolError
from .events import Error, Ready, ReadyProps, error_props
from .notifications import NotificationRouter
from .protocol.commands import CommandType, build, encode
from .protocol.responses import (
    parse_playlist,
    parse_song,
    parse_songs,
    parse_status,
    parse_update,
)
from .transport import MPDTransport, TransportState
from .types import ServerInfo, Song, Status

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConnectionMode(str, Enum):
    """Externally visible connection mode."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    GREETING = "greeting"
    IDLE = "idle"
    COMMANDING = "commanding"


@dataclass
class PlaybackAPI:
    """Playback control."""

    _client: MPDClient

    async def play(self, pos: int | None = None) -> None:
        """Start playback, optionally at a queue position."""
        await self._client.command("play", *_optional(pos))

    async def play_id(self, song_id: int | None = None) -> None:
        """Start playback at a queue song id."""
        await self._client.command("playid", *_optional(song_id))

    async def stop(self) -> None:
        await self._client.command("stop")

    async def pause(self, paused: bool | None = None) -> None:
        """Pause (True), resume (False) or toggle (None)."""
        await self._client.command("pause", *_optional(paused))

    async def toggle(self) -> None:
        await self._client.command("pause")

    async def next(self) -> None:
        await self._client.command("next")

    async def previous(self) -> None:
        await self._client.command("previous")

    async def seek(self, pos: int, seconds: float) -> None:
        """Seek to a time within the song at queue position pos."""
        await self._client.command("seek", pos, seconds)


@dataclass
class MixerAPI:
    """Volume control."""

    _client: MPDClient

    async def set_volume(self, percent: int) -> None:
        """Set the volume, 0-100."""
        if not 0 <= percent <= 100:
            raise ValueError(f"Volume must be between 0 and 100, got {percent}")
        await self._client.command("setvol", percent)

    @property
    def volume(self) -> float | None:
        """Volume from the last status snapshot, as a fraction 0-1."""
        return self._client.status.volume


@dataclass
class OptionsAPI:
    """Playback options."""

    _client: MPDClient

    async def repeat(self, enabled: bool = True) -> None:
        await self._client.command("repeat", enabled)

    async def random(self, enabled: bool = True) -> None:
        await self._client.command("random", enabled)

    async def single(self, enabled: bool = True) -> None:
        await self._client.command("single", enabled)

    async def consume(self, enabled: bool = True) -> None:
        await self._client.command("consume", enabled)

    async def crossfade(self, seconds: int) -> None:
        await self._client.command("crossfade", seconds)


@dataclass
class QueueAPI:
    """Current playlist (queue) operations."""

    _client: MPDClient

    async def add(self, uri: str) -> None:
        """Append a file or directory from the database."""
        await self._client.command("add", uri)

    async def delete(self, pos: int) -> None:
        """Remove the song at a queue position."""
        await self._client.command("delete", pos)

    async def clear(self) -> None:
        await self._client.command("clear")

    async def search_add(self, search: dict[str, str]) -> None:
        """Add every database song matching all tag/value pairs.

        Example:
            await client.queue.search_add({"Artist": "Miles Davis"})
        """
        if not search:
            raise ValueError("search_add needs at least one tag/value pair")
        args: list[str] = []
        for tag, value in search.items():
            args.extend([tag, value])
        await self._client.command("searchadd", *args)


@dataclass
class DatabaseAPI:
    """Music database operations."""

    _client: MPDClient

    async def update(self, uri: str | None = None) -> int:
        """Start a database update. Returns the update job id."""
        frame = await self._client.command("update", *_optional(uri))
        return parse_update(frame)

    async def search(self, search: dict[str, str]) -> list[Song]:
        """Case-insensitive search by tag/value pairs."""
        args: list[str] = []
        for tag, value in search.items():
            args.extend([tag, value])
        return parse_songs(await self._client.command("search", *args))


def _optional(value: Any) -> tuple[Any, ...]:
    return () if value is None else (value,)


def _retrieve_exception(future: asyncio.Future[Any]) -> None:
    if not future.cancelled():
        future.exception()


class MPDClient:
    """Persistent MPD client.

    One connection, arbitrated between ordinary commands and the idle
    wait, reconnected automatically after transport failures.

    Snapshots (status, playlist, songs) are replaced wholesale whenever
    the server reports a change; they are never partially updated.
    """

    def __init__(self, config: ClientConfig | None = None, **overrides: Any):
        self.config = (config or ClientConfig()).with_overrides(**overrides)
        self.events = Bus()

        self._status = Status()
        self._playlist: list[Song | None] = []
        self._songs: list[Song] = []
        self._ready = asyncio.Event()
        self._tasks: set[asyncio.Task[Any]] = set()

        self._transport = MPDTransport(self.config, handler=self, bus=self.events)
        self._arbiter = CommandArbiter(
            write=self._transport.write,
            on_notification=self._route_notification,
            interrupt_timeout=self.config.interrupt_timeout,
        )
        status_refresh = self._refresh_status
        self._router = NotificationRouter(
            refreshers={
                "mixer": status_refresh,
                "player": status_refresh,
                "options": status_refresh,
                "playlist": self._refresh_playlist,
                "database": self._refresh_songs,
            },
            bus=self.events,
            on_failure=self._background_failure,
        )

    # -------------------------------------------------------------------------
    # Grouped convenience APIs
    # -------------------------------------------------------------------------

    @property
    def playback(self) -> PlaybackAPI:
        """Playback control."""
        return PlaybackAPI(_client=self)

    @property
    def mixer(self) -> MixerAPI:
        """Volume control."""
        return MixerAPI(_client=self)

    @property
    def options(self) -> OptionsAPI:
        """Repeat, random, single, consume, crossfade."""
        return OptionsAPI(_client=self)

    @property
    def queue(self) -> QueueAPI:
        """Queue (current playlist) operations."""
        return QueueAPI(_client=self)

    @property
    def database(self) -> DatabaseAPI:
        """Music database operations."""
        return DatabaseAPI(_client=self)

    # -------------------------------------------------------------------------
    # Snapshots and state
    # -------------------------------------------------------------------------

    @property
    def status(self) -> Status:
        """Last status snapshot."""
        return self._status

    @property
    def playlist(self) -> list[Song | None]:
        """Last queue snapshot, indexed by position."""
        return list(self._playlist)

    @property
    def songs(self) -> list[Song]:
        """Last catalog snapshot."""
        return list(self._songs)

    @property
    def server(self) -> ServerInfo | None:
        """Name and version from the current connection's greeting."""
        return self._transport.server

    @property
    def is_connected(self) -> bool:
        return self._transport.is_connected

    @property
    def is_ready(self) -> bool:
        """Connected and initial snapshots loaded."""
        return self._ready.is_set()

    @property
    def mode(self) -> ConnectionMode:
        """Current connection mode."""
        state = self._transport.state
        if state == TransportState.CONNECTING:
            return ConnectionMode.CONNECTING
        if state == TransportState.GREETING:
            return ConnectionMode.GREETING
        if state != TransportState.CONNECTED:
            return ConnectionMode.DISCONNECTED
        if self._arbiter.state == ArbiterState.IDLE:
            return ConnectionMode.IDLE
        return ConnectionMode.COMMANDING

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """Connect to MPD.

        With auto_reconnect (the default) a failed first attempt is
        retried in the background; use wait_ready() to wait for it.

        Raises:
            ConnectionError: If connection fails and auto_reconnect is off
        """
        await self._transport.connect()

    async def disconnect(self) -> None:
        """Disconnect and stop reconnecting.

        Every queued and in-flight request fails with ConnectionClosedError.
        """
        await self._transport.disconnect()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def wait_ready(self, timeout: float | None = None) -> None:
        """Wait until connected and the initial snapshots are loaded.

        Raises:
            TimeoutError: If not ready within timeout
        """
        await asyncio.wait_for(self._ready.wait(), timeout=timeout)

    async def __aenter__(self) -> MPDClient:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def submit(self, command: str | CommandType, *args: Any) -> asyncio.Future[str]:
        """Queue any command and return a future of its raw response frame.

        The frame includes the trailing OK line. ACK responses fail the
        future with CommandError.
        """
        return self._arbiter.submit(encode(command, *args))

    async def command(self, name: str, *args: Any) -> str:
        """Run a command from the command table and return its frame.

        Raises:
            UnknownCommandError: Unknown name or wrong number of arguments
            CommandError: The server answered with ACK
            ConnectionClosedError: The connection went away first
        """
        return await self._arbiter.submit(build(name, *args))

    async def ping(self) -> None:
        await self.command("ping")

    async def current_song(self) -> Song | None:
        """The song currently playing or paused, if any."""
        return parse_song(await self.command("currentsong"))

    async def update_status(self) -> Status:
        """Refresh and return the status snapshot."""
        return await self._refresh_status()

    async def update_playlist(self) -> list[Song | None]:
        """Refresh and return the queue snapshot."""
        return await self._refresh_playlist()

    async def update_songs(self) -> list[Song]:
        """Refresh and return the catalog snapshot."""
        return await self._refresh_songs()

    # -------------------------------------------------------------------------
    # Refreshes: the command is queued synchronously, decoding happens
    # when the response arrives, and the snapshot is assigned last.
    # -------------------------------------------------------------------------

    def _refresh(self, command: CommandType, apply: Callable[[str], T]) -> asyncio.Task[T]:
        future = self._arbiter.submit(command.value)
        return self._spawn(self._apply_response(future, apply))

    @staticmethod
    async def _apply_response(future: asyncio.Future[str], apply: Callable[[str], T]) -> T:
        return apply(await future)

    def _refresh_status(self) -> asyncio.Task[Status]:
        return self._refresh(CommandType.STATUS, self._apply_status)

    def _refresh_playlist(self) -> asyncio.Task[list[Song | None]]:
        return self._refresh(CommandType.PLAYLISTINFO, self._apply_playlist)

    def _refresh_songs(self) -> asyncio.Task[list[Song]]:
        return self._refresh(CommandType.LISTALLINFO, self._apply_songs)

    def _apply_status(self, frame: str) -> Status:
        status = parse_status(frame)
        self._status = status
        return status

    def _apply_playlist(self, frame: str) -> list[Song | None]:
        playlist = parse_playlist(frame)
        self._playlist = playlist
        return list(playlist)

    def _apply_songs(self, frame: str) -> list[Song]:
        songs = parse_songs(frame)
        self._songs = songs
        return list(songs)

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -------------------------------------------------------------------------
    # ConnectionHandler implementation (called by the transport)
    # -------------------------------------------------------------------------

    def connection_made(self, server: ServerInfo) -> None:
        self._ready.clear()
        initial: list[str] = []
        if self.config.password:
            initial.append(encode(CommandType.PASSWORD, self.config.password))
        applies: list[Callable[[str], Any]] = []
        if self.config.refresh_on_connect:
            initial.extend(
                [
                    CommandType.STATUS.value,
                    CommandType.LISTALLINFO.value,
                    CommandType.PLAYLISTINFO.value,
                ]
            )
            applies = [self._apply_status, self._apply_songs, self._apply_playlist]

        futures = self._arbiter.start(initial)
        for future in futures:
            # Failures are reported once, by _finish_connect
            future.add_done_callback(_retrieve_exception)
        self._spawn(self._finish_connect(server, futures, applies))

    def frame_received(self, frame: str) -> None:
        self._arbiter.handle_frame(frame)

    def connection_lost(self, reason: str) -> None:
        self._ready.clear()
        self._arbiter.fail_all(reason)

    async def _finish_connect(
        self,
        server: ServerInfo,
        futures: list[asyncio.Future[str]],
        applies: list[Callable[[str], Any]],
    ) -> None:
        """Apply the initial refreshes, then announce readiness."""
        # Password response (if any) comes first and has nothing to apply.
        offset = len(futures) - len(applies)
        try:
            for future in futures[:offset]:
                await future
            for future, apply in zip(futures[offset:], applies, strict=True):
                apply(await future)
        except ConnectionClosedError as e:
            logger.debug(f"Initial refresh abandoned: {e}")
            return
        except MPDClientError as e:
            self._background_failure("connect", e)
            return

        self._ready.set()
        logger.info(f"Client ready ({len(self._songs)} songs, {len(self._playlist)} queued)")
        self.events.emit(Ready, ReadyProps(server=server.name, version=server.version))

    def _route_notification(self, frame: str) -> None:
        self._router.route(frame)

    def _background_failure(self, origin: str, exc: BaseException) -> None:
        """Report a failure no caller is waiting for.

        Decode and protocol errors leave the snapshots in an unknown
        state, so the connection is rebuilt.
        """
        if isinstance(exc, ConnectionClosedError):
            logger.debug(f"Background refresh ({origin}) dropped: {exc}")
            return
        self.events.emit(Error, error_props(exc))
        if isinstance(exc, ProtocolError):
            self._transport.force_reconnect(f"{origin}: {exc}")
