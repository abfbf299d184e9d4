"""Unit tests for the client facade, driven without a socket."""

import asyncio
from unittest.mock import MagicMock

import pytest

from mpd_client.client import ConnectionMode, MPDClient
from mpd_client.config import ClientConfig
from mpd_client.errors import (
    CommandError,
    ConnectionClosedError,
    ProtocolError,
    UnknownCommandError,
)
from mpd_client.types import ServerInfo

SERVER = ServerInfo(name="MPD", version="0.21.3")


def offline_client(wire, **overrides) -> MPDClient:
    """Client whose arbiter writes into `wire` instead of a socket."""
    client = MPDClient(ClientConfig(**overrides))
    client._arbiter._write = wire.write
    client._transport.force_reconnect = MagicMock()
    return client


def record_events(client: MPDClient, pattern: str = "*") -> list[dict]:
    events: list[dict] = []

    async def on_event(payload):
        events.append(payload)

    client.events.subscribe(pattern, on_event)
    return events


async def settle(client: MPDClient) -> None:
    for _ in range(5):
        await asyncio.sleep(0)
    await client.events.drain()


class TestConnect:
    """Test the initial refresh after a greeting."""

    @pytest.mark.asyncio
    async def test_initial_snapshots_then_ready(self, wire):
        client = offline_client(wire)
        events = record_events(client, "ready")

        client.connection_made(SERVER)
        assert wire.lines == ["status"]

        client.frame_received("volume: 42\nstate: stop\nOK")
        assert wire.lines[-1] == "listallinfo"
        client.frame_received("file: a.mp3\nfile: b.mp3\nOK")
        assert wire.lines[-1] == "playlistinfo"
        client.frame_received("file: b.mp3\nPos: 0\nOK")
        assert wire.lines[-1] == "idle"

        await settle(client)

        assert client.is_ready
        assert client.status.volume == pytest.approx(0.42)
        assert [song.file for song in client.songs] == ["a.mp3", "b.mp3"]
        assert client.playlist[0].file == "b.mp3"
        assert [e["properties"] for e in events] == [{"server": "MPD", "version": "0.21.3"}]

    @pytest.mark.asyncio
    async def test_password_sent_first(self, wire):
        client = offline_client(wire, password="hunter2", refresh_on_connect=False)

        client.connection_made(SERVER)

        assert wire.lines == ['password "hunter2"']
        client.frame_received("OK")
        await settle(client)
        assert client.is_ready
        assert wire.lines[-1] == "idle"

    @pytest.mark.asyncio
    async def test_wrong_password_reported(self, wire):
        client = offline_client(wire, password="wrong", refresh_on_connect=False)
        errors = record_events(client, "error")

        client.connection_made(SERVER)
        client.frame_received("ACK [3@0] {password} incorrect password")
        await settle(client)

        assert not client.is_ready
        assert errors[0]["properties"]["kind"] == "CommandError"
        client._transport.force_reconnect.assert_not_called()

    @pytest.mark.asyncio
    async def test_bad_initial_status_forces_reconnect(self, wire):
        client = offline_client(wire)

        client.connection_made(SERVER)
        client.frame_received("not a status line\nOK")
        await settle(client)

        assert not client.is_ready
        client._transport.force_reconnect.assert_called_once()


class TestNotifications:
    """Test change notifications end to end through the arbiter."""

    @pytest.mark.asyncio
    async def test_refresh_before_event(self, wire):
        client = offline_client(wire, refresh_on_connect=False)
        events = record_events(client, "changed:*")
        client.connection_made(SERVER)
        await settle(client)

        client.frame_received("changed: mixer\nchanged: playlist\nOK")
        assert wire.lines == ["idle", "status"]

        await settle(client)
        assert events == []

        client.frame_received("volume: 55\nOK")
        assert wire.lines[-1] == "playlistinfo"
        client.frame_received("file: a.mp3\nPos: 0\nOK")
        assert wire.lines[-1] == "idle"

        await settle(client)
        assert [e["type"] for e in events] == ["changed:mixer", "changed:playlist"]
        assert client.status.volume == pytest.approx(0.55)
        assert client.playlist[0].file == "a.mp3"

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_snapshot(self, wire):
        client = offline_client(wire, refresh_on_connect=False)
        events = record_events(client, "changed:*")
        client.connection_made(SERVER)
        before = client.status

        client.frame_received("changed: player\nOK")
        client.frame_received("volume: loud\nOK")
        await settle(client)

        assert client.status is before
        assert events == []
        client._transport.force_reconnect.assert_called_once()

    @pytest.mark.asyncio
    async def test_unknown_idle_frame_raises(self, wire):
        client = offline_client(wire, refresh_on_connect=False)
        client.connection_made(SERVER)

        with pytest.raises(ProtocolError, match="unknown message during idle"):
            client.frame_received("volume: 1\nOK")


class TestCommands:
    """Test command submission."""

    @pytest.mark.asyncio
    async def test_ack_reaches_caller(self, wire):
        client = offline_client(wire, refresh_on_connect=False)
        client.connection_made(SERVER)

        task = asyncio.create_task(client.playback.play(99))
        await asyncio.sleep(0)
        assert wire.lines[-1] == "noidle"

        client.frame_received("OK")
        assert wire.lines[-1] == 'play "99"'
        client.frame_received("ACK [5@0] {play} bad song index")

        with pytest.raises(CommandError) as exc_info:
            await task
        assert exc_info.value.code == 5
        assert wire.lines[-1] == "idle"
        client._transport.force_reconnect.assert_not_called()

    @pytest.mark.asyncio
    async def test_connection_lost_fails_queued(self, wire):
        client = offline_client(wire, refresh_on_connect=False)
        client.connection_made(SERVER)

        futures = [client.submit("status"), client.submit("stats"), client.submit("ping")]
        client.connection_lost("Connection reset")

        for future in futures:
            assert isinstance(future.exception(), ConnectionClosedError)
        assert client._arbiter.queued == 0
        assert not client.is_ready

    @pytest.mark.asyncio
    async def test_submit_while_disconnected(self, wire):
        client = offline_client(wire)

        with pytest.raises(ConnectionClosedError):
            await client.submit("status")
        assert client.mode == ConnectionMode.DISCONNECTED

    @pytest.mark.asyncio
    async def test_unknown_command_rejected_locally(self, wire):
        client = offline_client(wire, refresh_on_connect=False)
        client.connection_made(SERVER)

        with pytest.raises(UnknownCommandError):
            await client.command("launch")
        assert wire.lines == ["idle"]

    @pytest.mark.asyncio
    async def test_volume_range(self, wire):
        client = offline_client(wire, refresh_on_connect=False)
        with pytest.raises(ValueError):
            await client.mixer.set_volume(101)

    @pytest.mark.asyncio
    async def test_search_add_needs_terms(self, wire):
        client = offline_client(wire, refresh_on_connect=False)
        with pytest.raises(ValueError):
            await client.queue.search_add({})

    @pytest.mark.asyncio
    async def test_update_returns_job(self, wire):
        client = offline_client(wire, refresh_on_connect=False)
        client.connection_made(SERVER)

        task = asyncio.create_task(client.database.update())
        await asyncio.sleep(0)
        client.frame_received("OK")
        client.frame_received("updating_db: 3\nOK")

        assert await task == 3
