"""Fake MPD server for integration tests.

Speaks just enough of the protocol for the client: greeting, canned
responses keyed by command line or command name, and idle/noidle.
"""

from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio

from mpd_client.client import MPDClient

DEFAULT_RESPONSES = {
    "status": "volume: 42\nrepeat: 0\nrandom: 0\nstate: stop\nOK\n",
    "listallinfo": (
        "directory: Artist\n"
        "file: Artist/a.mp3\nTitle: A\n"
        "file: Artist/b.mp3\nTitle: B\n"
        "OK\n"
    ),
    "playlistinfo": "file: Artist/a.mp3\nTitle: A\nPos: 0\nId: 1\nOK\n",
}


class FakeMPDServer:
    """In-process stand-in for an MPD server."""

    def __init__(self, greeting: str = "OK MPD 0.21.3", greeting_delay: float = 0):
        self.greeting = greeting
        self.greeting_delay = greeting_delay
        self.responses: dict[str, str] = dict(DEFAULT_RESPONSES)
        self.received: list[str] = []
        self.connections = 0
        self.port: int | None = None
        self._server: asyncio.AbstractServer | None = None
        self._writers: list[asyncio.StreamWriter] = []
        self._idle: set[asyncio.StreamWriter] = set()

    async def start(self, port: int = 0) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", port)
        self.port = self._server.sockets[0].getsockname()[1]

    async def start_unix(self, path: str) -> None:
        self._server = await asyncio.start_unix_server(self._handle, path=path)

    async def stop(self) -> None:
        self.drop()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    def drop(self) -> None:
        """Close every client connection, keep listening."""
        for writer in list(self._writers):
            writer.close()

    def notify(self, *subsystems: str) -> None:
        """Answer pending idle commands with `changed:` lines."""
        frame = "".join(f"changed: {name}\n" for name in subsystems) + "OK\n"
        for writer in list(self._idle):
            writer.write(frame.encode())
        self._idle.clear()

    def send_raw(self, text: str) -> None:
        """Write text to every connection as is."""
        for writer in list(self._writers):
            writer.write(text.encode())

    def is_idle(self) -> bool:
        return bool(self._idle)

    def _response(self, command: str) -> str:
        if command in self.responses:
            return self.responses[command]
        return self.responses.get(command.split(" ", 1)[0], "OK\n")

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        self._writers.append(writer)
        try:
            if self.greeting_delay:
                await asyncio.sleep(self.greeting_delay)
            writer.write(f"{self.greeting}\n".encode())
            while line := await reader.readline():
                command = line.decode().strip()
                self.received.append(command)
                if command == "idle":
                    self._idle.add(writer)
                elif command == "noidle":
                    if writer in self._idle:
                        self._idle.discard(writer)
                        writer.write(b"OK\n")
                else:
                    writer.write(self._response(command).encode())
                await writer.drain()
        except ConnectionError:
            pass
        finally:
            self._idle.discard(writer)
            self._writers.remove(writer)
            writer.close()


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll until predicate() is true."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


@pytest_asyncio.fixture
async def mpd_server():
    server = FakeMPDServer()
    await server.start()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def client(mpd_server):
    client = MPDClient(
        host="127.0.0.1",
        port=mpd_server.port,
        reconnect_interval=0.05,
        connect_timeout=2,
        greeting_timeout=2,
    )
    await client.connect()
    await client.wait_ready(timeout=2)
    yield client
    await client.disconnect()


@pytest.fixture
def eventually():
    """Async polling helper."""
    return wait_until


@pytest.fixture
def fake_mpd():
    """Factory for servers a test starts and stops itself."""
    return FakeMPDServer
