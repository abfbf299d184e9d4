"""mpd-client command line.

Usage:
    mpd-client status                  # Show player status
    mpd-client status --format json    # Status as JSON
    mpd-client current                 # Show the current song
    mpd-client playlist                # Show the queue
    mpd-client play [POS]              # Start playback
    mpd-client stop | pause | next | previous
    mpd-client volume 60               # Set volume (0-100)
    mpd-client add "Artist/Album"      # Append to the queue
    mpd-client update                  # Rescan the music database
    mpd-client watch                   # Print change events until Ctrl-C

Connection settings come from --config, MPD_HOST / MPD_PORT, then the
--host / --port / --socket options.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click

from .client import MPDClient
from .config import ClientConfig, resolve_config
from .errors import MPDClientError
from .types import Song

T = TypeVar("T")

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"


def truncate(text: str | None, max_len: int = 50) -> str:
    """Truncate text for display."""
    if not text:
        return ""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def format_song(song: Song) -> str:
    """One-line description of a song."""
    if song.artist and song.title:
        return f"{song.artist} - {song.title}"
    return song.title or song.file


def _configure_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _run(ctx: click.Context, action: Callable[[MPDClient], Awaitable[T]], **overrides: Any) -> T:
    """Connect, run one action, disconnect. Exits non-zero on failure."""
    config: ClientConfig = ctx.obj["config"].with_overrides(**overrides)

    async def execute() -> T:
        async with MPDClient(config) as client:
            return await action(client)

    try:
        return asyncio.run(execute())
    except (MPDClientError, ConnectionError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option("--host", help="MPD host (default: localhost or MPD_HOST)")
@click.option("--port", type=int, help="MPD port (default: 6600 or MPD_PORT)")
@click.option("--socket", "socket_path", help="Connect through a local socket instead of TCP")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file with connection settings",
)
@click.option("--verbose", "-v", count=True, help="Log to stderr (-vv for wire traffic)")
@click.pass_context
def main(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    socket_path: str | None,
    config_path: str | None,
    verbose: int,
) -> None:
    """Control and watch a Music Player Daemon."""
    _configure_logging(verbose)

    overrides: dict[str, Any] = {"host": host, "port": port}
    if socket_path:
        overrides.update(transport="unix", socket_path=socket_path)
    elif host:
        overrides["transport"] = "tcp"

    try:
        config = resolve_config(config_path, **overrides)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e

    ctx.ensure_object(dict)
    # One-shot commands fail fast and skip loading the catalog
    ctx.obj["config"] = config.with_overrides(auto_reconnect=False, refresh_on_connect=False)
    ctx.obj["watch_config"] = config


# =============================================================================
# Status Commands
# =============================================================================


@main.command()
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
@click.pass_context
def status(ctx: click.Context, output_format: str) -> None:
    """Show player status."""

    async def action(client: MPDClient) -> dict[str, Any]:
        result = await client.update_status()
        return result.model_dump(exclude_none=True)

    info = _run(ctx, action)

    if output_format == FORMAT_JSON:
        click.echo(json.dumps(info, indent=2, default=str))
        return

    for key, value in info.items():
        if key == "volume":
            value = f"{round(value * 100)}%"
        elif key == "time":
            value = f"{value['elapsed']}s / {value['length']}s"
        click.echo(f"{key + ':':<16} {value}")


@main.command()
@click.pass_context
def current(ctx: click.Context) -> None:
    """Show the current song."""
    song = _run(ctx, lambda client: client.current_song())
    if song is None:
        click.echo("Nothing playing.")
        return
    click.echo(format_song(song))
    if song.album:
        click.echo(f"Album: {song.album}")
    click.echo(f"File:  {song.file}")


@main.command()
@click.option("--limit", "-n", default=50, help="Maximum entries to show")
@click.pass_context
def playlist(ctx: click.Context, limit: int) -> None:
    """Show the queue."""
    entries = _run(ctx, lambda client: client.update_playlist())
    if not entries:
        click.echo("Queue is empty.")
        return

    for pos, song in enumerate(entries[:limit]):
        if song is not None:
            click.echo(f"{pos:>4}  {truncate(format_song(song), 70)}")

    if len(entries) > limit:
        click.echo(f"... {len(entries) - limit} more")
    click.echo(f"\nTotal: {len(entries)} song(s)")


# =============================================================================
# Playback Commands
# =============================================================================


@main.command()
@click.argument("pos", type=int, required=False)
@click.pass_context
def play(ctx: click.Context, pos: int | None) -> None:
    """Start playback, optionally at queue position POS."""
    _run(ctx, lambda client: client.playback.play(pos))


@main.command()
@click.pass_context
def stop(ctx: click.Context) -> None:
    """Stop playback."""
    _run(ctx, lambda client: client.playback.stop())


@main.command()
@click.pass_context
def pause(ctx: click.Context) -> None:
    """Toggle pause."""
    _run(ctx, lambda client: client.playback.toggle())


@main.command("next")
@click.pass_context
def next_song(ctx: click.Context) -> None:
    """Play the next song in the queue."""
    _run(ctx, lambda client: client.playback.next())


@main.command()
@click.pass_context
def previous(ctx: click.Context) -> None:
    """Play the previous song in the queue."""
    _run(ctx, lambda client: client.playback.previous())


@main.command()
@click.argument("level", type=click.IntRange(0, 100))
@click.pass_context
def volume(ctx: click.Context, level: int) -> None:
    """Set the volume to LEVEL percent."""
    _run(ctx, lambda client: client.mixer.set_volume(level))


@main.command()
@click.argument("uri")
@click.pass_context
def add(ctx: click.Context, uri: str) -> None:
    """Append URI (file or directory) to the queue."""
    _run(ctx, lambda client: client.queue.add(uri))
    click.echo(f"Added {uri}")


@main.command()
@click.pass_context
def update(ctx: click.Context) -> None:
    """Rescan the music database."""
    job = _run(ctx, lambda client: client.database.update())
    click.echo(f"Update started (job {job})")


# =============================================================================
# Watch
# =============================================================================


@main.command()
@click.pass_context
def watch(ctx: click.Context) -> None:
    """Print lifecycle and change events until interrupted."""
    config: ClientConfig = ctx.obj["watch_config"]

    async def execute() -> None:
        client = MPDClient(config)
        async with client:
            async for event in client.events.stream():
                props = event["properties"]
                detail = ", ".join(f"{k}={v}" for k, v in props.items())
                click.echo(f"{event['type']:<20} {detail}")
                if event["type"] == "changed:mixer" and client.status.volume is not None:
                    click.echo(f"{'':<20} volume={round(client.status.volume * 100)}%")

    click.echo(f"Watching {config.address} (Ctrl-C to stop)", err=True)
    try:
        asyncio.run(execute())
    except KeyboardInterrupt:
        click.echo("\nStopped", err=True)
    except ConnectionError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
