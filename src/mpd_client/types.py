"""Typed records decoded from MPD responses."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ServerInfo(BaseModel):
    """Protocol name and version advertised in the greeting."""

    name: str
    version: str

    @property
    def version_tuple(self) -> tuple[int, ...]:
        """Numeric version components, e.g. (0, 21, 3)."""
        parts = []
        for part in self.version.split("."):
            if not part.isdigit():
                break
            parts.append(int(part))
        return tuple(parts)


class PlayTime(BaseModel):
    """Composite `time: elapsed:length` status field, in whole seconds."""

    elapsed: int
    length: int


class Status(BaseModel):
    """Snapshot of the `status` command.

    Rebuilt from scratch on every refresh. Keys without a typed field
    are kept as raw strings.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    volume: float | None = None
    repeat: bool | None = None
    random: bool | None = None
    single: bool | str | None = None
    consume: bool | None = None
    playlist: int | None = None
    playlistlength: int | None = None
    state: str | None = None
    song: int | None = None
    songid: int | None = None
    nextsong: int | None = None
    nextsongid: int | None = None
    xfade: int | None = None
    bitrate: int | None = None
    updating_db: int | None = None
    elapsed: float | None = None
    duration: float | None = None
    mixrampdb: float | None = None
    audio: str | None = None
    error: str | None = None
    time: PlayTime | None = None


# Wire name -> attribute name for the recognised song tags.
SONG_FIELDS: dict[str, str] = {
    "file": "file",
    "Last-Modified": "last_modified",
    "Time": "time",
    "duration": "duration",
    "Artist": "artist",
    "AlbumArtist": "album_artist",
    "Album": "album",
    "Title": "title",
    "Track": "track",
    "Date": "date",
    "Genre": "genre",
    "Name": "name",
    "Composer": "composer",
    "Pos": "pos",
    "Id": "id",
}


class Song(BaseModel):
    """A catalog or queue entry built from a run of `Key: value` lines.

    Fields are populated by their wire names (aliases); anything else is
    dropped.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    file: str
    last_modified: datetime | None = Field(default=None, alias="Last-Modified")
    time: int | None = Field(default=None, alias="Time")
    duration: float | None = None
    artist: str | None = Field(default=None, alias="Artist")
    album_artist: str | None = Field(default=None, alias="AlbumArtist")
    album: str | None = Field(default=None, alias="Album")
    title: str | None = Field(default=None, alias="Title")
    track: str | None = Field(default=None, alias="Track")
    date: str | None = Field(default=None, alias="Date")
    genre: str | None = Field(default=None, alias="Genre")
    name: str | None = Field(default=None, alias="Name")
    composer: str | None = Field(default=None, alias="Composer")
    pos: int | None = Field(default=None, alias="Pos")
    id: int | None = Field(default=None, alias="Id")

    def flat_copy(self) -> dict[str, Any]:
        """Populated fields as a plain dict keyed by attribute name."""
        return self.model_dump(exclude_none=True)

    def to_lines(self) -> list[str]:
        """Encode the populated fields as `Key: value` response lines."""
        lines = []
        for key, value in self.model_dump(by_alias=True, exclude_none=True).items():
            if isinstance(value, datetime):
                value = value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
            lines.append(f"{key}: {value}")
        return lines
