"""Client configuration.

Sources, lowest precedence first: dataclass defaults, a YAML file,
the MPD_HOST / MPD_PORT environment variables, explicit overrides.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_PORT = 6600
DEFAULT_SOCKET_PATH = "/run/mpd/socket"


@dataclass(frozen=True)
class ClientConfig:
    """Configuration for one client connection."""

    # Connection mode
    transport: str = "tcp"  # "tcp" | "unix"

    # TCP settings
    host: str = "localhost"
    port: int = DEFAULT_PORT

    # Local socket settings
    socket_path: str = DEFAULT_SOCKET_PATH

    password: str | None = None

    # Timeouts (seconds)
    connect_timeout: float = 10.0
    greeting_timeout: float = 10.0
    interrupt_timeout: float = 1.0

    # Reconnection: fixed interval, no backoff, no retry cap
    auto_reconnect: bool = True
    reconnect_interval: float = 5.0

    # Load status, catalog and playlist after every (re)connect
    refresh_on_connect: bool = True

    read_size: int = 65536
    encoding: str = "utf-8"

    def __post_init__(self) -> None:
        if self.transport not in ("tcp", "unix"):
            raise ValueError(f"Unknown transport: {self.transport!r} (expected 'tcp' or 'unix')")
        if self.reconnect_interval <= 0:
            raise ValueError("reconnect_interval must be positive")
        if self.interrupt_timeout <= 0:
            raise ValueError("interrupt_timeout must be positive")

    @property
    def address(self) -> str:
        """Human-readable endpoint for logs and events."""
        if self.transport == "unix":
            return self.socket_path
        return f"{self.host}:{self.port}"

    def with_overrides(self, **overrides: Any) -> ClientConfig:
        """Copy with non-None overrides applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self


def _field_names() -> set[str]:
    return {f.name for f in fields(ClientConfig)}


def config_from_mapping(data: dict[str, Any], base: ClientConfig | None = None) -> ClientConfig:
    """Apply a mapping (e.g. parsed YAML) on top of base.

    Raises:
        ValueError: On keys that are not ClientConfig fields
    """
    unknown = set(data) - _field_names()
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
    return replace(base or ClientConfig(), **data)


def load_config(path: str | Path, base: ClientConfig | None = None) -> ClientConfig:
    """Load configuration from a YAML file.

    The file holds a flat mapping of ClientConfig fields, optionally
    nested under an `mpd:` key.
    """
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    if isinstance(data.get("mpd"), dict):
        data = data["mpd"]

    logger.debug(f"Loaded configuration from {path}")
    return config_from_mapping(data, base)


def config_from_env(
    base: ClientConfig | None = None, environ: dict[str, str] | None = None
) -> ClientConfig:
    """Apply MPD_HOST and MPD_PORT.

    MPD_HOST follows the usual conventions: `password@host`, and a value
    starting with `/` selects a local socket.
    """
    env = os.environ if environ is None else environ
    config = base or ClientConfig()
    changes: dict[str, Any] = {}

    host = env.get("MPD_HOST")
    if host:
        if "@" in host and not host.startswith("@"):
            password, host = host.split("@", 1)
            changes["password"] = password
        if host.startswith("/"):
            changes["transport"] = "unix"
            changes["socket_path"] = host
        else:
            changes["transport"] = "tcp"
            changes["host"] = host

    port = env.get("MPD_PORT")
    if port:
        try:
            changes["port"] = int(port)
        except ValueError:
            logger.warning(f"Ignoring invalid MPD_PORT: {port!r}")

    return replace(config, **changes) if changes else config


def resolve_config(path: str | Path | None = None, **overrides: Any) -> ClientConfig:
    """Defaults, then YAML file, then environment, then overrides."""
    config = ClientConfig()
    if path is not None:
        config = load_config(path, config)
    config = config_from_env(config)
    return config.with_overrides(**overrides)
