"""Unit tests for configuration loading."""

import pytest

from mpd_client.config import (
    DEFAULT_PORT,
    ClientConfig,
    config_from_env,
    config_from_mapping,
    load_config,
    resolve_config,
)


class TestClientConfig:
    """Test defaults and validation."""

    def test_defaults(self):
        config = ClientConfig()
        assert config.transport == "tcp"
        assert config.port == DEFAULT_PORT
        assert config.auto_reconnect is True
        assert config.address == "localhost:6600"

    def test_unix_address(self):
        config = ClientConfig(transport="unix", socket_path="/tmp/mpd.sock")
        assert config.address == "/tmp/mpd.sock"

    def test_bad_transport(self):
        with pytest.raises(ValueError, match="Unknown transport"):
            ClientConfig(transport="pigeon")

    def test_bad_interval(self):
        with pytest.raises(ValueError):
            ClientConfig(reconnect_interval=0)

    def test_overrides_skip_none(self):
        config = ClientConfig().with_overrides(host="music", port=None)
        assert config.host == "music"
        assert config.port == DEFAULT_PORT


class TestYaml:
    """Test YAML configuration files."""

    def test_flat(self, tmp_path):
        path = tmp_path / "mpd.yaml"
        path.write_text("host: music.local\nport: 6601\nreconnect_interval: 2\n")

        config = load_config(path)

        assert config.host == "music.local"
        assert config.port == 6601
        assert config.reconnect_interval == 2

    def test_nested(self, tmp_path):
        path = tmp_path / "mpd.yaml"
        path.write_text("mpd:\n  transport: unix\n  socket_path: /run/mpd.sock\n")

        assert load_config(path).address == "/run/mpd.sock"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "mpd.yaml"
        path.write_text("")
        assert load_config(path) == ClientConfig()

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "mpd.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(path)

    def test_unknown_keys(self):
        with pytest.raises(ValueError, match="Unknown configuration keys: colour"):
            config_from_mapping({"colour": "blue"})


class TestEnvironment:
    """Test MPD_HOST / MPD_PORT handling."""

    def test_host_and_port(self):
        config = config_from_env(environ={"MPD_HOST": "music", "MPD_PORT": "6700"})
        assert config.host == "music"
        assert config.port == 6700

    def test_password(self):
        config = config_from_env(environ={"MPD_HOST": "secret@music"})
        assert config.password == "secret"
        assert config.host == "music"

    def test_socket(self):
        config = config_from_env(environ={"MPD_HOST": "/run/mpd/socket"})
        assert config.transport == "unix"
        assert config.socket_path == "/run/mpd/socket"

    def test_invalid_port_ignored(self):
        config = config_from_env(environ={"MPD_PORT": "many"})
        assert config.port == DEFAULT_PORT

    def test_empty(self):
        assert config_from_env(environ={}) == ClientConfig()


class TestResolve:
    """Test precedence between sources."""

    def test_precedence(self, tmp_path, monkeypatch):
        path = tmp_path / "mpd.yaml"
        path.write_text("host: from-file\nport: 6601\npassword: file-pass\n")
        monkeypatch.setenv("MPD_HOST", "from-env")
        monkeypatch.delenv("MPD_PORT", raising=False)

        config = resolve_config(path, port=6602)

        assert config.host == "from-env"
        assert config.port == 6602
        assert config.password == "file-pass"
