"""Tests for configuration loading."""

from pathlib import Path

import pytest

from jukebox.config import (
    ENV_MAPPINGS,
    Config,
    ConfigError,
    dict_to_config,
    load_config,
    load_env_config,
    load_yaml_config,
    merge_configs,
    validate_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove any JUKEBOX_* variables from the test environment."""
    for var in ENV_MAPPINGS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        """
backend:
  type: vlc
  command_timeout: 15
  vlc:
    port: 9090
    password: hunter2
  mpd:
    daemon_command: mpd --no-daemon
playback:
  data_dir: /var/lib/jukebox
  freshness_hours: 12
party_mode:
  enabled: true
  allow_queue_management: false
server:
  http_port: 4000
logging:
  level: debug
"""
    )
    return path


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self) -> None:
        config = load_config()

        assert config.backend.type == "process"
        assert config.backend.command_timeout == 20.0
        assert config.backend.vlc.port == 8080
        assert config.backend.mpd.port == 6600
        assert config.playback.freshness_hours == 24.0
        assert config.playback.queue_monitor_interval == 5.0
        assert config.party_mode.enabled is False
        assert config.server.http_port == 3001
        assert config.logging.level == "info"

    def test_state_file_derived_from_data_dir(self) -> None:
        config = dict_to_config({"playback": {"data_dir": "/srv/jukebox"}})
        assert config.playback.state_file == str(Path("/srv/jukebox") / "queue-state.json")

    def test_explicit_state_file(self) -> None:
        config = dict_to_config({"playback": {"state_file": "/tmp/state.json"}})
        assert config.playback.state_file == "/tmp/state.json"

    def test_settings_file_derived_from_data_dir(self) -> None:
        config = dict_to_config({"playback": {"data_dir": "/srv/jukebox"}})
        assert config.playback.settings_file == str(Path("/srv/jukebox") / "settings.json")


class TestYamlConfig:
    """Tests for YAML file loading."""

    def test_load_file(self, config_file) -> None:
        config = load_config(config_file)

        assert config.backend.type == "vlc"
        assert config.backend.command_timeout == 15
        assert config.backend.vlc.port == 9090
        assert config.backend.vlc.password == "hunter2"
        assert config.backend.mpd.daemon_command == ["mpd", "--no-daemon"]
        assert config.playback.data_dir == "/var/lib/jukebox"
        assert config.playback.freshness_hours == 12
        assert config.party_mode.allow_queue_management is False
        assert config.server.http_port == 4000
        assert config.logging.level == "debug"

    def test_missing_file_is_empty(self, tmp_path) -> None:
        assert load_yaml_config(tmp_path / "nope.yaml") == {}

    def test_empty_file(self, tmp_path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_config(path) == {}

    def test_invalid_yaml(self, tmp_path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("backend: [unclosed")

        with pytest.raises(ConfigError):
            load_yaml_config(path)


class TestEnvConfig:
    """Tests for environment variables."""

    def test_env_values(self, monkeypatch) -> None:
        monkeypatch.setenv("JUKEBOX_BACKEND", "mpd")
        monkeypatch.setenv("JUKEBOX_MPD_PORT", "6601")
        monkeypatch.setenv("JUKEBOX_COMMAND_TIMEOUT", "7.5")
        monkeypatch.setenv("JUKEBOX_PARTY_MODE", "yes")
        monkeypatch.setenv("JUKEBOX_PLAYER_COMMAND", "mpg123 -q")

        config = load_config()

        assert config.backend.type == "mpd"
        assert config.backend.mpd.port == 6601
        assert config.backend.command_timeout == 7.5
        assert config.party_mode.enabled is True
        assert config.backend.process.command == ["mpg123", "-q"]

    def test_invalid_integer_skipped(self, monkeypatch) -> None:
        monkeypatch.setenv("JUKEBOX_HTTP_PORT", "not-a-port")
        assert "server" not in load_env_config()

    def test_env_overrides_file(self, config_file, monkeypatch) -> None:
        monkeypatch.setenv("JUKEBOX_VLC_PORT", "9191")

        config = load_config(config_file)

        assert config.backend.vlc.port == 9191
        assert config.backend.vlc.password == "hunter2"


class TestPriority:
    """Tests for source priority."""

    def test_cli_overrides_env_and_file(self, config_file, monkeypatch) -> None:
        monkeypatch.setenv("JUKEBOX_HTTP_PORT", "5000")

        config = load_config(config_file, {"server": {"http_port": 6000}})

        assert config.server.http_port == 6000

    def test_deep_merge_keeps_siblings(self) -> None:
        merged = merge_configs(
            {"backend": {"type": "vlc", "vlc": {"port": 1}}},
            {"backend": {"vlc": {"password": "x"}}},
        )

        assert merged == {"backend": {"type": "vlc", "vlc": {"port": 1, "password": "x"}}}


class TestValidation:
    """Tests for validate_config."""

    def test_valid_default(self) -> None:
        validate_config(Config())

    def test_unknown_backend(self) -> None:
        config = Config()
        config.backend.type = "winamp"

        with pytest.raises(ConfigError, match="Invalid backend type"):
            validate_config(config)

    def test_bad_port(self) -> None:
        config = Config()
        config.server.http_port = 70000

        with pytest.raises(ConfigError, match="HTTP port"):
            validate_config(config)

    def test_vlc_requires_password(self) -> None:
        config = Config()
        config.backend.type = "vlc"
        config.backend.vlc.password = ""

        with pytest.raises(ConfigError, match="password"):
            validate_config(config)

    def test_collects_all_errors(self) -> None:
        config = Config()
        config.backend.command_timeout = 0
        config.playback.freshness_hours = -1
        config.logging.level = "verbose"

        with pytest.raises(ConfigError) as exc_info:
            validate_config(config)

        message = str(exc_info.value)
        assert "command_timeout" in message
        assert "freshness_hours" in message
        assert "log level" in message
