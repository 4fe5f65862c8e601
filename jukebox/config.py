"""
Jukebox Configuration System.

Priority order (highest to lowest):
1. Command-line arguments
2. Environment variables
3. Configuration file (YAML)
4. Default values
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)


VALID_BACKEND_TYPES = {"process", "vlc", "mpd"}

# Valid log levels
VALID_LOG_LEVELS = {"debug", "info", "warning", "error"}

STATE_FILE_NAME = "queue-state.json"
SETTINGS_FILE_NAME = "settings.json"

# Environment variable mappings
ENV_MAPPINGS = {
    # Backend
    "JUKEBOX_BACKEND": ("backend", "type"),
    "JUKEBOX_COMMAND_TIMEOUT": ("backend", "command_timeout"),
    "JUKEBOX_PLAYER_COMMAND": ("backend", "process", "command"),
    "JUKEBOX_VLC_BINARY": ("backend", "vlc", "binary"),
    "JUKEBOX_VLC_HOST": ("backend", "vlc", "host"),
    "JUKEBOX_VLC_PORT": ("backend", "vlc", "port"),
    "JUKEBOX_VLC_PASSWORD": ("backend", "vlc", "password"),
    "JUKEBOX_VLC_LAUNCH": ("backend", "vlc", "launch"),
    "JUKEBOX_MPD_HOST": ("backend", "mpd", "host"),
    "JUKEBOX_MPD_PORT": ("backend", "mpd", "port"),
    "JUKEBOX_MPD_MUSIC_DIRECTORY": ("backend", "mpd", "music_directory"),
    # Mixer
    "JUKEBOX_MIXER_ENABLED": ("mixer", "enabled"),
    # Playback
    "JUKEBOX_DATA_DIR": ("playback", "data_dir"),
    "JUKEBOX_STATE_FILE": ("playback", "state_file"),
    "JUKEBOX_SETTINGS_FILE": ("playback", "settings_file"),
    # Stats
    "JUKEBOX_STATS_URL": ("stats", "url"),
    # Party mode
    "JUKEBOX_PARTY_MODE": ("party_mode", "enabled"),
    # Server
    "JUKEBOX_HTTP_PORT": ("server", "http_port"),
    "JUKEBOX_BIND_ADDRESS": ("server", "bind_address"),
    # Logging
    "JUKEBOX_LOG_LEVEL": ("logging", "level"),
}

INT_ENV_VARS = {"JUKEBOX_VLC_PORT", "JUKEBOX_MPD_PORT", "JUKEBOX_HTTP_PORT"}
FLOAT_ENV_VARS = {"JUKEBOX_COMMAND_TIMEOUT"}
BOOL_ENV_VARS = {"JUKEBOX_VLC_LAUNCH", "JUKEBOX_MIXER_ENABLED", "JUKEBOX_PARTY_MODE"}
LIST_ENV_VARS = {"JUKEBOX_PLAYER_COMMAND"}


class ConfigError(Exception):
    """Configuration error."""

    pass


@dataclass
class ProcessConfig:
    """One-shot player process configuration."""

    command: list[str] = field(default_factory=list)  # Platform default if empty
    supported_formats: list[str] = field(default_factory=list)  # Player default if empty
    start_grace_seconds: float = 0.2


@dataclass
class VLCConfig:
    """VLC HTTP daemon configuration."""

    binary: str = "vlc"
    host: str = "127.0.0.1"
    port: int = 8080
    password: str = "jukebox"
    launch: bool = True
    startup_timeout: float = 10.0


@dataclass
class MPDConfig:
    """MPD daemon configuration."""

    mpc_binary: str = "mpc"
    host: str = "localhost"
    port: int = 6600
    music_directory: str = ""
    daemon_command: list[str] = field(default_factory=list)


@dataclass
class BackendConfig:
    """Audio backend configuration."""

    type: str = "process"
    command_timeout: float = 20.0
    process: ProcessConfig = field(default_factory=ProcessConfig)
    vlc: VLCConfig = field(default_factory=VLCConfig)
    mpd: MPDConfig = field(default_factory=MPDConfig)


@dataclass
class MixerConfig:
    """System mixer configuration."""

    enabled: bool = True
    control: str = "Master"


@dataclass
class PlaybackConfig:
    """Queue, persistence and polling configuration."""

    data_dir: str = "./data"
    state_file: str = ""  # <data_dir>/queue-state.json if empty
    settings_file: str = ""  # <data_dir>/settings.json if empty
    freshness_hours: float = 24.0
    poll_interval: float = 1.0
    completion_cooldown: float = 1.0
    queue_monitor_interval: float = 5.0  # 0 disables the monitor

    def __post_init__(self) -> None:
        if not self.state_file:
            self.state_file = str(Path(self.data_dir) / STATE_FILE_NAME)
        if not self.settings_file:
            self.settings_file = str(Path(self.data_dir) / SETTINGS_FILE_NAME)


@dataclass
class StatsConfig:
    """Play count reporting configuration."""

    url: str = ""  # Empty disables HTTP reporting


@dataclass
class PartyModeConfig:
    """Shared permission toggle for guests."""

    enabled: bool = False
    allow_queue_management: bool = True


@dataclass
class ServerConfig:
    """Server configuration."""

    http_port: int = 3001
    bind_address: str = "0.0.0.0"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class Config:
    """Complete jukebox configuration."""

    backend: BackendConfig = field(default_factory=BackendConfig)
    mixer: MixerConfig = field(default_factory=MixerConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    stats: StatsConfig = field(default_factory=StatsConfig)
    party_mode: PartyModeConfig = field(default_factory=PartyModeConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def validate_port(port: int) -> bool:
    """Validate port number."""
    return isinstance(port, int) and 1 <= port <= 65535


def validate_config(config: Config) -> None:
    """
    Validate configuration.

    Raises:
        ConfigError: If configuration is invalid
    """
    errors = []

    # Backend
    if config.backend.type not in VALID_BACKEND_TYPES:
        errors.append(
            f"Invalid backend type: {config.backend.type}. "
            f"Valid values: {sorted(VALID_BACKEND_TYPES)}"
        )
    if config.backend.command_timeout <= 0:
        errors.append(f"Invalid command_timeout: {config.backend.command_timeout}")
    if not validate_port(config.backend.vlc.port):
        errors.append(f"Invalid VLC port: {config.backend.vlc.port}")
    if config.backend.type == "vlc" and not config.backend.vlc.password:
        errors.append("VLC password is required when backend type is 'vlc'")
    if not validate_port(config.backend.mpd.port):
        errors.append(f"Invalid MPD port: {config.backend.mpd.port}")

    # Playback
    if config.playback.freshness_hours <= 0:
        errors.append(f"Invalid freshness_hours: {config.playback.freshness_hours}")
    if config.playback.poll_interval <= 0:
        errors.append(f"Invalid poll_interval: {config.playback.poll_interval}")
    if config.playback.completion_cooldown < 0:
        errors.append(f"Invalid completion_cooldown: {config.playback.completion_cooldown}")
    if config.playback.queue_monitor_interval < 0:
        errors.append(f"Invalid queue_monitor_interval: {config.playback.queue_monitor_interval}")

    # Server
    if not validate_port(config.server.http_port):
        errors.append(f"Invalid HTTP port: {config.server.http_port}")

    # Logging
    if config.logging.level.lower() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid log level: {config.logging.level}. "
            f"Valid values: {sorted(VALID_LOG_LEVELS)}"
        )

    if errors:
        raise ConfigError("Configuration validation failed:\n  - " + "\n  - ".join(errors))


def load_yaml_config(path: Path) -> dict:
    """
    Load configuration from YAML file.

    Args:
        path: Path to YAML file

    Returns:
        Configuration dictionary

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    if not path.exists():
        logger.debug(f"Config file not found: {path}")
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
            return data if data else {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML config: {e}")
    except IOError as e:
        raise ConfigError(f"Error reading config file: {e}")


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Set a nested dictionary value using a path tuple."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def load_env_config() -> dict:
    """
    Load configuration from environment variables.

    Returns:
        Configuration dictionary with values from environment
    """
    result: dict = {}

    for env_var, path in ENV_MAPPINGS.items():
        value: Any = os.environ.get(env_var)
        if value is None:
            continue

        if env_var in INT_ENV_VARS:
            try:
                value = int(value)
            except ValueError:
                logger.warning(f"Invalid integer for {env_var}: {value}")
                continue
        elif env_var in FLOAT_ENV_VARS:
            try:
                value = float(value)
            except ValueError:
                logger.warning(f"Invalid number for {env_var}: {value}")
                continue
        elif env_var in BOOL_ENV_VARS:
            value = value.lower() in ("true", "1", "yes", "on")
        elif env_var in LIST_ENV_VARS:
            value = value.split()

        _set_nested(result, path, value)

    return result


def _deep_merge(base: dict, override: dict) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def merge_configs(*configs: dict) -> dict:
    """
    Deep merge multiple configuration dictionaries.
    Later configs override earlier ones.
    """
    result: dict = {}
    for config in configs:
        _deep_merge(result, config)
    return result


def _as_list(value: Any) -> list[str]:
    """Accept either a list or a whitespace separated string."""
    if isinstance(value, str):
        return value.split()
    return [str(v) for v in value] if value else []


def _update_dataclass(target: Any, values: dict, list_fields: tuple = ()) -> None:
    """Copy known keys from a dict onto a flat dataclass."""
    for key, value in values.items():
        if not hasattr(target, key) or isinstance(value, dict):
            continue
        setattr(target, key, _as_list(value) if key in list_fields else value)


def dict_to_config(d: dict) -> Config:
    """Convert a dictionary to Config dataclass."""
    config = Config()

    # Backend
    if "backend" in d:
        b = d["backend"]
        config.backend.type = b.get("type", config.backend.type)
        config.backend.command_timeout = b.get("command_timeout", config.backend.command_timeout)
        if "process" in b:
            _update_dataclass(
                config.backend.process, b["process"], ("command", "supported_formats")
            )
        if "vlc" in b:
            _update_dataclass(config.backend.vlc, b["vlc"])
        if "mpd" in b:
            _update_dataclass(config.backend.mpd, b["mpd"], ("daemon_command",))

    # Mixer
    if "mixer" in d:
        _update_dataclass(config.mixer, d["mixer"])

    # Playback
    if "playback" in d:
        p = d["playback"]
        data_dir = p.get("data_dir", config.playback.data_dir)
        config.playback = PlaybackConfig(
            data_dir=data_dir,
            state_file=p.get("state_file", ""),
            settings_file=p.get("settings_file", ""),
        )
        derived = ("state_file", "settings_file")
        _update_dataclass(config.playback, {k: v for k, v in p.items() if k not in derived})

    # Stats
    if "stats" in d:
        config.stats.url = d["stats"].get("url", config.stats.url) or ""

    # Party mode
    if "party_mode" in d:
        _update_dataclass(config.party_mode, d["party_mode"])

    # Server
    if "server" in d:
        s = d["server"]
        config.server.http_port = s.get("http_port", config.server.http_port)
        config.server.bind_address = s.get("bind_address", config.server.bind_address)

    # Logging
    if "logging" in d:
        config.logging.level = d["logging"].get("level", config.logging.level)

    return config


def load_config(
    config_path: Optional[Path] = None,
    cli_args: Optional[dict] = None,
) -> Config:
    """
    Load configuration from all sources.

    Priority (highest to lowest):
    1. CLI arguments
    2. Environment variables
    3. Config file
    4. Defaults

    Args:
        config_path: Path to YAML config file
        cli_args: Dictionary of CLI arguments

    Returns:
        Merged Config object

    Raises:
        ConfigError: If configuration is invalid
    """
    configs = []

    # 1. Load from file (lowest priority of explicit configs)
    if config_path:
        file_config = load_yaml_config(config_path)
        if file_config:
            configs.append(file_config)
            logger.debug(f"Loaded config from {config_path}")

    # 2. Load from environment
    env_config = load_env_config()
    if env_config:
        configs.append(env_config)
        logger.debug("Loaded config from environment variables")

    # 3. Load from CLI (highest priority)
    if cli_args:
        configs.append(cli_args)
        logger.debug("Loaded config from CLI arguments")

    merged = merge_configs(*configs) if configs else {}

    # Convert to Config object (fills in defaults)
    config = dict_to_config(merged)

    validate_config(config)

    return config
