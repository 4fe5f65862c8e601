"""
Jukebox CLI entry point.

Provides command-line interface for running the jukebox service.
"""

import argparse
import asyncio
import logging
import shlex
import sys
from pathlib import Path
from typing import Any

from jukebox import __version__
from jukebox.app import JukeboxApp
from jukebox.backends import BackendNotFoundError
from jukebox.config import VALID_BACKEND_TYPES, Config, ConfigError, load_config

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_BACKEND_ERROR = 3


def setup_logging(level: str = "info") -> None:
    """Configure logging to stdout."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
        force=True,
    )


def parse_args(argv: Any = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="jukebox",
        description="Queue-driven jukebox playing through a local audio player",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  jukebox --config config.yaml
  jukebox --backend vlc --vlc-port 8080
  jukebox --backend mpd --mpd-music-directory /srv/music
  jukebox --backend process --player-command "mpg123 -q"

Environment Variables:
  JUKEBOX_BACKEND, JUKEBOX_COMMAND_TIMEOUT, JUKEBOX_PLAYER_COMMAND
  JUKEBOX_VLC_BINARY, JUKEBOX_VLC_HOST, JUKEBOX_VLC_PORT, JUKEBOX_VLC_PASSWORD
  JUKEBOX_MPD_HOST, JUKEBOX_MPD_PORT, JUKEBOX_MPD_MUSIC_DIRECTORY
  JUKEBOX_DATA_DIR, JUKEBOX_STATE_FILE, JUKEBOX_STATS_URL, JUKEBOX_PARTY_MODE
  JUKEBOX_HTTP_PORT, JUKEBOX_BIND_ADDRESS, JUKEBOX_LOG_LEVEL
""",
    )

    # General
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    # Configuration
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("./config.yaml"),
        metavar="PATH",
        help="Path to config file (default: ./config.yaml)",
    )

    # Backend
    backend_group = parser.add_argument_group("Backend")
    backend_group.add_argument(
        "--backend",
        choices=sorted(VALID_BACKEND_TYPES),
        metavar="TYPE",
        help="Audio backend: process, vlc, mpd (default: process)",
    )
    backend_group.add_argument(
        "--player-command",
        metavar="TEXT",
        help="Player command for the process backend, e.g. 'mpg123 -q'",
    )
    backend_group.add_argument(
        "--vlc-port",
        type=int,
        metavar="INT",
        help="VLC HTTP interface port (default: 8080)",
    )
    backend_group.add_argument(
        "--vlc-password",
        metavar="TEXT",
        help="VLC HTTP interface password",
    )
    backend_group.add_argument(
        "--mpd-host",
        metavar="TEXT",
        help="MPD host (default: localhost)",
    )
    backend_group.add_argument(
        "--mpd-port",
        type=int,
        metavar="INT",
        help="MPD port (default: 6600)",
    )
    backend_group.add_argument(
        "--mpd-music-directory",
        metavar="PATH",
        help="MPD music_directory, used to map file paths to MPD URIs",
    )

    # Playback
    playback_group = parser.add_argument_group("Playback")
    playback_group.add_argument(
        "--data-dir",
        metavar="PATH",
        help="Directory for the queue state file (default: ./data)",
    )
    playback_group.add_argument(
        "--stats-url",
        metavar="URL",
        help="Endpoint receiving play count reports",
    )
    playback_group.add_argument(
        "--party-mode",
        action="store_true",
        help="Stop guests from removing, reordering or skipping tracks",
    )

    # Server
    server_group = parser.add_argument_group("Server")
    server_group.add_argument(
        "--http-port",
        type=int,
        metavar="INT",
        help="HTTP API port (default: 3001)",
    )
    server_group.add_argument(
        "--bind",
        metavar="TEXT",
        help="Bind address (default: 0.0.0.0)",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        metavar="LEVEL",
        help="Log level: debug, info, warning, error",
    )

    return parser.parse_args(argv)


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Set a nested dictionary value."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def args_to_dict(args: argparse.Namespace) -> dict:
    """Convert argparse namespace to nested config dict."""
    result: dict = {}

    # Map CLI args to config paths
    mappings = {
        "backend": ("backend", "type"),
        "player_command": ("backend", "process", "command"),
        "vlc_port": ("backend", "vlc", "port"),
        "vlc_password": ("backend", "vlc", "password"),
        "mpd_host": ("backend", "mpd", "host"),
        "mpd_port": ("backend", "mpd", "port"),
        "mpd_music_directory": ("backend", "mpd", "music_directory"),
        "data_dir": ("playback", "data_dir"),
        "stats_url": ("stats", "url"),
        "party_mode": ("party_mode", "enabled"),
        "http_port": ("server", "http_port"),
        "bind": ("server", "bind_address"),
        "log_level": ("logging", "level"),
    }

    for arg_name, path in mappings.items():
        value = getattr(args, arg_name, None)
        # Skip None values and False for party_mode (only set if explicitly True)
        if value is None:
            continue
        if arg_name == "party_mode":
            if not value:
                continue
            _set_nested(result, ("party_mode", "allow_queue_management"), False)
        if arg_name == "player_command":
            value = shlex.split(value)
        _set_nested(result, path, value)

    return result


def log_config(config: Config) -> None:
    """Log configuration summary (without sensitive data)."""
    logger.info(f"Backend: {config.backend.type}")
    if config.backend.type == "vlc":
        logger.info(f"VLC: {config.backend.vlc.host}:{config.backend.vlc.port}")
    elif config.backend.type == "mpd":
        logger.info(f"MPD: {config.backend.mpd.host}:{config.backend.mpd.port}")
    logger.info(f"State file: {config.playback.state_file}")
    logger.info(f"Settings file: {config.playback.settings_file}")
    logger.info(f"HTTP API: {config.server.bind_address}:{config.server.http_port}")
    if config.party_mode.enabled:
        logger.info(
            f"Party mode: on (queue management "
            f"{'allowed' if config.party_mode.allow_queue_management else 'restricted'})"
        )


def run_serve(args: argparse.Namespace) -> int:
    """
    Run the jukebox service.

    Args:
        args: Parsed arguments

    Returns:
        Exit code
    """
    # Setup basic logging first (will be reconfigured after config load)
    setup_logging("info")

    logger.info(f"Jukebox v{__version__}")

    try:
        cli_config = args_to_dict(args)
        config = load_config(args.config, cli_config)

        # Reconfigure logging with loaded level
        setup_logging(config.logging.level)

        log_config(config)

    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    try:
        app = JukeboxApp(config)
        asyncio.run(app.run())
        return EXIT_SUCCESS

    except BackendNotFoundError as e:
        logger.error(f"Backend error: {e}")
        return EXIT_BACKEND_ERROR

    except (ConnectionError, OSError) as e:
        logger.error(f"Network error: {e}")
        return EXIT_BACKEND_ERROR

    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_SUCCESS

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return EXIT_BACKEND_ERROR


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code: 0=success, 1=config error, 3=backend/network error
    """
    return run_serve(parse_args())


if __name__ == "__main__":
    sys.exit(main())
