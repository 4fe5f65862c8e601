"""
Jukebox - queue-driven music player service.

Plays a persistent track queue through a local audio player (a one-shot
player process, VLC or MPD).
"""

__version__ = "0.1.0"

from .app import JukeboxApp
from .config import Config, load_config, ConfigError

__all__ = [
    "__version__",
    "JukeboxApp",
    "Config",
    "load_config",
    "ConfigError",
]
