"""Playback and queue management module."""

from .command_handler import (
    CommandError,
    CommandResult,
    InvalidCommandError,
    PermissionDeniedError,
    PlaybackCommandHandler,
    UnknownCommandError,
)
from .persistence import PersistedState, SettingsStore, StatePersistence
from .player import JukeboxPlayer, PlaybackSnapshot, PlayerState
from .progress import ProgressPoller
from .queue import JukeboxQueue, Track, generate_track_id
from .stats import HttpPlayCountReporter, PlayCountReporter, create_reporter

__all__ = [
    # Queue
    "JukeboxQueue",
    "Track",
    "generate_track_id",
    # Persistence
    "PersistedState",
    "StatePersistence",
    "SettingsStore",
    # Player
    "JukeboxPlayer",
    "PlaybackSnapshot",
    "PlayerState",
    "ProgressPoller",
    # Commands
    "PlaybackCommandHandler",
    "CommandError",
    "CommandResult",
    "InvalidCommandError",
    "PermissionDeniedError",
    "UnknownCommandError",
    # Stats
    "PlayCountReporter",
    "HttpPlayCountReporter",
    "create_reporter",
]
