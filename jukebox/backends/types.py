"""
Audio backend types and enumerations.
"""

import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class BackendState(str, Enum):
    """
    Playback state as observed on a backend.

    Values match the state strings reported by the media daemons.
    """

    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass
class BackendStatus:
    """
    Observed liveness of a backend.

    Reflects what the backend is actually doing, not what it was last asked to do.
    """

    is_playing: bool = False
    current_file: Optional[str] = None
    has_backend_process: bool = False
    platform: str = sys.platform

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "isPlaying": self.is_playing,
            "currentFile": self.current_file,
            "hasBackendProcess": self.has_backend_process,
            "platform": self.platform,
        }


@dataclass
class ProgressSample:
    """
    A single progress reading from a backend.

    Attributes:
        position_seconds: Elapsed playback time
        duration_seconds: Reported or estimated track length (0 if unknown)
        state: Observed backend state
        finished: True when the backend reports the track has run to its end
    """

    position_seconds: float = 0.0
    duration_seconds: float = 0.0
    state: BackendState = BackendState.STOPPED
    finished: bool = False

    @property
    def ratio(self) -> float:
        """Playback position as a fraction of the duration, clamped to [0, 1]."""
        if self.duration_seconds <= 0:
            return 0.0
        return max(0.0, min(1.0, self.position_seconds / self.duration_seconds))


@dataclass
class BackendInfo:
    """
    Information about an audio backend.

    Used for display and debug output.
    """

    backend_type: str  # 'process', 'vlc', 'mpd'
    name: str  # Display name
    process_name: str  # Pattern used for system-wide process sweeps
    host: Optional[str] = None
    port: Optional[int] = None

    def __str__(self) -> str:
        if self.host:
            return f"{self.name} ({self.backend_type}) @ {self.host}:{self.port}"
        return f"{self.name} ({self.backend_type})"
