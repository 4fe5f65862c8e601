"""
Queue state persistence.

Writes {queue, currentTrack, timestampMillis} to a JSON file after every
mutation and reloads it at startup if it is fresh enough. Durability is
best-effort: I/O errors are logged and never fail the caller.
"""

import json
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from .queue import Track

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_HOURS = 24.0


@dataclass
class PersistedState:
    """Snapshot of queue bookkeeping as stored on disk."""

    queue: list[Track] = field(default_factory=list)
    current_track: Optional[Track] = None
    timestamp_millis: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "queue": [t.to_dict() for t in self.queue],
            "currentTrack": self.current_track.to_dict() if self.current_track else None,
            "timestampMillis": self.timestamp_millis,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PersistedState":
        """
        Parse the stored JSON layout.

        Raises:
            KeyError, TypeError, ValueError: If the document is malformed
        """
        current = data.get("currentTrack")
        return cls(
            queue=[Track.from_dict(t) for t in data.get("queue") or []],
            current_track=Track.from_dict(current) if current else None,
            timestamp_millis=int(data["timestampMillis"]),
        )


class StatePersistence:
    """
    JSON file store for queue state.

    Writes go to a temporary file first and are then renamed over the
    state file, so a crash mid-write leaves the previous state intact.
    """

    def __init__(
        self,
        path: Path,
        freshness_hours: float = DEFAULT_FRESHNESS_HOURS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize persistence.

        Args:
            path: State file location
            freshness_hours: Maximum age of state that will be restored
            clock: Wall clock in seconds (tests)
        """
        self.path = Path(path)
        self.freshness_hours = freshness_hours
        self._clock = clock

    def save(self, queue: list[Track], current_track: Optional[Track]) -> bool:
        """
        Write the state file.

        Returns:
            True if the state was written
        """
        state = PersistedState(
            queue=list(queue),
            current_track=current_track,
            timestamp_millis=int(self._clock() * 1000),
        )
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w") as f:
                json.dump(state.to_dict(), f, indent=2)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save queue state to {self.path}: {e}")
            return False

        logger.debug(
            f"Saved queue state ({len(queue)} queued, "
            f"current={current_track.title if current_track else None})"
        )
        return True

    def load(self) -> Optional[PersistedState]:
        """
        Load state if present and fresh.

        Returns:
            The stored state, or None if missing, stale or unreadable
        """
        if not self.path.exists():
            logger.debug(f"No queue state file at {self.path}")
            return None

        try:
            with open(self.path) as f:
                state = PersistedState.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable queue state {self.path}: {e}")
            return None

        age_hours = (self._clock() * 1000 - state.timestamp_millis) / 3_600_000
        if age_hours > self.freshness_hours:
            logger.info(f"Queue state is {age_hours:.1f}h old, starting with an empty queue")
            return None

        logger.info(
            f"Restored queue state: {len(state.queue)} queued, "
            f"current={state.current_track.title if state.current_track else None}"
        )
        return state

    def exists(self) -> bool:
        return self.path.exists()

    def size(self) -> int:
        """Size of the state file in bytes (0 if missing)."""
        try:
            return self.path.stat().st_size
        except OSError:
            return 0


class SettingsStore:
    """
    JSON file store for user settings that outlive the queue.

    Currently holds the audio player chosen at runtime, stored as
    {"audioPlayer": "<backend type>"}. Unlike queue state it never expires.
    """

    AUDIO_PLAYER_KEY = "audioPlayer"

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> dict[str, Any]:
        """Read all settings. Missing or unreadable files give an empty dict."""
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable settings {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed settings {self.path}")
            return {}
        return data

    def save(self, settings: dict[str, Any]) -> bool:
        """
        Write all settings atomically.

        Returns:
            True if the settings were written
        """
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w") as f:
                json.dump(settings, f, indent=2)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save settings to {self.path}: {e}")
            return False
        return True

    def get_backend_type(self) -> Optional[str]:
        value = self.load().get(self.AUDIO_PLAYER_KEY)
        return value if isinstance(value, str) and value else None

    def set_backend_type(self, backend_type: str) -> bool:
        """Remember the selected backend type, keeping any other settings."""
        settings = self.load()
        settings[self.AUDIO_PLAYER_KEY] = backend_type
        saved = self.save(settings)
        if saved:
            logger.debug(f"Saved audio player preference: {backend_type}")
        return saved
