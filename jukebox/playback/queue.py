"""
Queue management for the jukebox.

Holds the ordered list of pending tracks. Auto-play policy lives in the
player, so every operation here is a plain in-memory mutation.
"""

import logging
import random
import string
import time
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any, Optional

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"
DEFAULT_DURATION_LABEL = "0:00"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_track_id() -> str:
    """Generate a queue entry id: track_<epoch millis>_<9 random chars>."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"track_{int(time.time() * 1000)}_{suffix}"


@dataclass(frozen=True)
class Track:
    """
    A track in the queue.

    Attributes:
        id: Unique queue entry id (unrelated to catalog ids)
        path: Absolute file path or backend-resolvable locator
        title: Display title
        artist: Display artist
        album: Display album
        duration_label: Display duration, e.g. "3:45"
    """

    id: str
    path: str
    title: str = ""
    artist: str = UNKNOWN
    album: str = UNKNOWN
    duration_label: str = DEFAULT_DURATION_LABEL

    @classmethod
    def create(
        cls,
        path: str,
        title: Optional[str] = None,
        artist: Optional[str] = None,
        album: Optional[str] = None,
        duration_label: Optional[str] = None,
    ) -> "Track":
        """Create a track with a fresh id, filling display defaults."""
        return cls(
            id=generate_track_id(),
            path=path,
            title=title or PurePath(path).stem,
            artist=artist or UNKNOWN,
            album=album or UNKNOWN,
            duration_label=duration_label or DEFAULT_DURATION_LABEL,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (JSON layout)."""
        return {
            "id": self.id,
            "path": self.path,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "durationLabel": self.duration_label,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Track":
        """
        Build a track from its JSON layout.

        Raises:
            KeyError: If path is missing
        """
        path = data["path"]
        return cls(
            id=data.get("id") or generate_track_id(),
            path=path,
            title=data.get("title") or PurePath(path).stem,
            artist=data.get("artist") or UNKNOWN,
            album=data.get("album") or UNKNOWN,
            duration_label=data.get("durationLabel") or DEFAULT_DURATION_LABEL,
        )


class JukeboxQueue:
    """
    FIFO queue of pending tracks.

    Insertion order is play order; the front of the queue plays next.
    """

    def __init__(self, tracks: Optional[list[Track]] = None) -> None:
        self._tracks: list[Track] = list(tracks or [])

    def __len__(self) -> int:
        return len(self._tracks)

    @property
    def is_empty(self) -> bool:
        return not self._tracks

    def get_tracks(self) -> list[Track]:
        """Get a copy of the pending tracks in play order."""
        return list(self._tracks)

    def enqueue(self, track: Track) -> None:
        """Append a track to the end of the queue."""
        self._tracks.append(track)
        logger.info(f"Enqueued: {track.title} ({len(self._tracks)} in queue)")

    def dequeue_next(self) -> Optional[Track]:
        """Pop the track at the front of the queue."""
        if not self._tracks:
            return None
        return self._tracks.pop(0)

    def remove_at(self, index: int) -> Optional[Track]:
        """
        Remove the track at an index.

        Returns:
            The removed track, or None if the index is out of bounds
        """
        if not 0 <= index < len(self._tracks):
            logger.debug(f"Remove ignored, index {index} out of range")
            return None
        track = self._tracks.pop(index)
        logger.info(f"Removed from queue: {track.title}")
        return track

    def reorder(self, from_index: int, to_index: int) -> bool:
        """
        Move one track to a new position.

        Both indices must be within the current bounds.

        Returns:
            True if the queue changed
        """
        size = len(self._tracks)
        if not (0 <= from_index < size and 0 <= to_index < size):
            logger.debug(f"Reorder ignored, indices {from_index}->{to_index} out of range")
            return False
        if from_index == to_index:
            return False
        track = self._tracks.pop(from_index)
        self._tracks.insert(to_index, track)
        logger.info(f"Moved {track.title}: {from_index} -> {to_index}")
        return True

    def clear(self) -> None:
        """Remove all pending tracks."""
        count = len(self._tracks)
        self._tracks.clear()
        logger.info(f"Queue cleared ({count} tracks)")

    def replace(self, tracks: list[Track]) -> None:
        """Replace the queue contents (used when restoring state)."""
        self._tracks = list(tracks)
