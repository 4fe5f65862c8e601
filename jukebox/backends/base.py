"""
Abstract audio backend interface.

Defines the contract that all audio backends must implement.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Callable, Optional

from .types import BackendInfo, BackendStatus, ProgressSample

logger = logging.getLogger(__name__)

# Event callback types
TrackCompleteCallback = Callable[[], None]

# Duration heuristic: roughly one minute of audio per megabyte
DEFAULT_DURATION_SECONDS = 300.0
MIN_ESTIMATED_MINUTES = 1.0
MAX_ESTIMATED_MINUTES = 20.0
BYTES_PER_MINUTE = 1024 * 1024

# A track is considered finished within this many seconds of its end
END_OF_TRACK_TOLERANCE_SECONDS = 1.0
END_OF_TRACK_RATIO = 0.999


def estimate_duration_from_size(path: str) -> float:
    """
    Estimate track duration in seconds from its file size.

    Returns DEFAULT_DURATION_SECONDS if the file cannot be inspected.
    """
    try:
        size = os.path.getsize(path)
    except OSError:
        return DEFAULT_DURATION_SECONDS
    minutes = max(MIN_ESTIMATED_MINUTES, min(MAX_ESTIMATED_MINUTES, size / BYTES_PER_MINUTE))
    return minutes * 60.0


def is_at_end_of_track(position: float, duration: float) -> bool:
    """Check whether a reported position has reached the end of the track."""
    if duration <= 0:
        return False
    if position >= duration - END_OF_TRACK_TOLERANCE_SECONDS:
        return True
    return position / duration >= END_OF_TRACK_RATIO


class AudioBackend(ABC):
    """
    Abstract base class for audio output backends.

    Three backend styles are supported:
    - Process: one short-lived player process per track, completion on exit
    - Daemon: a long-lived media daemon controlled over HTTP
    - Direct daemon: a daemon controlled through a CLI/socket client

    Operations never raise on I/O failure. They log the error and report
    failure as False or a safe default.
    """

    backend_type: str = "unknown"
    process_name: str = ""

    def __init__(self, name: str = "AudioBackend"):
        """Initialize backend."""
        self.name = name
        self._volume: float = 1.0  # 0.0-1.0
        self._muted: bool = False
        self._current_file: Optional[str] = None

        # Event callbacks
        self._on_track_complete: Optional[TrackCompleteCallback] = None

    # =========================================================================
    # Playback Control - Required
    # =========================================================================

    @abstractmethod
    async def play_file(self, path: str) -> bool:
        """
        Stop any current playback and start playing a file.

        Returns True only once the backend is confirmed to be producing audio.
        """
        pass

    @abstractmethod
    async def stop(self) -> bool:
        """Stop playback and sweep orphaned player processes. Idempotent."""
        pass

    @abstractmethod
    async def pause(self) -> bool:
        """Pause current playback."""
        pass

    @abstractmethod
    async def resume(self) -> bool:
        """Resume paused playback."""
        pass

    @abstractmethod
    async def seek(self, position: float) -> bool:
        """Seek to a normalized position in [0, 1] of the current track."""
        pass

    # =========================================================================
    # Volume Control
    # =========================================================================

    @abstractmethod
    async def _apply_volume(self, level: float) -> Optional[float]:
        """
        Push a volume level (0.0-1.0) to the mixer.

        Returns the level actually applied, or None if the mixer rejected it.
        """
        pass

    async def set_volume(self, level: float) -> float:
        """
        Set playback volume.

        Clamps to [0, 1]. A level of 0 marks the backend as muted.

        Returns:
            The applied volume, which may differ from the request when the
            mixer quantizes it
        """
        level = max(0.0, min(1.0, float(level)))
        applied = await self._apply_volume(level)
        if applied is None:
            logger.warning(f"{self.name}: mixer did not accept volume {level:.2f}")
            applied = level
        self._volume = applied
        self._muted = applied == 0.0
        return applied

    async def get_volume(self) -> float:
        """Get current volume level (0.0-1.0)."""
        return self._volume

    async def is_muted(self) -> bool:
        """Check whether output is muted."""
        return self._muted

    async def toggle_mute(self) -> bool:
        """
        Toggle mute.

        Muting pushes 0 to the mixer but keeps the stored volume so that
        unmuting restores it.

        Returns:
            New muted state
        """
        if self._muted:
            restore = self._volume if self._volume > 0 else 1.0
            applied = await self._apply_volume(restore)
            self._volume = restore if applied is None else applied
            self._muted = False
        else:
            await self._apply_volume(0.0)
            self._muted = True
        logger.info(f"{self.name}: muted={self._muted}")
        return self._muted

    # =========================================================================
    # State - Required
    # =========================================================================

    @abstractmethod
    async def get_status(self) -> BackendStatus:
        """Get observed backend status."""
        pass

    @abstractmethod
    async def get_progress(self) -> ProgressSample:
        """Read current playback position without side effects."""
        pass

    def reports_duration(self) -> bool:
        """Check whether the backend reports real track durations."""
        return False

    async def estimate_duration(self, path: str) -> float:
        """Best-effort duration estimate in seconds."""
        return estimate_duration_from_size(path)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @abstractmethod
    async def force_stop(self) -> None:
        """Stop immediately without waiting for a clean shutdown."""
        pass

    @abstractmethod
    async def kill_all_processes(self) -> None:
        """Kill every process owned by this backend."""
        pass

    async def shutdown(self) -> None:
        """Release all backend resources before the backend is replaced."""
        self.clear_track_complete_callback()
        try:
            await self.force_stop()
        except Exception as e:
            logger.warning(f"{self.name}: error during force stop: {e}")
        try:
            await self.kill_all_processes()
        except Exception as e:
            logger.warning(f"{self.name}: error killing processes: {e}")
        logger.info(f"{self.name}: shut down")

    # =========================================================================
    # Event Callbacks
    # =========================================================================

    def set_track_complete_callback(self, callback: TrackCompleteCallback) -> None:
        """Register callback for natural track completion (not stop commands)."""
        self._on_track_complete = callback

    def clear_track_complete_callback(self) -> None:
        """Remove the track completion callback."""
        self._on_track_complete = None

    def report_track_complete(self) -> None:
        """Signal that the current track finished on its own."""
        self._notify_track_complete()

    # =========================================================================
    # Event Notification Helpers
    # =========================================================================

    def _notify_track_complete(self) -> None:
        """Notify listener that the track ended naturally."""
        if self._on_track_complete:
            try:
                self._on_track_complete()
            except Exception as e:
                logger.error(f"Track complete callback error: {e}")
        else:
            logger.debug(f"{self.name}: track completed with no listener registered")

    # =========================================================================
    # Info
    # =========================================================================

    def get_info(self) -> BackendInfo:
        """Get information about this backend."""
        return BackendInfo(
            backend_type=self.backend_type,
            name=self.name,
            process_name=self.process_name,
        )
