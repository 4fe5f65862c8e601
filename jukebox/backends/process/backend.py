"""
Process audio backend.

Spawns one short-lived player process (afplay, ffplay, mpg123) per track.
The track is complete when the process exits on its own.
"""

import asyncio
import logging
import os
import signal
import sys
import time
from typing import Iterable, Optional

from ..base import AudioBackend, estimate_duration_from_size
from ..mixer import SystemMixer
from ..processes import kill_processes, terminate_process
from ..types import BackendInfo, BackendState, BackendStatus, ProgressSample

logger = logging.getLogger(__name__)

# Time to wait after spawn before checking the player is still alive
START_GRACE_SECONDS = 0.2

AFPLAY_FORMATS = {"aiff", "aif", "wav", "mp3", "m4a", "aac", "caf", "snd", "au", "sd2", "pcm"}
FFPLAY_FORMATS = AFPLAY_FORMATS | {"flac", "ogg", "oga", "opus", "wma", "alac"}

SUPPORTED_FORMATS = {
    "afplay": AFPLAY_FORMATS,
    "ffplay": FFPLAY_FORMATS,
    "mpg123": {"mp1", "mp2", "mp3"},
}


def default_player_command(platform: str = "") -> list[str]:
    """Get the default player command for a platform."""
    if (platform or sys.platform) == "darwin":
        return ["afplay"]
    return ["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet"]


class ProcessBackend(AudioBackend):
    """
    Audio backend that runs one player process per track.

    Features:
    - Start confirmation via a short grace period
    - Completion detection on process exit
    - Pause/resume via SIGSTOP/SIGCONT
    - Volume through the system mixer
    - Seeking is not supported
    """

    backend_type = "process"

    def __init__(
        self,
        command: Optional[list[str]] = None,
        supported_formats: Optional[Iterable[str]] = None,
        start_grace_seconds: float = START_GRACE_SECONDS,
        mixer: Optional[SystemMixer] = None,
        name: Optional[str] = None,
    ):
        """
        Initialize process backend.

        Args:
            command: Player executable and arguments; the file path is appended
            supported_formats: File extensions the player accepts
            start_grace_seconds: Delay before confirming the player started
            mixer: System mixer used for volume
            name: Display name
        """
        self._command = list(command) if command else default_player_command()
        self.process_name = os.path.basename(self._command[0])
        super().__init__(name=name or f"Process player ({self.process_name})")

        if supported_formats:
            self._supported_formats = {f.lower().lstrip(".") for f in supported_formats}
        else:
            self._supported_formats = SUPPORTED_FORMATS.get(self.process_name, FFPLAY_FORMATS)
        self._start_grace = start_grace_seconds
        self._mixer = mixer or SystemMixer()

        self._process: Optional[asyncio.subprocess.Process] = None
        self._watch_task: Optional[asyncio.Task] = None
        self._duration: float = 0.0

        # Elapsed time tracking (monotonic clock)
        self._started_at: float = 0.0
        self._paused_at: Optional[float] = None
        self._paused_total: float = 0.0

    # =========================================================================
    # Playback Control
    # =========================================================================

    async def play_file(self, path: str) -> bool:
        """Start a player process for the file."""
        if not self._is_playable(path):
            return False

        try:
            await self._stop_current()
            proc = await asyncio.create_subprocess_exec(
                *self._command,
                path,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error(f"Failed to start {self.process_name}: {e}")
            return False

        self._process = proc
        self._current_file = path
        self._started_at = time.monotonic()
        self._paused_at = None
        self._paused_total = 0.0
        self._duration = await self.estimate_duration(path)

        await asyncio.sleep(self._start_grace)
        if proc.returncode is not None:
            logger.error(
                f"{self.process_name} exited during startup (code {proc.returncode}): {path}"
            )
            self._process = None
            self._current_file = None
            return False

        self._watch_task = asyncio.create_task(self._watch_process(proc))
        logger.info(f"Playing via {self.process_name} (pid {proc.pid}): {path}")
        return True

    async def stop(self) -> bool:
        """Stop the player and sweep stray player processes."""
        try:
            await self._stop_current()
            await kill_processes(self.process_name)
            return True
        except OSError as e:
            logger.error(f"Error stopping {self.process_name}: {e}")
            return False

    async def pause(self) -> bool:
        """Suspend the player process."""
        if not self._is_alive() or sys.platform == "win32":
            return False
        if self._paused_at is not None:
            return True
        try:
            self._process.send_signal(signal.SIGSTOP)  # type: ignore[union-attr]
        except ProcessLookupError:
            return False
        self._paused_at = time.monotonic()
        logger.info(f"Paused {self.process_name}")
        return True

    async def resume(self) -> bool:
        """Continue a suspended player process."""
        if not self._is_alive() or sys.platform == "win32":
            return False
        if self._paused_at is None:
            return True
        try:
            self._process.send_signal(signal.SIGCONT)  # type: ignore[union-attr]
        except ProcessLookupError:
            return False
        self._paused_total += time.monotonic() - self._paused_at
        self._paused_at = None
        logger.info(f"Resumed {self.process_name}")
        return True

    async def seek(self, position: float) -> bool:
        """Seeking is not supported by one-shot players."""
        logger.debug(f"Seek not supported by {self.process_name}")
        return False

    async def _apply_volume(self, level: float) -> Optional[float]:
        return await self._mixer.set_volume(level)

    # =========================================================================
    # State
    # =========================================================================

    async def get_status(self) -> BackendStatus:
        alive = self._is_alive()
        return BackendStatus(
            is_playing=alive and self._paused_at is None,
            current_file=self._current_file if alive else None,
            has_backend_process=alive,
        )

    async def get_progress(self) -> ProgressSample:
        if not self._is_alive():
            return ProgressSample(duration_seconds=self._duration)

        now = time.monotonic()
        paused = self._paused_total
        if self._paused_at is not None:
            paused += now - self._paused_at
        elapsed = max(0.0, now - self._started_at - paused)
        return ProgressSample(
            position_seconds=min(elapsed, self._duration) if self._duration else elapsed,
            duration_seconds=self._duration,
            state=BackendState.PAUSED if self._paused_at is not None else BackendState.PLAYING,
        )

    async def estimate_duration(self, path: str) -> float:
        return estimate_duration_from_size(path)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def force_stop(self) -> None:
        """Kill the current player without waiting for a clean exit."""
        proc = self._process
        self._process = None
        self._current_file = None
        self._paused_at = None
        if proc and proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await self._cancel_watch()

    async def kill_all_processes(self) -> None:
        await self.force_stop()
        await kill_processes(self.process_name, force=True)

    def get_info(self) -> BackendInfo:
        return BackendInfo(
            backend_type=self.backend_type,
            name=self.name,
            process_name=self.process_name,
        )

    # =========================================================================
    # Internal Methods
    # =========================================================================

    def _is_alive(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def _is_playable(self, path: str) -> bool:
        """Check the file exists, is non-empty and has a supported extension."""
        try:
            if not os.path.isfile(path) or os.path.getsize(path) == 0:
                logger.warning(f"File missing or empty: {path}")
                return False
        except OSError as e:
            logger.warning(f"Cannot read {path}: {e}")
            return False

        ext = os.path.splitext(path)[1].lower().lstrip(".")
        if ext not in self._supported_formats:
            logger.warning(f"Unsupported format '{ext}' for {self.process_name}: {path}")
            return False
        return True

    async def _stop_current(self) -> None:
        """Terminate the current player without reporting completion."""
        proc = self._process
        self._process = None
        self._current_file = None
        if proc and proc.returncode is None:
            if self._paused_at is not None and sys.platform != "win32":
                try:
                    proc.send_signal(signal.SIGCONT)
                except ProcessLookupError:
                    pass
            await terminate_process(proc)
        self._paused_at = None
        await self._cancel_watch()

    async def _cancel_watch(self) -> None:
        task = self._watch_task
        self._watch_task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _watch_process(self, proc: asyncio.subprocess.Process) -> None:
        """Wait for the player to exit and report natural completion."""
        returncode = await proc.wait()

        # Stopped or replaced by us: not a natural completion
        if self._process is not proc:
            return

        path = self._current_file
        self._process = None
        self._current_file = None
        self._paused_at = None
        self._watch_task = None

        if returncode != 0:
            logger.warning(f"{self.process_name} exited with code {returncode}: {path}")
        else:
            logger.info(f"Track finished: {path}")
        self._notify_track_complete()
