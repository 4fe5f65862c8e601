"""
MPD audio backend.

Controls a Music Player Daemon through ``mpc``. Completion is detected by
polling the daemon's reported state string and position.
"""

import asyncio
import logging
import os
import time
from typing import Awaitable, Callable, Optional, TypeVar

from ..base import AudioBackend, estimate_duration_from_size, is_at_end_of_track
from ..processes import kill_processes, terminate_process
from ..types import BackendInfo, BackendState, BackendStatus, ProgressSample
from .client import MPDClient, MPDClientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

PLAYBACK_START_GRACE_PERIOD_SECONDS = 2.0
PLAY_CONFIRM_TIMEOUT_SECONDS = 5.0
STATE_POLL_INTERVAL_SECONDS = 0.2
DAEMON_STARTUP_TIMEOUT_SECONDS = 10.0


class MPDBackend(AudioBackend):
    """
    Audio backend for an MPD daemon.

    Features:
    - Resolves file paths to MPD database URIs
    - Optional daemon relaunch when MPD stops answering
    - Seeking and volume through MPD
    - Real track durations from MPD
    """

    backend_type = "mpd"
    process_name = "mpc"

    def __init__(
        self,
        mpc_binary: str = "mpc",
        host: str = "localhost",
        port: int = 6600,
        music_directory: str = "",
        daemon_command: Optional[list[str]] = None,
        client: Optional[MPDClient] = None,
        name: Optional[str] = None,
    ):
        """
        Initialize MPD backend.

        Args:
            mpc_binary: mpc executable
            host: MPD host
            port: MPD port
            music_directory: MPD music_directory, used to map paths to URIs
            daemon_command: Command that starts MPD when it is not answering
            client: Pre-built client (tests)
            name: Display name
        """
        super().__init__(name=name or f"MPD ({host}:{port})")
        self._host = host
        self._port = port
        self._music_directory = os.path.abspath(music_directory) if music_directory else ""
        self._daemon_command = list(daemon_command) if daemon_command else []
        self._client = client or MPDClient(mpc_binary=mpc_binary, host=host, port=port)

        self._daemon: Optional[asyncio.subprocess.Process] = None
        self._duration: float = 0.0
        self._playback_started_at: float = 0.0

    # =========================================================================
    # Playback Control
    # =========================================================================

    async def play_file(self, path: str) -> bool:
        """Queue a single file in MPD and wait until it reports playing."""
        if "://" not in path and not os.path.isfile(path):
            logger.warning(f"File not found: {path}")
            return False

        self._current_file = None
        uri = await self._resolve_uri(path)
        if uri is None:
            logger.warning(f"File not in MPD database: {path}")
            return False

        async def start() -> bool:
            await self._client.clear()
            await self._client.add(uri)
            await self._client.play()
            return True

        if not await self._call(start):
            return False

        deadline = time.monotonic() + PLAY_CONFIRM_TIMEOUT_SECONDS
        while time.monotonic() < deadline:
            try:
                status = await self._client.get_status(max_retries=1)
            except MPDClientError:
                status = None
            if status is not None and status.state == BackendState.PLAYING.value:
                self._current_file = path
                self._playback_started_at = time.monotonic()
                self._duration = (
                    float(status.length) if status.length > 0 else await self.estimate_duration(path)
                )
                logger.info(f"Playing via MPD: {uri}")
                return True
            await asyncio.sleep(STATE_POLL_INTERVAL_SECONDS)

        logger.error(f"MPD did not start playing: {uri}")
        return False

    async def stop(self) -> bool:
        """Stop MPD, clear its queue and sweep stray mpc processes."""
        self._current_file = None
        self._duration = 0.0
        try:
            await self._client.stop()
            await self._client.clear()
        except MPDClientError as e:
            logger.debug(f"MPD stop failed: {e}")
        await kill_processes(self.process_name)
        return True

    async def pause(self) -> bool:
        return await self._call(self._client.pause) is not None

    async def resume(self) -> bool:
        return await self._call(self._client.play) is not None

    async def seek(self, position: float) -> bool:
        """Seek to a normalized position using the last known duration."""
        if not self._current_file:
            return False
        if self._duration <= 0:
            logger.warning("Cannot seek: track duration unknown")
            return False
        seconds = int(max(0.0, min(1.0, position)) * self._duration)
        return await self._call(lambda: self._client.seek(seconds)) is not None

    async def _apply_volume(self, level: float) -> Optional[float]:
        percent = int(round(level * 100))
        if await self._call(lambda: self._client.set_volume(percent)) is None:
            return None
        return percent / 100.0

    # =========================================================================
    # State
    # =========================================================================

    async def get_status(self) -> BackendStatus:
        try:
            status = await self._client.get_status(max_retries=1)
        except MPDClientError:
            return BackendStatus(has_backend_process=False)

        return BackendStatus(
            is_playing=status.state == BackendState.PLAYING.value,
            current_file=self._current_file if status.state != BackendState.STOPPED.value else None,
            has_backend_process=True,
        )

    async def get_progress(self) -> ProgressSample:
        """
        Read position from MPD.

        Marks the sample finished when MPD reports stopped (outside the start
        grace period) or the position has reached the end of the track.
        """
        try:
            status = await self._client.get_status(max_retries=1)
        except MPDClientError as e:
            logger.debug(f"MPD status unavailable: {e}")
            return ProgressSample(duration_seconds=self._duration)

        if status.length > 0:
            self._duration = float(status.length)
        state = BackendState(status.state)

        finished = False
        if self._current_file:
            in_grace_period = (
                time.monotonic() - self._playback_started_at < PLAYBACK_START_GRACE_PERIOD_SECONDS
            )
            if state == BackendState.STOPPED and not in_grace_period:
                finished = True
            elif state == BackendState.PLAYING and is_at_end_of_track(status.time, self._duration):
                finished = True

        return ProgressSample(
            position_seconds=float(status.time),
            duration_seconds=self._duration,
            state=state,
            finished=finished,
        )

    def reports_duration(self) -> bool:
        return True

    async def estimate_duration(self, path: str) -> float:
        if path == self._current_file and self._duration > 0:
            return self._duration
        return estimate_duration_from_size(path)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def force_stop(self) -> None:
        self._current_file = None
        self._duration = 0.0
        try:
            await self._client.stop()
        except MPDClientError as e:
            logger.debug(f"MPD stop during force stop failed: {e}")

    async def kill_all_processes(self) -> None:
        daemon = self._daemon
        self._daemon = None
        if daemon is not None:
            await terminate_process(daemon)
        await kill_processes(self.process_name, force=True)

    def get_info(self) -> BackendInfo:
        return BackendInfo(
            backend_type=self.backend_type,
            name=self.name,
            process_name=self.process_name,
            host=self._host,
            port=self._port,
        )

    # =========================================================================
    # Internal Methods
    # =========================================================================

    async def _resolve_uri(self, path: str) -> Optional[str]:
        """Map a filesystem path to an MPD database URI."""
        if "://" in path:
            return path

        abs_path = os.path.abspath(path)
        if self._music_directory and abs_path.startswith(self._music_directory + os.sep):
            return os.path.relpath(abs_path, self._music_directory)

        name = os.path.basename(abs_path)
        try:
            matches = await self._client.search_filename(name)
        except MPDClientError as e:
            logger.warning(f"MPD search failed: {e}")
            return None
        for uri in matches:
            if abs_path.endswith(uri) or uri.endswith(name):
                return uri
        return None

    async def _call(self, call: Callable[[], Awaitable[T]]) -> Optional[T]:
        """
        Run a client call, relaunching MPD once if it stopped answering.

        Returns None if MPD stayed unavailable. Calls returning None on
        success are reported as True.
        """
        try:
            result = await call()
            return True if result is None else result  # type: ignore[return-value]
        except MPDClientError as e:
            logger.warning(f"MPD command failed: {e}")

        if not self._daemon_command or not await self._start_daemon():
            return None
        try:
            result = await call()
            return True if result is None else result  # type: ignore[return-value]
        except MPDClientError as e:
            logger.error(f"MPD command failed after restart: {e}")
            return None

    async def _start_daemon(self) -> bool:
        """Launch MPD with the configured command and wait until it answers."""
        if self._daemon is not None:
            await terminate_process(self._daemon)
            self._daemon = None

        logger.info(f"Starting MPD: {' '.join(self._daemon_command)}")
        try:
            self._daemon = await asyncio.create_subprocess_exec(
                *self._daemon_command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error(f"Failed to launch MPD: {e}")
            return False

        deadline = time.monotonic() + DAEMON_STARTUP_TIMEOUT_SECONDS
        while time.monotonic() < deadline:
            try:
                await self._client.get_status(max_retries=1)
                logger.info("MPD ready")
                return True
            except MPDClientError:
                await asyncio.sleep(STATE_POLL_INTERVAL_SECONDS * 2)

        logger.error(f"MPD did not answer within {DAEMON_STARTUP_TIMEOUT_SECONDS}s")
        return False
