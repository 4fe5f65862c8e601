"""
VLC audio backend.

Drives a long-lived VLC daemon through its HTTP interface. Completion is
detected by polling the daemon's reported state and position.
"""

import asyncio
import logging
import os
import time
from typing import Awaitable, Callable, Optional

from ..base import AudioBackend, estimate_duration_from_size, is_at_end_of_track
from ..processes import kill_processes, terminate_process
from ..types import BackendInfo, BackendState, BackendStatus, ProgressSample
from .client import VLC_VOLUME_MAX, VLCClient, VLCClientError, VLCStatus

logger = logging.getLogger(__name__)

# Ignore a "stopped" report this long after starting playback while VLC loads the file
PLAYBACK_START_GRACE_PERIOD_SECONDS = 2.0

# How long to wait for VLC to report "playing" after in_play
PLAY_CONFIRM_TIMEOUT_SECONDS = 5.0
STATE_POLL_INTERVAL_SECONDS = 0.1

DAEMON_STARTUP_TIMEOUT_SECONDS = 10.0


class VLCBackend(AudioBackend):
    """
    Audio backend for a VLC daemon with the HTTP interface enabled.

    Features:
    - Launches and supervises the daemon (optional)
    - Retry-then-restart when the daemon stops answering
    - Seeking and volume through VLC itself
    - Real track durations from the daemon
    """

    backend_type = "vlc"
    process_name = "vlc"

    def __init__(
        self,
        binary: str = "vlc",
        host: str = "127.0.0.1",
        port: int = 8080,
        password: str = "jukebox",
        launch: bool = True,
        startup_timeout: float = DAEMON_STARTUP_TIMEOUT_SECONDS,
        client: Optional[VLCClient] = None,
        name: Optional[str] = None,
    ):
        """
        Initialize VLC backend.

        Args:
            binary: VLC executable
            host: HTTP interface host
            port: HTTP interface port
            password: HTTP interface password
            launch: Start and supervise the daemon ourselves
            startup_timeout: Seconds to wait for a launched daemon to answer
            client: Pre-built client (tests)
            name: Display name
        """
        super().__init__(name=name or f"VLC ({host}:{port})")
        self._binary = binary
        self._host = host
        self._port = port
        self._password = password
        self._launch = launch
        self._startup_timeout = startup_timeout
        self._client = client or VLCClient(host=host, port=port, password=password)

        self._daemon: Optional[asyncio.subprocess.Process] = None
        self._duration: float = 0.0
        self._playback_started_at: float = 0.0

    # =========================================================================
    # Playback Control
    # =========================================================================

    async def play_file(self, path: str) -> bool:
        """Load a file into VLC and wait until it reports playing."""
        if "://" not in path and not os.path.isfile(path):
            logger.warning(f"File not found: {path}")
            return False

        if not await self._ensure_daemon():
            return False

        await self._clear_playlist()
        self._current_file = None

        if await self._command(lambda: self._client.play(path)) is None:
            return False

        status = await self._wait_for_state(BackendState.PLAYING, PLAY_CONFIRM_TIMEOUT_SECONDS)
        if status is None:
            logger.error(f"VLC did not start playing: {path}")
            return False

        self._current_file = path
        self._playback_started_at = time.monotonic()
        self._duration = float(status.length) if status.length > 0 else await self.estimate_duration(path)
        logger.info(f"Playing via VLC: {path}")
        return True

    async def stop(self) -> bool:
        """Stop playback, empty the playlist and sweep stray VLC processes."""
        self._current_file = None
        self._duration = 0.0
        if self._is_daemon_alive() or not self._launch:
            await self._clear_playlist()
        if self._launch:
            await kill_processes(self.process_name, exclude=self._daemon_pids())
        return True

    async def pause(self) -> bool:
        return await self._command(self._client.pause) is not None

    async def resume(self) -> bool:
        return await self._command(self._client.resume) is not None

    async def seek(self, position: float) -> bool:
        """Seek to a normalized position using the last known duration."""
        if not self._current_file:
            return False
        if self._duration <= 0:
            logger.warning("Cannot seek: track duration unknown")
            return False
        position = max(0.0, min(1.0, position))
        seconds = int(position * self._duration)
        logger.debug(f"Seeking to {seconds}s of {self._duration:.0f}s")
        return await self._command(lambda: self._client.seek(seconds)) is not None

    async def _apply_volume(self, level: float) -> Optional[float]:
        vlc_volume = int(round(level * VLC_VOLUME_MAX))
        if await self._command(lambda: self._client.set_volume(vlc_volume)) is None:
            return None
        return vlc_volume / VLC_VOLUME_MAX

    # =========================================================================
    # State
    # =========================================================================

    async def get_status(self) -> BackendStatus:
        try:
            status = await self._client.get_status(max_retries=1)
        except VLCClientError:
            return BackendStatus(has_backend_process=self._is_daemon_alive())

        return BackendStatus(
            is_playing=status.state == BackendState.PLAYING.value,
            current_file=self._current_file if status.state != BackendState.STOPPED.value else None,
            has_backend_process=True,
        )

    async def get_progress(self) -> ProgressSample:
        """
        Read position from VLC.

        Marks the sample finished when VLC reports stopped (outside the start
        grace period) or the position has reached the end of the track.
        """
        try:
            status = await self._client.get_status(max_retries=1)
        except VLCClientError as e:
            logger.debug(f"VLC status unavailable: {e}")
            return ProgressSample(duration_seconds=self._duration)

        if status.length > 0:
            self._duration = float(status.length)

        try:
            state = BackendState(status.state)
        except ValueError:
            state = BackendState.STOPPED

        finished = False
        if self._current_file:
            in_grace_period = (
                time.monotonic() - self._playback_started_at < PLAYBACK_START_GRACE_PERIOD_SECONDS
            )
            if state == BackendState.STOPPED and not in_grace_period:
                finished = True
            elif state == BackendState.PLAYING and is_at_end_of_track(
                status.time, self._duration
            ):
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
        if self._is_daemon_alive() or not self._launch:
            try:
                await self._client.stop()
            except VLCClientError as e:
                logger.debug(f"VLC stop during force stop failed: {e}")

    async def kill_all_processes(self) -> None:
        await self._stop_daemon()
        if self._launch:
            await kill_processes(self.process_name, force=True)

    async def shutdown(self) -> None:
        await super().shutdown()
        await self._client.disconnect()

    def get_info(self) -> BackendInfo:
        return BackendInfo(
            backend_type=self.backend_type,
            name=self.name,
            process_name=self.process_name,
            host=self._host,
            port=self._port,
        )

    # =========================================================================
    # Daemon Supervision
    # =========================================================================

    def _is_daemon_alive(self) -> bool:
        return self._daemon is not None and self._daemon.returncode is None

    def _daemon_pids(self) -> list[int]:
        return [self._daemon.pid] if self._is_daemon_alive() else []  # type: ignore[union-attr]

    async def _ensure_daemon(self) -> bool:
        """Make sure a VLC daemon is answering, launching one if allowed."""
        try:
            await self._client.get_status(max_retries=1)
            return True
        except VLCClientError:
            pass

        if not self._launch:
            logger.error(f"VLC is not answering on {self._host}:{self._port}")
            return False
        return await self._start_daemon()

    async def _start_daemon(self) -> bool:
        """Launch (or relaunch) the VLC daemon and wait until it answers."""
        await self._stop_daemon()

        args = [
            self._binary,
            "--intf",
            "http",
            "--http-host",
            self._host,
            "--http-port",
            str(self._port),
            "--http-password",
            self._password,
            "--no-video",
            "--quiet",
        ]
        logger.info(f"Starting VLC daemon on {self._host}:{self._port}")
        try:
            self._daemon = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error(f"Failed to launch VLC ({self._binary}): {e}")
            return False

        deadline = time.monotonic() + self._startup_timeout
        while time.monotonic() < deadline:
            if not self._is_daemon_alive():
                logger.error(f"VLC daemon exited during startup (code {self._daemon.returncode})")
                self._daemon = None
                return False
            try:
                await self._client.get_status(max_retries=1)
                logger.info(f"VLC daemon ready (pid {self._daemon.pid})")
                return True
            except VLCClientError:
                await asyncio.sleep(STATE_POLL_INTERVAL_SECONDS * 5)

        logger.error(f"VLC daemon did not answer within {self._startup_timeout}s")
        await self._stop_daemon()
        return False

    async def _stop_daemon(self) -> None:
        daemon = self._daemon
        self._daemon = None
        if daemon is not None:
            await terminate_process(daemon)
            logger.info("VLC daemon stopped")

    async def _command(self, call: Callable[[], Awaitable[VLCStatus]]) -> Optional[VLCStatus]:
        """
        Run a client call, restarting the daemon once if it stopped answering.

        Returns:
            Status after the call, or None if VLC stayed unavailable
        """
        try:
            return await call()
        except VLCClientError as e:
            logger.warning(f"VLC command failed: {e}")

        if not self._launch:
            return None

        logger.warning("Restarting unresponsive VLC daemon")
        if not await self._start_daemon():
            return None
        try:
            return await call()
        except VLCClientError as e:
            logger.error(f"VLC command failed after restart: {e}")
            return None

    async def _clear_playlist(self) -> None:
        try:
            await self._client.stop()
            await self._client.empty_playlist()
        except VLCClientError as e:
            logger.debug(f"Could not clear VLC playlist: {e}")

    async def _wait_for_state(
        self, state: BackendState, timeout: float = PLAY_CONFIRM_TIMEOUT_SECONDS
    ) -> Optional[VLCStatus]:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            try:
                status = await self._client.get_status(max_retries=1)
                if status.state == state.value:
                    return status
            except VLCClientError:
                pass
            await asyncio.sleep(STATE_POLL_INTERVAL_SECONDS)
        return None
