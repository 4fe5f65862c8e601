"""
Playback progress polling.

One poller runs per playing track. It feeds the progress value used by
status snapshots and, for backends that report position, detects the end
of the track.
"""

import asyncio
import logging
from typing import Callable, Optional

from jukebox.backends import AudioBackend

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 1.0
POLL_TIMEOUT_SECONDS = 5.0

ProgressCallback = Callable[[float], None]  # ratio 0.0-1.0


class ProgressPoller:
    """
    Periodic progress reader for the active backend.

    When a sample reports the track finished, the poller signals completion
    through the backend's own completion callback and exits, so every
    completion source reaches the player through the same path.
    """

    def __init__(
        self,
        backend: AudioBackend,
        on_progress: ProgressCallback,
        interval: float = POLL_INTERVAL_SECONDS,
        timeout: float = POLL_TIMEOUT_SECONDS,
    ):
        self._backend = backend
        self._on_progress = on_progress
        self._interval = interval
        self._timeout = timeout
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start polling."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        """Stop polling and wait for the task to finish."""
        task = self._task
        self._task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)

            try:
                sample = await asyncio.wait_for(self._backend.get_progress(), self._timeout)
            except asyncio.TimeoutError:
                logger.debug("Progress poll timed out")
                continue
            except Exception as e:
                logger.error(f"Progress poll error: {e}", exc_info=True)
                continue

            self._on_progress(sample.ratio)

            if sample.finished:
                logger.info(
                    f"Backend reports track finished at "
                    f"{sample.position_seconds:.0f}/{sample.duration_seconds:.0f}s"
                )
                self._backend.report_track_complete()
                return
