"""
Jukebox Player.

Core playback controller that ties the queue, state persistence and the
active audio backend together.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Optional, TypeVar

from jukebox.backends import (
    AudioBackend,
    BackendNotFoundError,
    BackendRegistry,
    BackendSelector,
    BackendState,
    BackendStatus,
    ProgressSample,
)
from .persistence import SettingsStore, StatePersistence
from .progress import POLL_INTERVAL_SECONDS, ProgressPoller
from .queue import JukeboxQueue, Track
from .stats import PlayCountReporter

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Seconds a completed track id is remembered for duplicate suppression
COMPLETION_COOLDOWN_SECONDS = 1.0

# Upper bound for any single backend call
COMMAND_TIMEOUT_SECONDS = 20.0


class PlayerState(str, Enum):
    """Player state machine states."""

    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPING = "stopping"


@dataclass
class PlaybackSnapshot:
    """Point-in-time playback status, computed from the backend on request."""

    is_playing: bool
    current_track: Optional[Track]
    queue: list[Track]
    progress: float
    volume: float
    is_muted: bool
    state: PlayerState = PlayerState.IDLE
    backend_type: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "isPlaying": self.is_playing,
            "currentTrack": self.current_track.to_dict() if self.current_track else None,
            "queue": [t.to_dict() for t in self.queue],
            "progress": self.progress,
            "volume": self.volume,
            "isMuted": self.is_muted,
            "state": self.state.value,
            "backendType": self.backend_type,
        }


@dataclass
class CompletionEvent:
    """A "track finished" signal, stamped with the track current at publish time."""

    track_id: Optional[str]
    received_at: float = field(default_factory=time.monotonic)


class JukeboxPlayer:
    """
    Main playback controller.

    Coordinates:
    - JukeboxQueue: pending tracks
    - StatePersistence: queue/current track on disk
    - BackendSelector: the single active AudioBackend
    - ProgressPoller: per-track progress and end detection
    - PlayCountReporter: plays counted on natural completion

    All public operations run one at a time under a single lock. Every
    completion signal goes through one event queue drained by one task,
    guarded by a per-track latch, so each track is counted and advanced at
    most once while the next track's own completion is always handled.

    State machine:
        IDLE -> PLAYING (advance with a non-empty queue)
        PLAYING -> PAUSED (on pause)
        PAUSED -> PLAYING (on play/resume)
        PLAYING -> PLAYING (on completion or skip with tracks queued)
        any -> STOPPING -> IDLE (on stop)
        any -> IDLE (advance with an empty queue)

    A track that fails to start stays current while the player is IDLE;
    play() retries it.
    """

    def __init__(
        self,
        selector: BackendSelector,
        persistence: StatePersistence,
        reporter: Optional[PlayCountReporter] = None,
        settings: Optional[SettingsStore] = None,
        queue: Optional[JukeboxQueue] = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        completion_cooldown: float = COMPLETION_COOLDOWN_SECONDS,
        command_timeout: float = COMMAND_TIMEOUT_SECONDS,
    ):
        """Initialize player."""
        self._selector = selector
        self._persistence = persistence
        self._reporter = reporter or PlayCountReporter()
        self._settings = settings
        self._queue = queue if queue is not None else JukeboxQueue()
        self._poll_interval = poll_interval
        self._completion_cooldown = completion_cooldown
        self._command_timeout = command_timeout

        # Current track
        self._current_track: Optional[Track] = None
        self._progress: float = 0.0
        self._started_at: float = 0.0  # monotonic time playback was confirmed

        # Last volume and mute values read from the backend
        self._volume: float = 1.0
        self._muted: bool = False

        # State
        self._state: PlayerState = PlayerState.IDLE
        self._lock = asyncio.Lock()

        # Completion handling
        self._completion_events: asyncio.Queue[CompletionEvent] = asyncio.Queue()
        self._completed_track_id: Optional[str] = None
        self._latch_release: Optional[asyncio.TimerHandle] = None

        # Background tasks
        self._poller: Optional[ProgressPoller] = None
        self._completion_task: Optional[asyncio.Task] = None
        self._monitor_task: Optional[asyncio.Task] = None
        self._is_running: bool = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(
        self,
        backend_type: str,
        restore: bool = True,
        queue_monitor_interval: float = 0.0,
    ) -> None:
        """
        Start the player.

        Args:
            backend_type: Backend to activate when no runtime choice is stored
            restore: Reload the persisted queue (never resumes playback)
            queue_monitor_interval: Seconds between idle-queue checks (0 disables)

        Raises:
            BackendNotFoundError: If the backend type is unknown
        """
        if self._is_running:
            return

        backend_type = self._preferred_backend_type(backend_type)
        backend = await self._selector.select(backend_type)
        self._wire_backend(backend)

        if restore:
            self.restore()

        self._completion_task = asyncio.create_task(self._completion_loop())
        if queue_monitor_interval > 0:
            self._monitor_task = asyncio.create_task(
                self._queue_monitor_loop(queue_monitor_interval)
            )

        self._is_running = True
        logger.info(f"Player started with {backend.get_info()}")

    async def stop(self) -> None:
        """Stop the player and shut down the backend."""
        self._is_running = False

        for task in [self._monitor_task, self._completion_task]:
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._monitor_task = None
        self._completion_task = None

        if self._latch_release:
            self._latch_release.cancel()
            self._latch_release = None

        async with self._lock:
            await self._stop_poller()
            self._persist()
            await self._selector.shutdown()

        await self._reporter.close()
        logger.info("Player stopped")

    def restore(self) -> bool:
        """
        Reload queue and current track from persisted state.

        Playback is never resumed automatically.

        Returns:
            True if state was restored
        """
        state = self._persistence.load()
        if state is None:
            return False
        self._queue.replace(state.queue)
        self._current_track = state.current_track
        self._state = PlayerState.IDLE
        self._progress = 0.0
        return True

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def backend(self) -> AudioBackend:
        backend = self._selector.active
        if backend is None:
            raise RuntimeError("No active audio backend")
        return backend

    @property
    def backend_type(self) -> Optional[str]:
        return self._selector.active_type

    # =========================================================================
    # Playback Control
    # =========================================================================

    async def play(self) -> bool:
        """
        Start or resume playback.

        Resumes when paused, retries a stalled current track, otherwise
        advances to the next queued track.
        """
        async with self._lock:
            return await self._play()

    async def resume(self) -> bool:
        """Resume paused playback; falls through to play() when not paused."""
        async with self._lock:
            return await self._play()

    async def pause(self) -> bool:
        """Pause playback."""
        async with self._lock:
            if self._state != PlayerState.PLAYING:
                logger.debug(f"Pause ignored in state {self._state.value}")
                return False
            ok = await self._call_backend(self.backend.pause(), False, "pause")
            if ok:
                self._state = PlayerState.PAUSED
                await self._stop_poller()
                logger.info("Paused")
            return ok

    async def stop_playback(self) -> bool:
        """
        Stop playback and clear the current track.

        The queue is kept. The completion callback is detached while the
        backend stops so the stop cannot be taken for a natural track end.
        """
        async with self._lock:
            return await self._stop_playback()

    async def skip(self) -> bool:
        """
        Skip to the next queued track.

        Returns:
            True if a new track started
        """
        async with self._lock:
            logger.info("Skip requested")
            return await self._advance()

    async def seek_to(self, position: float) -> bool:
        """
        Seek within the current track.

        Args:
            position: Normalized position in [0, 1]
        """
        async with self._lock:
            if self._current_track is None:
                logger.debug("Seek ignored, no current track")
                return False

            position = max(0.0, min(1.0, position))
            backend = self.backend
            ok = await self._call_backend(backend.seek(position), False, "seek")
            if not ok:
                return False

            if backend.reports_duration():
                await self._resync_with_backend()
            else:
                self._progress = position
            return True

    async def set_volume(self, level: float) -> float:
        """
        Set volume.

        Returns:
            Applied volume (0.0-1.0)
        """
        async with self._lock:
            clamped = max(0.0, min(1.0, level))
            applied = await self._call_backend(
                self.backend.set_volume(clamped), clamped, "set_volume"
            )
            self._volume = applied
            self._muted = applied == 0.0
            logger.info(f"Volume set to {applied:.2f}")
            return applied

    async def toggle_mute(self) -> bool:
        """
        Toggle mute.

        Returns:
            New muted state
        """
        async with self._lock:
            backend = self.backend
            current = await self._call_backend(backend.is_muted(), self._muted, "is_muted")
            self._muted = await self._call_backend(backend.toggle_mute(), current, "toggle_mute")
            return self._muted

    async def switch_backend(self, backend_type: str) -> bool:
        """
        Switch the active backend type.

        The old backend is torn down before the new one is created. The
        current track is cleared and the queue is kept. The choice is
        stored so it survives a restart.

        Returns:
            True if a switch happened, False if the type was already active

        Raises:
            BackendNotFoundError: If the type is unknown
        """
        if BackendRegistry.get(backend_type) is None:
            raise BackendNotFoundError(f"Backend type '{backend_type}' not available")

        async with self._lock:
            if backend_type == self._selector.active_type:
                return False

            self._state = PlayerState.STOPPING
            await self._stop_poller()
            backend = await self._selector.select(backend_type)
            self._wire_backend(backend)

            self._current_track = None
            self._progress = 0.0
            self._persist()
            if self._settings:
                self._settings.set_backend_type(backend_type)
            self._state = PlayerState.IDLE
            logger.info(f"Switched backend to {backend_type}")
            return True

    # =========================================================================
    # Queue Operations
    # =========================================================================

    async def enqueue(
        self,
        path: str,
        title: Optional[str] = None,
        artist: Optional[str] = None,
        album: Optional[str] = None,
        duration_label: Optional[str] = None,
    ) -> Track:
        """
        Add a track to the end of the queue.

        Starts playback immediately when nothing is current.

        Returns:
            The queued track with its generated id
        """
        async with self._lock:
            track = Track.create(
                path,
                title=title,
                artist=artist,
                album=album,
                duration_label=duration_label,
            )
            self._queue.enqueue(track)
            self._persist()

            if self._current_track is None:
                await self._advance()
            return track

    async def remove_at(self, index: int) -> bool:
        """Remove the queued track at an index. Out of range is a no-op."""
        async with self._lock:
            removed = self._queue.remove_at(index)
            if removed is not None:
                self._persist()
            return removed is not None

    async def reorder(self, from_index: int, to_index: int) -> bool:
        """Move one queued track. Out of range indices are a no-op."""
        async with self._lock:
            changed = self._queue.reorder(from_index, to_index)
            if changed:
                self._persist()
            return changed

    async def clear_queue(self) -> None:
        """Empty the queue without touching current playback."""
        async with self._lock:
            self._queue.clear()
            self._persist()

    def get_queue(self) -> list[Track]:
        return self._queue.get_tracks()

    def get_current_track(self) -> Optional[Track]:
        return self._current_track

    @property
    def state(self) -> PlayerState:
        return self._state

    # =========================================================================
    # Status
    # =========================================================================

    async def get_snapshot(self) -> PlaybackSnapshot:
        """Compute current status from the backend."""
        async with self._lock:
            backend = self.backend
            status = await self._call_backend(backend.get_status(), BackendStatus(), "get_status")

            if self._current_track is not None and self._state != PlayerState.STOPPING:
                sample = await self._call_backend(backend.get_progress(), None, "get_progress")
                if sample is not None and sample.duration_seconds > 0:
                    self._progress = sample.ratio

            self._volume = await self._call_backend(
                backend.get_volume(), self._volume, "get_volume"
            )
            self._muted = await self._call_backend(backend.is_muted(), self._muted, "is_muted")

            return PlaybackSnapshot(
                is_playing=status.is_playing and self._current_track is not None,
                current_track=self._current_track,
                queue=self._queue.get_tracks(),
                progress=self._progress if self._current_track else 0.0,
                volume=self._volume,
                is_muted=self._muted,
                state=self._state,
                backend_type=self._selector.active_type,
            )

    async def get_debug_info(self) -> dict[str, Any]:
        """Get internal state for troubleshooting."""
        async with self._lock:
            status = await self._call_backend(
                self.backend.get_status(), BackendStatus(), "get_status"
            )
            return {
                "queueLength": len(self._queue),
                "currentTrack": self._current_track.to_dict() if self._current_track else None,
                "audioStatus": status.to_dict(),
                "hasStateFile": self._persistence.exists(),
                "stateFileSize": self._persistence.size(),
                "backendType": self._selector.active_type,
                "state": self._state.value,
            }

    # =========================================================================
    # Health Checks
    # =========================================================================

    async def check_queue_and_start_playback(self) -> bool:
        """
        Start playback if nothing is current and tracks are waiting.

        Returns:
            True if playback was started
        """
        async with self._lock:
            if (
                self._current_track is None
                and self._state == PlayerState.IDLE
                and not self._queue.is_empty
            ):
                logger.info("Queue check found waiting tracks, starting playback")
                return await self._advance()
            return False

    async def check_and_restart(self) -> bool:
        """
        Restart the current track if the backend died underneath it.

        Returns:
            True if the track was restarted
        """
        async with self._lock:
            if self._current_track is None or self._state != PlayerState.PLAYING:
                return False
            status = await self._call_backend(
                self.backend.get_status(), BackendStatus(), "get_status"
            )
            if status.is_playing or status.has_backend_process:
                return False
            logger.warning(f"Backend lost playback of {self._current_track.title}, restarting")
            await self._stop_poller()
            return await self._start_current()

    async def wait_for_completions(self) -> None:
        """Wait until every published completion event has been handled."""
        await self._completion_events.join()

    # =========================================================================
    # Transitions (lock held)
    # =========================================================================

    async def _play(self) -> bool:
        if self._state == PlayerState.PAUSED:
            ok = await self._call_backend(self.backend.resume(), False, "resume")
            if ok:
                self._state = PlayerState.PLAYING
                self._start_poller()
                logger.info("Resumed")
            return ok

        if self._state == PlayerState.PLAYING:
            return True

        if self._current_track is not None:
            return await self._start_current()

        if self._queue.is_empty:
            logger.info("Nothing to play, queue is empty")
            return False
        return await self._advance()

    async def _advance(self) -> bool:
        """
        Move to the next queued track.

        Returns:
            True if a new track started playing
        """
        await self._stop_poller()
        self._progress = 0.0
        backend = self.backend

        track = self._queue.dequeue_next()
        if track is None:
            self._current_track = None
            await self._call_backend(backend.stop(), False, "stop")
            self._persist()
            self._state = PlayerState.IDLE
            logger.info("Queue empty, playback idle")
            return False

        # Persist before starting so a crash mid-start still shows the intended track
        self._current_track = track
        self._persist()
        return await self._start_current()

    async def _start_current(self) -> bool:
        track = self._current_track
        if track is None:
            return False

        logger.info(f"Starting: {track.title} - {track.artist} ({track.path})")
        ok = await self._call_backend(self.backend.play_file(track.path), False, "play_file")
        if not ok:
            self._state = PlayerState.IDLE
            logger.error(f"Failed to start {track.path}, keeping it as current track")
            return False

        self._started_at = time.monotonic()
        self._state = PlayerState.PLAYING
        self._progress = 0.0
        self._start_poller()
        return True

    async def _stop_playback(self) -> bool:
        self._state = PlayerState.STOPPING
        await self._stop_poller()

        backend = self.backend
        backend.clear_track_complete_callback()
        try:
            ok = await self._call_backend(backend.stop(), False, "stop")
        finally:
            backend.set_track_complete_callback(self._on_track_complete)

        self._current_track = None
        self._progress = 0.0
        self._persist()
        self._state = PlayerState.IDLE
        logger.info("Playback stopped")
        return ok

    async def _resync_with_backend(self) -> None:
        """Re-read backend state after an operation that may have changed it."""
        sample: Optional[ProgressSample] = await self._call_backend(
            self.backend.get_progress(), None, "get_progress"
        )
        if sample is None:
            return
        self._progress = sample.ratio
        if sample.state == BackendState.PLAYING and self._state != PlayerState.PLAYING:
            self._state = PlayerState.PLAYING
            self._start_poller()
        elif sample.state == BackendState.PAUSED and self._state == PlayerState.PLAYING:
            self._state = PlayerState.PAUSED
            await self._stop_poller()

    # =========================================================================
    # Completion Handling
    # =========================================================================

    def _on_track_complete(self) -> None:
        """Backend callback: publish a completion event."""
        track_id = self._current_track.id if self._current_track else None
        self._completion_events.put_nowait(CompletionEvent(track_id=track_id))

    async def _completion_loop(self) -> None:
        """Single consumer for completion events."""
        while True:
            event = await self._completion_events.get()
            try:
                await self._handle_completion(event)
            except Exception as e:
                logger.error(f"Error handling track completion: {e}", exc_info=True)
            finally:
                self._completion_events.task_done()

    async def _handle_completion(self, event: CompletionEvent) -> None:
        if event.track_id is not None and event.track_id == self._completed_track_id:
            logger.debug(f"Ignoring duplicate completion signal for {event.track_id}")
            return

        async with self._lock:
            current = self._current_track
            if (
                current is None
                or current.id != event.track_id
                or event.received_at < self._started_at
            ):
                logger.debug(f"Ignoring stale completion signal for {event.track_id}")
                return
            if self._state not in (PlayerState.PLAYING, PlayerState.PAUSED):
                logger.debug(f"Ignoring completion signal in state {self._state.value}")
                return

            self._completed_track_id = current.id
            logger.info(f"Track completed: {current.title}")
            self._record_play(current)
            await self._stop_poller()
            await self._advance()

        self._schedule_latch_release()

    def _schedule_latch_release(self) -> None:
        if self._latch_release:
            self._latch_release.cancel()
        loop = asyncio.get_running_loop()
        self._latch_release = loop.call_later(self._completion_cooldown, self._release_latch)

    def _release_latch(self) -> None:
        self._completed_track_id = None
        self._latch_release = None

    def _record_play(self, track: Track) -> None:
        try:
            self._reporter.record_play(track.path)
        except Exception as e:
            logger.warning(f"Failed to record play for {track.path}: {e}")

    # =========================================================================
    # Internal Methods
    # =========================================================================

    def _preferred_backend_type(self, configured: str) -> str:
        """Stored runtime choice if it names a known backend, else the configured type."""
        if self._settings is None:
            return configured
        stored = self._settings.get_backend_type()
        if stored is None or stored == configured:
            return configured
        if BackendRegistry.get(stored) is None:
            logger.warning(f"Ignoring stored audio player '{stored}', not available")
            return configured
        logger.info(f"Using stored audio player '{stored}' instead of '{configured}'")
        return stored

    def _wire_backend(self, backend: AudioBackend) -> None:
        backend.set_track_complete_callback(self._on_track_complete)

    def _persist(self) -> None:
        self._persistence.save(self._queue.get_tracks(), self._current_track)

    def _start_poller(self) -> None:
        self._poller = ProgressPoller(
            self.backend,
            on_progress=self._on_progress,
            interval=self._poll_interval,
        )
        self._poller.start()

    async def _stop_poller(self) -> None:
        poller = self._poller
        self._poller = None
        if poller:
            await poller.stop()

    def _on_progress(self, ratio: float) -> None:
        self._progress = ratio

    async def _call_backend(self, call: Awaitable[T], default: T, label: str) -> T:
        """Await a backend call under the command timeout, mapping failures to a default."""
        try:
            return await asyncio.wait_for(call, self._command_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Backend {label} timed out after {self._command_timeout}s")
            return default
        except Exception as e:
            logger.error(f"Backend {label} failed: {e}", exc_info=True)
            return default

    async def _queue_monitor_loop(self, interval: float) -> None:
        """Periodically start playback when tracks are waiting and nothing plays."""
        while True:
            await asyncio.sleep(interval)
            try:
                await self.check_queue_and_start_playback()
            except Exception as e:
                logger.error(f"Queue monitor error: {e}", exc_info=True)
