"""Shared fixtures: an in-memory audio backend and selector."""

import asyncio
from pathlib import Path
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from jukebox.backends import (
    AudioBackend,
    BackendNotFoundError,
    BackendState,
    BackendStatus,
    ProgressSample,
)
from jukebox.playback import JukeboxPlayer, PlayCountReporter, StatePersistence


class FakeBackend(AudioBackend):
    """Audio backend that plays nothing and records every call."""

    process_name = ""

    def __init__(self, backend_type: str = "process", with_duration: bool = False):
        super().__init__(name=f"Fake {backend_type}")
        self.backend_type = backend_type
        self.with_duration = with_duration
        self.played: list[str] = []
        self.seeks: list[float] = []
        self.stop_calls = 0
        self.fail_paths: set[str] = set()
        self.hang = False
        self.emit_on_stop = False
        self.state = BackendState.STOPPED
        self.alive = False
        self.position = 0.0
        self.duration = 180.0 if with_duration else 0.0
        self.finished = False
        self.killed = False

    async def play_file(self, path: str) -> bool:
        if self.hang:
            await asyncio.sleep(3600)
        self.played.append(path)
        if path in self.fail_paths:
            self._current_file = None
            self.state = BackendState.STOPPED
            return False
        self._current_file = path
        self.state = BackendState.PLAYING
        self.alive = True
        self.position = 0.0
        self.finished = False
        return True

    async def stop(self) -> bool:
        self.stop_calls += 1
        was_playing = self._current_file is not None
        self._current_file = None
        self.state = BackendState.STOPPED
        self.alive = False
        if self.emit_on_stop and was_playing:
            # Some players report their own exit when killed
            self._notify_track_complete()
        return True

    async def pause(self) -> bool:
        if self.state != BackendState.PLAYING:
            return False
        self.state = BackendState.PAUSED
        return True

    async def resume(self) -> bool:
        if self.state != BackendState.PAUSED:
            return False
        self.state = BackendState.PLAYING
        return True

    async def seek(self, position: float) -> bool:
        self.seeks.append(position)
        if self.duration:
            self.position = position * self.duration
        return True

    async def _apply_volume(self, level: float) -> Optional[float]:
        return level

    async def get_status(self) -> BackendStatus:
        return BackendStatus(
            is_playing=self.state == BackendState.PLAYING,
            current_file=self._current_file,
            has_backend_process=self.alive,
        )

    async def get_progress(self) -> ProgressSample:
        return ProgressSample(
            position_seconds=self.position,
            duration_seconds=self.duration,
            state=self.state,
            finished=self.finished,
        )

    def reports_duration(self) -> bool:
        return self.with_duration

    async def force_stop(self) -> None:
        self._current_file = None
        self.state = BackendState.STOPPED
        self.alive = False

    async def kill_all_processes(self) -> None:
        self.killed = True

    def finish(self) -> None:
        """Simulate the track running to its natural end."""
        self._current_file = None
        self.state = BackendState.STOPPED
        self.alive = False
        self._notify_track_complete()


class FakeSelector:
    """Selector over a fixed set of fake backends."""

    def __init__(self, backends: dict[str, FakeBackend]):
        self.backends = backends
        self._active: Optional[FakeBackend] = None
        self._active_type: Optional[str] = None

    @property
    def active(self) -> Optional[FakeBackend]:
        return self._active

    @property
    def active_type(self) -> Optional[str]:
        return self._active_type

    async def select(self, backend_type: str) -> FakeBackend:
        if self._active is not None and backend_type == self._active_type:
            return self._active
        if backend_type not in self.backends:
            raise BackendNotFoundError(f"Backend type '{backend_type}' not available")
        if self._active is not None:
            await self._active.shutdown()
        self._active = self.backends[backend_type]
        self._active_type = backend_type
        return self._active

    async def shutdown(self) -> None:
        if self._active is not None:
            await self._active.shutdown()
        self._active = None
        self._active_type = None


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend("process")


@pytest.fixture
def vlc_backend() -> FakeBackend:
    return FakeBackend("vlc", with_duration=True)


@pytest.fixture
def selector(fake_backend: FakeBackend, vlc_backend: FakeBackend) -> FakeSelector:
    return FakeSelector({"process": fake_backend, "vlc": vlc_backend})


@pytest.fixture
def persistence(tmp_path: Path) -> StatePersistence:
    return StatePersistence(tmp_path / "queue-state.json")


@pytest.fixture
def reporter() -> MagicMock:
    reporter = MagicMock(spec=PlayCountReporter)
    reporter.close = AsyncMock()
    return reporter


@pytest.fixture
async def player(selector, persistence, reporter):
    """Started player on the fake process backend."""
    player = JukeboxPlayer(
        selector,  # type: ignore[arg-type]
        persistence,
        reporter=reporter,
        poll_interval=0.01,
        completion_cooldown=0.05,
        command_timeout=1.0,
    )
    await player.start("process", restore=False)
    yield player
    await player.stop()
