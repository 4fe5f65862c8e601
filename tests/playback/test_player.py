"""Tests for the jukebox player."""

import asyncio
import json
from typing import Callable

import pytest

from jukebox.backends import BackendNotFoundError, BackendState
from jukebox.playback import (
    JukeboxPlayer,
    JukeboxQueue,
    PlayerState,
    SettingsStore,
    StatePersistence,
    Track,
)
from jukebox.playback.player import CompletionEvent


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll until a condition holds or fail the test."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            pytest.fail("Condition not reached in time")
        await asyncio.sleep(0.005)


class TestEnqueueAndAdvance:
    """Tests for queueing and FIFO advance."""

    async def test_enqueue_when_idle_starts_playback(self, player, fake_backend) -> None:
        track = await player.enqueue("/music/a.mp3", title="A", artist="Artist")

        assert fake_backend.played == ["/music/a.mp3"]
        assert player.get_current_track() == track
        assert player.get_queue() == []
        assert player.state == PlayerState.PLAYING

    async def test_enqueue_while_playing_appends(self, player, fake_backend) -> None:
        await player.enqueue("/music/a.mp3")
        b = await player.enqueue("/music/b.mp3")
        c = await player.enqueue("/music/c.mp3")

        assert fake_backend.played == ["/music/a.mp3"]
        assert player.get_queue() == [b, c]

    async def test_enqueue_defaults(self, player) -> None:
        track = await player.enqueue("/music/Some Song.mp3")

        assert track.title == "Some Song"
        assert track.artist == "Unknown"
        assert track.album == "Unknown"
        assert track.duration_label == "0:00"
        assert track.id.startswith("track_")

    async def test_completion_advances_in_order(self, player, fake_backend, reporter) -> None:
        """Test tracks play in insertion order as each one completes."""
        await player.enqueue("/music/a.mp3")
        await player.enqueue("/music/b.mp3")
        await player.enqueue("/music/c.mp3")

        fake_backend.finish()
        await player.wait_for_completions()
        assert player.get_current_track().path == "/music/b.mp3"

        fake_backend.finish()
        await player.wait_for_completions()
        assert player.get_current_track().path == "/music/c.mp3"

        assert fake_backend.played == ["/music/a.mp3", "/music/b.mp3", "/music/c.mp3"]
        assert [c.args[0] for c in reporter.record_play.call_args_list] == [
            "/music/a.mp3",
            "/music/b.mp3",
        ]

    async def test_completion_with_empty_queue_goes_idle(
        self, player, fake_backend, reporter
    ) -> None:
        await player.enqueue("/music/a.mp3")

        fake_backend.finish()
        await player.wait_for_completions()

        assert player.get_current_track() is None
        assert player.state == PlayerState.IDLE
        reporter.record_play.assert_called_once_with("/music/a.mp3")

    async def test_duplicate_completion_advances_once(
        self, player, fake_backend, reporter
    ) -> None:
        """Test two end signals for one track advance and count only once."""
        await player.enqueue("/music/a.mp3")
        await player.enqueue("/music/b.mp3")
        await player.enqueue("/music/c.mp3")

        fake_backend.finish()
        fake_backend.report_track_complete()
        await player.wait_for_completions()

        assert player.get_current_track().path == "/music/b.mp3"
        assert [t.path for t in player.get_queue()] == ["/music/c.mp3"]
        reporter.record_play.assert_called_once_with("/music/a.mp3")

    async def test_next_track_completion_within_cooldown(
        self, selector, persistence, reporter, fake_backend
    ) -> None:
        """Test a short next track still advances while the previous end is remembered."""
        player = JukeboxPlayer(
            selector, persistence, reporter=reporter, completion_cooldown=1.0, command_timeout=1.0
        )
        await player.start("process", restore=False)
        try:
            await player.enqueue("/music/a.mp3")
            await player.enqueue("/music/b.mp3")
            await player.enqueue("/music/c.mp3")

            fake_backend.finish()
            await player.wait_for_completions()
            fake_backend.finish()
            await player.wait_for_completions()

            assert player.get_current_track().path == "/music/c.mp3"
            assert player.state == PlayerState.PLAYING
            assert fake_backend.played == ["/music/a.mp3", "/music/b.mp3", "/music/c.mp3"]
            assert [c.args[0] for c in reporter.record_play.call_args_list] == [
                "/music/a.mp3",
                "/music/b.mp3",
            ]
        finally:
            await player.stop()

    async def test_signal_from_before_track_start_ignored(
        self, player, fake_backend, reporter
    ) -> None:
        """Test an end signal raised while the current track was still starting is dropped."""
        await player.enqueue("/music/a.mp3")
        await player.enqueue("/music/b.mp3")
        current = player.get_current_track()

        player._completion_events.put_nowait(CompletionEvent(track_id=current.id, received_at=0.0))
        await player.wait_for_completions()

        assert player.get_current_track() == current
        reporter.record_play.assert_not_called()

    async def test_completion_without_current_track_ignored(
        self, player, fake_backend, reporter
    ) -> None:
        fake_backend.report_track_complete()
        await player.wait_for_completions()

        assert player.get_current_track() is None
        reporter.record_play.assert_not_called()

    async def test_poller_detects_end_of_track(self, selector, persistence, reporter) -> None:
        """Test a backend reporting a finished position advances the queue."""
        player = JukeboxPlayer(
            selector, persistence, reporter=reporter, poll_interval=0.01, command_timeout=1.0
        )
        await player.start("vlc", restore=False)
        backend = selector.backends["vlc"]
        try:
            await player.enqueue("/music/a.mp3")
            await player.enqueue("/music/b.mp3")

            backend.finished = True
            await wait_until(lambda: backend.played == ["/music/a.mp3", "/music/b.mp3"])
            await player.wait_for_completions()

            assert player.get_current_track().path == "/music/b.mp3"
            reporter.record_play.assert_called_once_with("/music/a.mp3")
        finally:
            await player.stop()

    async def test_concurrent_skips_are_serialized(self, player, fake_backend) -> None:
        await player.enqueue("/music/a.mp3")
        await player.enqueue("/music/b.mp3")
        await player.enqueue("/music/c.mp3")

        await asyncio.gather(player.skip(), player.skip())

        assert fake_backend.played == ["/music/a.mp3", "/music/b.mp3", "/music/c.mp3"]
        assert player.get_current_track().path == "/music/c.mp3"
        assert player.get_queue() == []


class TestTransport:
    """Tests for play, pause, stop and skip."""

    async def test_play_with_nothing_queued(self, player, fake_backend) -> None:
        assert await player.play() is False
        assert fake_backend.played == []
        assert player.state == PlayerState.IDLE

    async def test_pause_and_resume(self, player, fake_backend) -> None:
        await player.enqueue("/music/a.mp3")

        assert await player.pause() is True
        assert player.state == PlayerState.PAUSED
        assert fake_backend.state == BackendState.PAUSED

        assert await player.resume() is True
        assert player.state == PlayerState.PLAYING
        assert fake_backend.played == ["/music/a.mp3"]

    async def test_play_resumes_paused_track(self, player, fake_backend) -> None:
        await player.enqueue("/music/a.mp3")
        await player.pause()

        assert await player.play() is True
        assert fake_backend.state == BackendState.PLAYING
        assert fake_backend.played == ["/music/a.mp3"]

    async def test_pause_when_idle(self, player) -> None:
        assert await player.pause() is False

    async def test_stop_keeps_queue_and_does_not_advance(
        self, player, fake_backend, reporter
    ) -> None:
        """Test stopping never counts as a completion, even if the player reports exit."""
        fake_backend.emit_on_stop = True
        await player.enqueue("/music/a.mp3")
        b = await player.enqueue("/music/b.mp3")

        assert await player.stop_playback() is True
        await player.wait_for_completions()

        assert player.get_current_track() is None
        assert player.get_queue() == [b]
        assert player.state == PlayerState.IDLE
        assert fake_backend.played == ["/music/a.mp3"]
        reporter.record_play.assert_not_called()

    async def test_completion_callback_rewired_after_stop(self, player, fake_backend) -> None:
        await player.enqueue("/music/a.mp3")
        await player.enqueue("/music/b.mp3")
        await player.enqueue("/music/c.mp3")
        await player.stop_playback()

        assert await player.play() is True
        fake_backend.finish()
        await player.wait_for_completions()

        assert player.get_current_track().path == "/music/c.mp3"

    async def test_skip(self, player, fake_backend, reporter) -> None:
        await player.enqueue("/music/a.mp3")
        await player.enqueue("/music/b.mp3")

        assert await player.skip() is True

        assert player.get_current_track().path == "/music/b.mp3"
        reporter.record_play.assert_not_called()

    async def test_skip_last_track_goes_idle(self, player, fake_backend) -> None:
        await player.enqueue("/music/a.mp3")

        assert await player.skip() is False

        assert player.get_current_track() is None
        assert player.state == PlayerState.IDLE
        assert fake_backend.stop_calls == 1

    async def test_failed_start_keeps_track_current(self, player, fake_backend) -> None:
        """Test a track that fails to start stays current until play() retries it."""
        fake_backend.fail_paths.add("/music/a.mp3")
        track = await player.enqueue("/music/a.mp3")

        assert player.get_current_track() == track
        assert player.state == PlayerState.IDLE

        fake_backend.fail_paths.clear()
        assert await player.play() is True
        assert player.state == PlayerState.PLAYING
        assert fake_backend.played == ["/music/a.mp3", "/music/a.mp3"]

    async def test_backend_timeout_reported_as_failure(self, selector, persistence) -> None:
        player = JukeboxPlayer(selector, persistence, command_timeout=0.05)
        await player.start("process", restore=False)
        selector.backends["process"].hang = True
        try:
            await player.enqueue("/music/a.mp3")
            assert player.state == PlayerState.IDLE
            assert player.get_current_track().path == "/music/a.mp3"
        finally:
            await player.stop()


class TestSeekAndVolume:
    """Tests for seeking and volume."""

    async def test_seek_without_track(self, player, fake_backend) -> None:
        assert await player.seek_to(0.5) is False
        assert fake_backend.seeks == []

    async def test_seek_clamps_position(self, player, fake_backend) -> None:
        await player.enqueue("/music/a.mp3")

        assert await player.seek_to(1.5) is True

        assert fake_backend.seeks == [1.0]

    async def test_seek_resyncs_with_duration_backend(self, selector, persistence) -> None:
        player = JukeboxPlayer(selector, persistence, poll_interval=10)
        await player.start("vlc", restore=False)
        try:
            await player.enqueue("/music/a.mp3")
            await player.seek_to(0.5)

            snapshot = await player.get_snapshot()
            assert snapshot.progress == pytest.approx(0.5)
        finally:
            await player.stop()

    async def test_set_volume_clamps(self, player) -> None:
        assert await player.set_volume(1.5) == 1.0
        assert await player.set_volume(-0.2) == 0.0

        snapshot = await player.get_snapshot()
        assert snapshot.volume == 0.0
        assert snapshot.is_muted is True

    async def test_toggle_mute(self, player) -> None:
        await player.set_volume(0.6)

        assert await player.toggle_mute() is True
        assert await player.toggle_mute() is False

        snapshot = await player.get_snapshot()
        assert snapshot.volume == pytest.approx(0.6)

    async def test_snapshot_keeps_last_volume_when_backend_hangs(
        self, selector, persistence, fake_backend
    ) -> None:
        player = JukeboxPlayer(selector, persistence, command_timeout=0.05)
        await player.start("process", restore=False)
        try:
            await player.set_volume(0.4)

            async def hang() -> float:
                await asyncio.sleep(3600)
                return 0.0

            fake_backend.get_volume = hang
            fake_backend.is_muted = hang

            snapshot = await asyncio.wait_for(player.get_snapshot(), 1.0)

            assert snapshot.volume == pytest.approx(0.4)
            assert snapshot.is_muted is False
        finally:
            await player.stop()


class TestQueueEditing:
    """Tests for remove, reorder and clear."""

    @pytest.fixture
    async def queued(self, player) -> list[Track]:
        await player.enqueue("/music/now.mp3")
        return [await player.enqueue(f"/music/{name}.mp3") for name in ("a", "b", "c")]

    async def test_remove_at(self, player, queued) -> None:
        assert await player.remove_at(1) is True
        assert player.get_queue() == [queued[0], queued[2]]

    async def test_remove_out_of_range(self, player, queued) -> None:
        assert await player.remove_at(5) is False
        assert await player.remove_at(-1) is False
        assert player.get_queue() == queued

    async def test_reorder(self, player, queued) -> None:
        assert await player.reorder(2, 0) is True
        assert player.get_queue() == [queued[2], queued[0], queued[1]]

    async def test_reorder_out_of_range(self, player, queued) -> None:
        assert await player.reorder(0, 3) is False
        assert player.get_queue() == queued

    async def test_clear_keeps_current_track(self, player, queued) -> None:
        await player.clear_queue()

        assert player.get_queue() == []
        assert player.get_current_track().path == "/music/now.mp3"
        assert player.state == PlayerState.PLAYING


class TestPersistenceAndRestore:
    """Tests for persisted state."""

    async def test_mutations_are_persisted(self, player, persistence) -> None:
        await player.enqueue("/music/a.mp3")
        await player.enqueue("/music/b.mp3")

        data = json.loads(persistence.path.read_text())

        assert data["currentTrack"]["path"] == "/music/a.mp3"
        assert [t["path"] for t in data["queue"]] == ["/music/b.mp3"]
        assert isinstance(data["timestampMillis"], int)

    async def test_restore_never_resumes_playback(self, selector, persistence) -> None:
        current = Track.create("/music/a.mp3", title="A")
        pending = Track.create("/music/b.mp3", title="B")
        persistence.save([pending], current)

        player = JukeboxPlayer(selector, persistence)
        await player.start("process", restore=True)
        backend = selector.backends["process"]
        try:
            assert player.get_current_track() == current
            assert player.get_queue() == [pending]
            assert player.state == PlayerState.IDLE
            assert backend.played == []

            assert await player.play() is True
            assert backend.played == ["/music/a.mp3"]
        finally:
            await player.stop()

    async def test_stale_state_ignored(self, selector, tmp_path) -> None:
        path = tmp_path / "queue-state.json"
        StatePersistence(path, clock=lambda: 0.0).save([Track.create("/music/a.mp3")], None)

        player = JukeboxPlayer(selector, StatePersistence(path, freshness_hours=24))
        await player.start("process", restore=True)
        try:
            assert player.get_queue() == []
        finally:
            await player.stop()

    async def test_stop_persists_state(self, selector, persistence) -> None:
        player = JukeboxPlayer(selector, persistence)
        await player.start("process", restore=False)
        await player.enqueue("/music/a.mp3")
        persistence.path.unlink()

        await player.stop()

        assert persistence.load().current_track.path == "/music/a.mp3"


class TestSwitchBackend:
    """Tests for switching the active backend."""

    async def test_switch_tears_down_old_backend(
        self, player, fake_backend, vlc_backend
    ) -> None:
        await player.enqueue("/music/a.mp3")
        b = await player.enqueue("/music/b.mp3")

        assert await player.switch_backend("vlc") is True

        assert fake_backend.killed is True
        assert player.backend is vlc_backend
        assert player.backend_type == "vlc"
        assert player.get_current_track() is None
        assert player.get_queue() == [b]
        assert player.state == PlayerState.IDLE

    async def test_old_backend_signals_ignored(self, player, fake_backend, vlc_backend) -> None:
        await player.enqueue("/music/a.mp3")
        await player.enqueue("/music/b.mp3")
        await player.switch_backend("vlc")

        fake_backend.report_track_complete()
        await player.wait_for_completions()

        assert vlc_backend.played == []

    async def test_new_backend_is_wired(self, player, vlc_backend) -> None:
        await player.enqueue("/music/a.mp3")
        await player.enqueue("/music/b.mp3")
        await player.enqueue("/music/c.mp3")
        await player.switch_backend("vlc")

        await player.play()
        vlc_backend.finish()
        await player.wait_for_completions()

        assert vlc_backend.played == ["/music/b.mp3", "/music/c.mp3"]

    async def test_switch_survives_restart(self, selector, persistence, tmp_path) -> None:
        settings = SettingsStore(tmp_path / "settings.json")
        player = JukeboxPlayer(selector, persistence, settings=settings)
        await player.start("process", restore=False)
        await player.switch_backend("vlc")
        await player.stop()

        assert json.loads((tmp_path / "settings.json").read_text()) == {"audioPlayer": "vlc"}

        restarted = JukeboxPlayer(selector, persistence, settings=settings)
        await restarted.start("process", restore=True)
        try:
            assert restarted.backend_type == "vlc"
        finally:
            await restarted.stop()

    async def test_unknown_stored_backend_ignored(self, selector, persistence, tmp_path) -> None:
        settings = SettingsStore(tmp_path / "settings.json")
        settings.set_backend_type("winamp")

        player = JukeboxPlayer(selector, persistence, settings=settings)
        await player.start("process", restore=False)
        try:
            assert player.backend_type == "process"
        finally:
            await player.stop()

    async def test_switch_to_active_type(self, player) -> None:
        assert await player.switch_backend("process") is False

    async def test_switch_to_unknown_type(self, player) -> None:
        with pytest.raises(BackendNotFoundError):
            await player.switch_backend("bogus")
        assert player.backend_type == "process"


class TestHealthChecks:
    """Tests for queue monitoring and restart."""

    async def test_check_queue_starts_waiting_tracks(self, selector, persistence) -> None:
        queue = JukeboxQueue([Track.create("/music/a.mp3")])
        player = JukeboxPlayer(selector, persistence, queue=queue)
        await player.start("process", restore=False)
        try:
            assert await player.check_queue_and_start_playback() is True
            assert selector.backends["process"].played == ["/music/a.mp3"]
            assert await player.check_queue_and_start_playback() is False
        finally:
            await player.stop()

    async def test_queue_monitor_runs_periodically(self, selector, persistence) -> None:
        queue = JukeboxQueue([Track.create("/music/a.mp3")])
        player = JukeboxPlayer(selector, persistence, queue=queue)
        await player.start("process", restore=False, queue_monitor_interval=0.01)
        try:
            await wait_until(lambda: selector.backends["process"].played == ["/music/a.mp3"])
        finally:
            await player.stop()

    async def test_check_and_restart_after_crash(self, player, fake_backend) -> None:
        await player.enqueue("/music/a.mp3")
        fake_backend.alive = False
        fake_backend.state = BackendState.STOPPED

        assert await player.check_and_restart() is True
        assert fake_backend.played == ["/music/a.mp3", "/music/a.mp3"]

    async def test_check_and_restart_when_healthy(self, player, fake_backend) -> None:
        await player.enqueue("/music/a.mp3")

        assert await player.check_and_restart() is False
        assert fake_backend.played == ["/music/a.mp3"]


class TestStatus:
    """Tests for snapshots and debug info."""

    async def test_snapshot_to_dict(self, player) -> None:
        await player.enqueue("/music/a.mp3", title="A")
        await player.enqueue("/music/b.mp3", title="B")

        data = (await player.get_snapshot()).to_dict()

        assert data["isPlaying"] is True
        assert data["currentTrack"]["title"] == "A"
        assert [t["title"] for t in data["queue"]] == ["B"]
        assert data["state"] == "playing"
        assert data["backendType"] == "process"
        assert data["volume"] == 1.0
        assert data["isMuted"] is False

    async def test_snapshot_idle(self, player) -> None:
        snapshot = await player.get_snapshot()

        assert snapshot.is_playing is False
        assert snapshot.current_track is None
        assert snapshot.progress == 0.0

    async def test_debug_info(self, player) -> None:
        await player.enqueue("/music/a.mp3")

        info = await player.get_debug_info()

        assert info["queueLength"] == 0
        assert info["currentTrack"]["path"] == "/music/a.mp3"
        assert info["audioStatus"]["isPlaying"] is True
        assert info["hasStateFile"] is True
        assert info["stateFileSize"] > 0
        assert info["backendType"] == "process"
        assert info["state"] == "playing"
