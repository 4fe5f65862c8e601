"""Tests for the playback command handler."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from jukebox.config import PartyModeConfig
from jukebox.playback import (
    InvalidCommandError,
    PermissionDeniedError,
    PlaybackCommandHandler,
    Track,
    UnknownCommandError,
)
from jukebox.playback.command_handler import RESTRICTED_COMMANDS


@pytest.fixture
def player() -> MagicMock:
    player = MagicMock()
    for method in (
        "play",
        "pause",
        "resume",
        "stop_playback",
        "skip",
        "seek_to",
        "remove_at",
        "reorder",
        "check_queue_and_start_playback",
        "check_and_restart",
        "switch_backend",
        "toggle_mute",
    ):
        setattr(player, method, AsyncMock(return_value=True))
    player.set_volume = AsyncMock(return_value=0.5)
    player.clear_queue = AsyncMock()
    player.enqueue = AsyncMock(return_value=Track(id="track_1_abc", path="/music/a.mp3"))
    return player


@pytest.fixture
def handler(player) -> PlaybackCommandHandler:
    return PlaybackCommandHandler(player)


@pytest.fixture
def party_handler(player) -> PlaybackCommandHandler:
    return PlaybackCommandHandler(
        player, PartyModeConfig(enabled=True, allow_queue_management=False)
    )


class TestDispatch:
    """Tests for command dispatch."""

    @pytest.mark.parametrize(
        "command,method",
        [
            ("play", "play"),
            ("pause", "pause"),
            ("resume", "resume"),
            ("stop", "stop_playback"),
            ("skip", "skip"),
        ],
    )
    async def test_transport_commands(self, handler, player, command, method) -> None:
        result = await handler.handle(command)

        assert result.success is True
        getattr(player, method).assert_awaited_once_with()

    async def test_seek(self, handler, player) -> None:
        await handler.handle("seek", {"position": "0.25"})
        player.seek_to.assert_awaited_once_with(0.25)

    async def test_volume(self, handler, player) -> None:
        result = await handler.handle("volume", {"volume": 0.8})

        player.set_volume.assert_awaited_once_with(0.8)
        assert result.data == {"volume": 0.5}

    async def test_mute(self, handler, player) -> None:
        result = await handler.handle("mute")
        assert result.data == {"isMuted": True}

    async def test_enqueue(self, handler, player) -> None:
        result = await handler.handle(
            "enqueue",
            {"path": "/music/a.mp3", "title": "A", "artist": "B", "durationLabel": "3:00"},
        )

        player.enqueue.assert_awaited_once_with(
            "/music/a.mp3", title="A", artist="B", album=None, duration_label="3:00"
        )
        assert result.data["track"]["id"] == "track_1_abc"

    async def test_remove(self, handler, player) -> None:
        await handler.handle("remove", {"index": "2"})
        player.remove_at.assert_awaited_once_with(2)

    async def test_reorder(self, handler, player) -> None:
        await handler.handle("reorder", {"fromIndex": 0, "toIndex": 3})
        player.reorder.assert_awaited_once_with(0, 3)

    async def test_clear(self, handler, player) -> None:
        result = await handler.handle("clear")

        assert result.success is True
        player.clear_queue.assert_awaited_once()

    async def test_check_and_restart(self, handler, player) -> None:
        assert (await handler.handle("check")).data == {"started": True}
        assert (await handler.handle("restart")).data == {"restarted": True}

    async def test_switch_backend(self, handler, player) -> None:
        result = await handler.handle("switch_backend", {"type": "vlc"})

        player.switch_backend.assert_awaited_once_with("vlc")
        assert result.data == {"switched": True, "backendType": "vlc"}

    async def test_unsuccessful_operation(self, handler, player) -> None:
        player.pause.return_value = False
        assert (await handler.handle("pause")).success is False


class TestValidation:
    """Tests for parameter validation."""

    async def test_unknown_command(self, handler) -> None:
        with pytest.raises(UnknownCommandError):
            await handler.handle("shuffle")

    async def test_enqueue_requires_path(self, handler, player) -> None:
        with pytest.raises(InvalidCommandError, match="path"):
            await handler.handle("enqueue", {"title": "A"})
        player.enqueue.assert_not_called()

    async def test_seek_requires_number(self, handler) -> None:
        with pytest.raises(InvalidCommandError):
            await handler.handle("seek", {"position": "middle"})

    async def test_missing_parameter(self, handler) -> None:
        with pytest.raises(InvalidCommandError, match="volume"):
            await handler.handle("volume", {})

    async def test_index_rejects_bool(self, handler) -> None:
        with pytest.raises(InvalidCommandError):
            await handler.handle("remove", {"index": True})

    async def test_index_rejects_fractional_number(self, handler, player) -> None:
        with pytest.raises(InvalidCommandError, match="fromIndex"):
            await handler.handle("reorder", {"fromIndex": 1.7, "toIndex": 0})
        player.reorder.assert_not_called()

    async def test_index_accepts_whole_float(self, handler, player) -> None:
        await handler.handle("remove", {"index": 2.0})
        player.remove_at.assert_awaited_once_with(2)

    async def test_switch_requires_type(self, handler) -> None:
        with pytest.raises(InvalidCommandError):
            await handler.handle("switch_backend", {})


class TestPartyMode:
    """Tests for the party mode permission toggle."""

    @pytest.mark.parametrize("command", sorted(RESTRICTED_COMMANDS))
    def test_restricted_commands_blocked(self, party_handler, command) -> None:
        assert party_handler.is_allowed(command) is False

    @pytest.mark.parametrize("command", ["play", "pause", "resume", "enqueue", "volume", "check"])
    def test_guest_commands_allowed(self, party_handler, command) -> None:
        assert party_handler.is_allowed(command) is True

    async def test_blocked_command_raises(self, party_handler, player) -> None:
        with pytest.raises(PermissionDeniedError):
            await party_handler.handle("skip")
        player.skip.assert_not_called()

    def test_queue_management_allowed(self, player) -> None:
        handler = PlaybackCommandHandler(
            player, PartyModeConfig(enabled=True, allow_queue_management=True)
        )
        assert handler.is_allowed("clear") is True

    def test_disabled_party_mode_allows_everything(self, handler) -> None:
        assert all(handler.is_allowed(command) for command in handler.get_commands())
