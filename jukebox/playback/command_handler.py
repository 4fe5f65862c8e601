"""
Playback command handler.

Translates named commands from the request layer into player operations
and enforces the party mode permission toggle.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from jukebox.config import PartyModeConfig

if TYPE_CHECKING:
    from .player import JukeboxPlayer

logger = logging.getLogger(__name__)

# Transport commands
CMD_PLAY = "play"
CMD_PAUSE = "pause"
CMD_RESUME = "resume"
CMD_STOP = "stop"
CMD_SKIP = "skip"
CMD_SEEK = "seek"
CMD_VOLUME = "volume"
CMD_MUTE = "mute"
# Queue commands
CMD_ENQUEUE = "enqueue"
CMD_REMOVE = "remove"
CMD_REORDER = "reorder"
CMD_CLEAR = "clear"
# Maintenance commands
CMD_CHECK_QUEUE = "check"
CMD_RESTART = "restart"
CMD_SWITCH_BACKEND = "switch_backend"

# Commands guests may not run while party mode restricts queue management
RESTRICTED_COMMANDS = {
    CMD_STOP,
    CMD_SKIP,
    CMD_REMOVE,
    CMD_REORDER,
    CMD_CLEAR,
    CMD_SWITCH_BACKEND,
}


class CommandError(Exception):
    """Command could not be run."""

    pass


class UnknownCommandError(CommandError):
    """Command name is not recognised."""

    pass


class InvalidCommandError(CommandError):
    """Command parameters are missing or malformed."""

    pass


class PermissionDeniedError(CommandError):
    """Command is not allowed in party mode."""

    pass


@dataclass
class CommandResult:
    """Outcome of a command."""

    success: bool
    data: dict[str, Any] = field(default_factory=dict)


class PlaybackCommandHandler:
    """
    Handles named playback and queue commands.

    Party mode is a single shared permission toggle: when enabled without
    queue management, guests can still queue and play tracks but cannot
    remove, reorder, clear, stop, skip or switch backends.
    """

    def __init__(self, player: "JukeboxPlayer", party_mode: Optional[PartyModeConfig] = None):
        """
        Initialize command handler.

        Args:
            player: JukeboxPlayer instance
            party_mode: Party mode settings (disabled if omitted)
        """
        self.player = player
        self.party_mode = party_mode or PartyModeConfig()

    def get_commands(self) -> list[str]:
        """Get list of commands this handler processes."""
        return [
            CMD_PLAY,
            CMD_PAUSE,
            CMD_RESUME,
            CMD_STOP,
            CMD_SKIP,
            CMD_SEEK,
            CMD_VOLUME,
            CMD_MUTE,
            CMD_ENQUEUE,
            CMD_REMOVE,
            CMD_REORDER,
            CMD_CLEAR,
            CMD_CHECK_QUEUE,
            CMD_RESTART,
            CMD_SWITCH_BACKEND,
        ]

    def is_allowed(self, command: str) -> bool:
        """Check a command against the party mode toggle."""
        if not self.party_mode.enabled or self.party_mode.allow_queue_management:
            return True
        return command not in RESTRICTED_COMMANDS

    async def handle(self, command: str, params: Optional[dict[str, Any]] = None) -> CommandResult:
        """
        Run a command.

        Raises:
            UnknownCommandError: If the command is not recognised
            PermissionDeniedError: If party mode forbids the command
            InvalidCommandError: If parameters are missing or malformed
        """
        params = params or {}
        if command not in self.get_commands():
            raise UnknownCommandError(f"Unknown command: {command}")
        if not self.is_allowed(command):
            logger.info(f"Party mode blocked command: {command}")
            raise PermissionDeniedError(f"'{command}' is not allowed in party mode")

        logger.debug(f"Command: {command} {params}")

        if command == CMD_PLAY:
            return CommandResult(await self.player.play())
        elif command == CMD_PAUSE:
            return CommandResult(await self.player.pause())
        elif command == CMD_RESUME:
            return CommandResult(await self.player.resume())
        elif command == CMD_STOP:
            return CommandResult(await self.player.stop_playback())
        elif command == CMD_SKIP:
            return CommandResult(await self.player.skip())
        elif command == CMD_SEEK:
            position = _float_param(params, "position")
            return CommandResult(await self.player.seek_to(position))
        elif command == CMD_VOLUME:
            volume = await self.player.set_volume(_float_param(params, "volume"))
            return CommandResult(True, {"volume": volume})
        elif command == CMD_MUTE:
            muted = await self.player.toggle_mute()
            return CommandResult(True, {"isMuted": muted})
        elif command == CMD_ENQUEUE:
            return await self._handle_enqueue(params)
        elif command == CMD_REMOVE:
            return CommandResult(await self.player.remove_at(_int_param(params, "index")))
        elif command == CMD_REORDER:
            return CommandResult(
                await self.player.reorder(
                    _int_param(params, "fromIndex"), _int_param(params, "toIndex")
                )
            )
        elif command == CMD_CLEAR:
            await self.player.clear_queue()
            return CommandResult(True)
        elif command == CMD_CHECK_QUEUE:
            started = await self.player.check_queue_and_start_playback()
            return CommandResult(True, {"started": started})
        elif command == CMD_RESTART:
            restarted = await self.player.check_and_restart()
            return CommandResult(True, {"restarted": restarted})
        else:  # CMD_SWITCH_BACKEND
            backend_type = params.get("type")
            if not isinstance(backend_type, str) or not backend_type:
                raise InvalidCommandError("Missing parameter: type")
            switched = await self.player.switch_backend(backend_type)
            return CommandResult(True, {"switched": switched, "backendType": backend_type})

    async def _handle_enqueue(self, params: dict[str, Any]) -> CommandResult:
        path = params.get("path")
        if not isinstance(path, str) or not path:
            raise InvalidCommandError("Missing parameter: path")
        track = await self.player.enqueue(
            path,
            title=params.get("title"),
            artist=params.get("artist"),
            album=params.get("album"),
            duration_label=params.get("durationLabel"),
        )
        return CommandResult(True, {"track": track.to_dict()})


def _float_param(params: dict[str, Any], name: str) -> float:
    try:
        return float(params[name])
    except KeyError:
        raise InvalidCommandError(f"Missing parameter: {name}")
    except (TypeError, ValueError):
        raise InvalidCommandError(f"Invalid number for {name}: {params[name]!r}")


def _int_param(params: dict[str, Any], name: str) -> int:
    try:
        value = params[name]
    except KeyError:
        raise InvalidCommandError(f"Missing parameter: {name}")
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise InvalidCommandError(f"Invalid integer for {name}: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidCommandError(f"Invalid integer for {name}: {value!r}")
