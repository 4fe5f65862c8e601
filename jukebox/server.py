"""
HTTP control API.

Thin JSON layer over the playback command handler. Every response carries
a success flag and a freshly computed playback snapshot.
"""

import json
import logging
from typing import Any, Optional

from aiohttp import web

from jukebox.backends import BackendNotFoundError, BackendRegistry
from jukebox.config import Config
from jukebox.playback import (
    CommandResult,
    InvalidCommandError,
    JukeboxPlayer,
    PermissionDeniedError,
    PlaybackCommandHandler,
    UnknownCommandError,
)
from jukebox.playback.command_handler import (
    CMD_CHECK_QUEUE,
    CMD_CLEAR,
    CMD_ENQUEUE,
    CMD_MUTE,
    CMD_REMOVE,
    CMD_REORDER,
    CMD_SEEK,
    CMD_SWITCH_BACKEND,
    CMD_VOLUME,
)

logger = logging.getLogger(__name__)

# Commands accepted by POST /api/control
CONTROL_ACTIONS = {"play", "pause", "resume", "stop", "skip", "restart"}


class JukeboxServer:
    """
    HTTP server exposing queue and transport controls.

    Routes:
        GET    /api/queue                   snapshot
        POST   /api/queue                   enqueue {path, title?, artist?, album?, durationLabel?}
        DELETE /api/queue                   clear
        DELETE /api/queue/{index}           remove
        POST   /api/queue/reorder           {fromIndex, toIndex}
        POST   /api/queue/check             start playback if idle with tracks waiting
        POST   /api/control                 {action: play|pause|resume|stop|skip|restart}
        POST   /api/seek                    {position}
        POST   /api/volume                  {volume}
        POST   /api/volume/mute             toggle mute
        GET    /api/debug                   debug info
        GET    /api/settings/audio-player   active backend type
        PUT    /api/settings/audio-player   {type}
    """

    def __init__(
        self,
        config: Config,
        player: JukeboxPlayer,
        handler: Optional[PlaybackCommandHandler] = None,
    ):
        """
        Initialize server.

        Args:
            config: Application configuration
            player: Player to control
            handler: Command handler (built from config if omitted)
        """
        self.config = config
        self.player = player
        self.handler = handler or PlaybackCommandHandler(player, config.party_mode)

        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def start(self) -> None:
        """Start HTTP server."""
        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(
            self._runner,
            self.config.server.bind_address,
            self.config.server.http_port,
        )
        await self._site.start()
        logger.info(
            f"HTTP API listening on {self.config.server.bind_address}:{self.config.server.http_port}"
        )

    async def stop(self) -> None:
        """Stop HTTP server."""
        if self._site:
            await self._site.stop()
            self._site = None
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("HTTP API stopped")

    def create_app(self) -> web.Application:
        """Build the aiohttp application with all routes."""
        app = web.Application()
        app.router.add_get("/", self._handle_root)
        app.router.add_get("/api/queue", self._handle_get_queue)
        app.router.add_post("/api/queue", self._handle_enqueue)
        app.router.add_delete("/api/queue", self._handle_clear)
        app.router.add_delete("/api/queue/{index}", self._handle_remove)
        app.router.add_post("/api/queue/reorder", self._handle_reorder)
        app.router.add_post("/api/queue/check", self._handle_check)
        app.router.add_post("/api/control", self._handle_control)
        app.router.add_post("/api/seek", self._handle_seek)
        app.router.add_post("/api/volume", self._handle_volume)
        app.router.add_post("/api/volume/mute", self._handle_mute)
        app.router.add_get("/api/debug", self._handle_debug)
        app.router.add_get("/api/settings/audio-player", self._handle_get_audio_player)
        app.router.add_put("/api/settings/audio-player", self._handle_set_audio_player)
        return app

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def _handle_root(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.Response(text="Jukebox", content_type="text/plain")

    async def _handle_get_queue(self, request: web.Request) -> web.Response:
        return await self._respond(CommandResult(True))

    async def _handle_enqueue(self, request: web.Request) -> web.Response:
        return await self._run(CMD_ENQUEUE, await self._read_json(request))

    async def _handle_clear(self, request: web.Request) -> web.Response:
        return await self._run(CMD_CLEAR)

    async def _handle_remove(self, request: web.Request) -> web.Response:
        return await self._run(CMD_REMOVE, {"index": request.match_info["index"]})

    async def _handle_reorder(self, request: web.Request) -> web.Response:
        return await self._run(CMD_REORDER, await self._read_json(request))

    async def _handle_check(self, request: web.Request) -> web.Response:
        return await self._run(CMD_CHECK_QUEUE)

    async def _handle_control(self, request: web.Request) -> web.Response:
        body = await self._read_json(request)
        action = body.get("action")
        if action not in CONTROL_ACTIONS:
            return self._error(400, f"Invalid action: {action}")
        return await self._run(action)

    async def _handle_seek(self, request: web.Request) -> web.Response:
        return await self._run(CMD_SEEK, await self._read_json(request))

    async def _handle_volume(self, request: web.Request) -> web.Response:
        return await self._run(CMD_VOLUME, await self._read_json(request))

    async def _handle_mute(self, request: web.Request) -> web.Response:
        return await self._run(CMD_MUTE)

    async def _handle_debug(self, request: web.Request) -> web.Response:
        return web.json_response(await self.player.get_debug_info())

    async def _handle_get_audio_player(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "type": self.player.backend_type,
                "available": BackendRegistry.available_types(),
            }
        )

    async def _handle_set_audio_player(self, request: web.Request) -> web.Response:
        return await self._run(CMD_SWITCH_BACKEND, await self._read_json(request))

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _run(self, command: str, params: Optional[dict[str, Any]] = None) -> web.Response:
        """Run a command and translate errors to HTTP status codes."""
        try:
            result = await self.handler.handle(command, params)
        except PermissionDeniedError as e:
            return self._error(403, str(e))
        except (InvalidCommandError, UnknownCommandError, BackendNotFoundError) as e:
            return self._error(400, str(e))
        except Exception as e:
            logger.error(f"Error running command {command}: {e}", exc_info=True)
            return self._error(500, "Internal server error")
        return await self._respond(result)

    async def _respond(self, result: CommandResult) -> web.Response:
        snapshot = await self.player.get_snapshot()
        body = {"success": result.success, **result.data, "state": snapshot.to_dict()}
        return web.json_response(body, headers={"Cache-Control": "no-store"})

    async def _read_json(self, request: web.Request) -> dict[str, Any]:
        if not request.can_read_body:
            return {}
        try:
            data = await request.json()
        except json.JSONDecodeError as e:
            raise web.HTTPBadRequest(
                text=json.dumps({"success": False, "error": f"Invalid JSON: {e}"}),
                content_type="application/json",
            )
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _error(status: int, message: str) -> web.Response:
        return web.json_response({"success": False, "error": message}, status=status)
