"""
Jukebox Application.

Wires together all components and manages lifecycle.
"""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional

from jukebox.backends import BackendSelector
from jukebox.config import Config
from jukebox.playback import JukeboxPlayer, SettingsStore, StatePersistence, create_reporter
from jukebox.server import JukeboxServer

logger = logging.getLogger(__name__)


class JukeboxApp:
    """
    Main jukebox application.

    Orchestrates all components:
    - Audio backend (BackendSelector)
    - Playback (StatePersistence, JukeboxPlayer)
    - HTTP control API (JukeboxServer)

    Usage:
        config = load_config(...)
        app = JukeboxApp(config)
        await app.run()
    """

    def __init__(self, config: Config):
        """
        Initialize the application.

        Args:
            config: Validated configuration
        """
        self._config = config
        self._is_running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self._selector: Optional[BackendSelector] = None
        self._player: Optional[JukeboxPlayer] = None
        self._server: Optional[JukeboxServer] = None

    async def start(self) -> None:
        """
        Start the jukebox and all components.

        Startup order:
        1. Backend selector
        2. State persistence, settings and play count reporter
        3. Player (activates the stored or configured backend, restores queue
           without playing)
        4. HTTP control API

        Raises:
            BackendNotFoundError: If the configured backend type is unknown
            OSError: If the HTTP port cannot be bound
        """
        logger.info("Starting jukebox...")
        playback = self._config.playback

        # 1. Backend selector
        self._selector = BackendSelector(self._config)

        # 2. Persistence, settings and stats
        persistence = StatePersistence(
            Path(playback.state_file),
            freshness_hours=playback.freshness_hours,
        )
        reporter = create_reporter(self._config.stats.url)
        settings = SettingsStore(Path(playback.settings_file))

        # 3. Player
        self._player = JukeboxPlayer(
            selector=self._selector,
            persistence=persistence,
            reporter=reporter,
            settings=settings,
            poll_interval=playback.poll_interval,
            completion_cooldown=playback.completion_cooldown,
            command_timeout=self._config.backend.command_timeout,
        )
        await self._player.start(
            self._config.backend.type,
            restore=True,
            queue_monitor_interval=playback.queue_monitor_interval,
        )

        # 4. HTTP API
        self._server = JukeboxServer(self._config, self._player)
        await self._server.start()

        self._is_running = True
        logger.info("Jukebox ready")

    async def stop(self) -> None:
        """
        Stop the jukebox and all components.

        Shutdown order (reverse of startup):
        1. Stop HTTP API
        2. Stop player (persists state, shuts down backend)
        """
        if not self._is_running:
            return

        logger.info("Stopping jukebox...")
        self._is_running = False

        # 1. Stop HTTP API
        if self._server:
            try:
                await self._server.stop()
            except Exception as e:
                logger.warning(f"Error stopping HTTP API: {e}")

        # 2. Stop player
        if self._player:
            try:
                await self._player.stop()
            except Exception as e:
                logger.warning(f"Error stopping player: {e}")

        logger.info("Jukebox stopped")

    async def run(self) -> None:
        """
        Run the jukebox until interrupted.

        Sets up signal handlers for graceful shutdown on SIGINT/SIGTERM.
        """
        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Shutdown signal received")
            self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, handle_signal)

        try:
            await self.start()

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        finally:
            if self._is_running:
                await self.stop()
            elif self._player:
                # Partial startup: release the backend anyway
                await self._player.stop()

    @property
    def player(self) -> Optional[JukeboxPlayer]:
        return self._player

    @property
    def is_running(self) -> bool:
        """Check if the application is running."""
        return self._is_running
