"""
Play count reporting.

Play counts are recorded by an external stats service. Reports are
fire-and-forget: the player never waits on them and failures are ignored.
"""

import asyncio
import logging
from typing import Optional

import aiohttp
from aiohttp import ClientTimeout

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 5.0


class PlayCountReporter:
    """Base reporter: logs plays without sending them anywhere."""

    def record_play(self, path: str) -> None:
        """Record that a track played to completion."""
        logger.info(f"Play recorded: {path}")

    async def close(self) -> None:
        """Release resources."""
        pass


class HttpPlayCountReporter(PlayCountReporter):
    """
    Reports plays to an HTTP stats endpoint.

    POSTs {"trackPath": path} in a background task per play.
    """

    def __init__(self, url: str):
        self.url = url
        self._session: Optional[aiohttp.ClientSession] = None
        self._tasks: set[asyncio.Task] = set()

    def record_play(self, path: str) -> None:
        task = asyncio.create_task(self._send(path))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send(self, path: str) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=REQUEST_TIMEOUT_SECONDS)
            )
        try:
            async with self._session.post(self.url, json={"trackPath": path}) as response:
                if response.status >= 400:
                    logger.debug(f"Stats service rejected play ({response.status}): {path}")
                else:
                    logger.debug(f"Play reported: {path}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"Failed to report play for {path}: {e}")

    async def close(self) -> None:
        """Wait for in-flight reports, then close the session."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._session:
            await self._session.close()
            self._session = None


def create_reporter(url: str = "") -> PlayCountReporter:
    """Create an HTTP reporter if a URL is configured, else a logging one."""
    if url:
        return HttpPlayCountReporter(url)
    return PlayCountReporter()
