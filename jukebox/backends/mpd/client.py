"""
MPD command line client.

Wraps the ``mpc`` tool: runs one command per call under a timeout and
parses its status output.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..processes import run_command

logger = logging.getLogger(__name__)

# "[playing] #1/1   0:29/4:57 (9%)"
STATE_PATTERN = re.compile(r"^\[(playing|paused)\]", re.MULTILINE)
TIME_PATTERN = re.compile(r"(\d+):(\d+)/(\d+):(\d+)")
VOLUME_PATTERN = re.compile(r"volume:\s*(\d+)%")

# Retry configuration
MAX_RETRIES = 2
RETRY_DELAY_SECONDS = 0.5
COMMAND_TIMEOUT_SECONDS = 5.0


@dataclass
class MPDStatus:
    """Parsed ``mpc status`` output."""

    state: str = "stopped"  # playing, paused, stopped
    time: int = 0  # seconds
    length: int = 0  # seconds
    volume: Optional[int] = None  # percent, None when MPD has no mixer


class MPDClientError(Exception):
    """MPD client error."""

    pass


class MPDClient:
    """
    Client for an MPD daemon via the ``mpc`` command line tool.

    Handles:
    - Host/port selection for every command
    - Bounded command timeouts
    - Status output parsing
    - Retry logic for transient failures
    """

    def __init__(
        self,
        mpc_binary: str = "mpc",
        host: str = "localhost",
        port: int = 6600,
        timeout: float = COMMAND_TIMEOUT_SECONDS,
    ):
        self.mpc_binary = mpc_binary
        self.host = host
        self.port = port
        self.timeout = timeout

    # =========================================================================
    # Commands
    # =========================================================================

    async def get_status(self, max_retries: Optional[int] = None) -> MPDStatus:
        return self.parse_status(await self.run("status", max_retries=max_retries))

    async def clear(self) -> None:
        await self.run("clear")

    async def add(self, uri: str) -> None:
        await self.run("add", uri)

    async def play(self) -> None:
        await self.run("play")

    async def pause(self) -> None:
        await self.run("pause")

    async def stop(self) -> None:
        await self.run("stop")

    async def seek(self, seconds: int) -> None:
        """Seek to an absolute position in seconds."""
        await self.run("seek", self.seconds_to_time_string(seconds))

    async def set_volume(self, percent: int) -> None:
        await self.run("volume", str(max(0, min(100, percent))))

    async def search_filename(self, name: str) -> list[str]:
        """Find database URIs whose file name matches."""
        output = await self.run("search", "filename", name)
        return [line.strip() for line in output.splitlines() if line.strip()]

    async def run(self, *args: str, max_retries: Optional[int] = None) -> str:
        """
        Run an mpc command with retry logic.

        Returns:
            Command stdout

        Raises:
            MPDClientError: If all attempts failed
        """
        retries = max_retries if max_retries is not None else MAX_RETRIES
        argv = [self.mpc_binary, "-h", self.host, "-p", str(self.port), *args]

        last_error = None
        for attempt in range(retries):
            result = await run_command(*argv, timeout=self.timeout)
            if result is not None and result.ok:
                return result.stdout
            if result is None:
                last_error = "not started or timed out"
            else:
                last_error = result.stderr.strip() or f"exit code {result.returncode}"
            logger.debug(f"mpc {args[0]} failed (attempt {attempt + 1}): {last_error}")

            if attempt < retries - 1:
                await asyncio.sleep(RETRY_DELAY_SECONDS)

        raise MPDClientError(f"mpc {args[0]} failed after {retries} attempt(s): {last_error}")

    # =========================================================================
    # Parsing
    # =========================================================================

    @staticmethod
    def parse_status(output: str) -> MPDStatus:
        """Parse ``mpc status`` output."""
        status = MPDStatus()

        state_match = STATE_PATTERN.search(output)
        if state_match:
            status.state = state_match.group(1)
            time_match = TIME_PATTERN.search(output, state_match.end())
            if time_match:
                minutes, seconds, total_minutes, total_seconds = map(int, time_match.groups())
                status.time = minutes * 60 + seconds
                status.length = total_minutes * 60 + total_seconds

        volume_match = VOLUME_PATTERN.search(output)
        if volume_match:
            status.volume = int(volume_match.group(1))
        return status

    @staticmethod
    def seconds_to_time_string(seconds: int) -> str:
        """Convert seconds to H:MM:SS format."""
        seconds = max(0, int(seconds))
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        secs = seconds % 60
        return f"{hours}:{minutes:02d}:{secs:02d}"
