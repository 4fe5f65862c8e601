"""
VLC HTTP interface client.

Low-level client for the status endpoint of a VLC instance started with
``--intf http``.
"""

import asyncio
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiohttp
from aiohttp import BasicAuth, ClientTimeout

logger = logging.getLogger(__name__)

STATUS_PATH = "/requests/status.xml"

# VLC's volume scale: 256 is 100%
VLC_VOLUME_MAX = 256

# Retry configuration
MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 0.5
REQUEST_TIMEOUT_SECONDS = 5.0


@dataclass
class VLCStatus:
    """Parsed VLC status document."""

    state: str = "stopped"  # playing, paused, stopped
    time: int = 0  # seconds
    length: int = 0  # seconds
    volume: int = 0  # VLC units, 256 = 100%
    filename: str = ""


class VLCClientError(Exception):
    """VLC client error."""

    pass


class VLCClient:
    """
    Client for the VLC HTTP interface.

    Handles:
    - Session setup with basic auth (empty user name)
    - Status queries and playlist commands
    - Status XML parsing
    - Retry logic for transient failures
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 8080, password: str = "jukebox"):
        """
        Initialize VLC client.

        Args:
            host: HTTP interface host
            port: HTTP interface port
            password: HTTP interface password
        """
        self.host = host
        self.port = port
        self._auth = BasicAuth(login="", password=password)
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    async def connect(self) -> None:
        """Create the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                auth=self._auth,
                timeout=ClientTimeout(total=REQUEST_TIMEOUT_SECONDS),
            )

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    # =========================================================================
    # Commands
    # =========================================================================

    async def get_status(self, max_retries: Optional[int] = None) -> VLCStatus:
        """
        Get current status.

        Raises:
            VLCClientError: If VLC did not answer
        """
        return await self._request(max_retries=max_retries)

    async def play(self, path: str) -> VLCStatus:
        """Replace the playlist entry and start playing a file."""
        return await self._request("in_play", input=self._to_mrl(path))

    async def pause(self) -> VLCStatus:
        return await self._request("pl_forcepause")

    async def resume(self) -> VLCStatus:
        return await self._request("pl_forceresume")

    async def stop(self) -> VLCStatus:
        return await self._request("pl_stop")

    async def empty_playlist(self) -> VLCStatus:
        return await self._request("pl_empty")

    async def seek(self, seconds: int) -> VLCStatus:
        """Seek to an absolute position in seconds."""
        return await self._request("seek", val=str(max(0, seconds)))

    async def set_volume(self, vlc_volume: int) -> VLCStatus:
        """Set volume in VLC units (0-256 for 0-100%)."""
        return await self._request("volume", val=str(vlc_volume))

    # =========================================================================
    # Internal Methods
    # =========================================================================

    async def _request(
        self,
        command: Optional[str] = None,
        max_retries: Optional[int] = None,
        **params: str,
    ) -> VLCStatus:
        """
        Send a status request with retry logic.

        Returns:
            Parsed status returned by the request

        Raises:
            VLCClientError: If all attempts failed
        """
        await self.connect()
        assert self._session is not None

        query = dict(params)
        if command:
            query["command"] = command
        label = command or "status"
        retries = max_retries if max_retries is not None else MAX_RETRIES

        last_error = None
        for attempt in range(retries):
            try:
                async with self._session.get(
                    f"{self.base_url}{STATUS_PATH}", params=query
                ) as response:
                    if response.status == 200:
                        return self.parse_status(await response.text())
                    if response.status == 401:
                        raise VLCClientError("VLC rejected the HTTP password")
                    last_error = f"HTTP {response.status}"
                    logger.warning(f"VLC {label} failed ({response.status})")

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.debug(f"VLC {label} error (attempt {attempt + 1}): {e}")
                last_error = str(e) or type(e).__name__

            if attempt < retries - 1:
                await asyncio.sleep(RETRY_DELAY_SECONDS)

        raise VLCClientError(f"VLC {label} failed after {retries} attempt(s): {last_error}")

    @staticmethod
    def parse_status(xml_text: str) -> VLCStatus:
        """Parse the status.xml document."""
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as e:
            raise VLCClientError(f"Invalid status XML: {e}")

        status = VLCStatus(state=(root.findtext("state") or "stopped").strip())
        status.time = _parse_int(root.findtext("time"))
        status.length = _parse_int(root.findtext("length"))
        status.volume = _parse_int(root.findtext("volume"))
        for info in root.iter("info"):
            if info.get("name") == "filename":
                status.filename = (info.text or "").strip()
                break
        return status

    @staticmethod
    def _to_mrl(path: str) -> str:
        """Convert an absolute file path to a file:// MRL; pass locators through."""
        if "://" in path:
            return path
        p = Path(path)
        return p.as_uri() if p.is_absolute() else path


def _parse_int(value: Optional[str]) -> int:
    try:
        return int(float(value)) if value else 0
    except ValueError:
        return 0
