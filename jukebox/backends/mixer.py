"""
System volume mixer.

Thin wrapper over the platform's mixer command line tools. Volumes are
quantized to whole percent, so the applied level can differ from the
requested one.
"""

import logging
import re
import sys
from typing import Optional

from .processes import run_command

logger = logging.getLogger(__name__)

# Matches "[42%]" in amixer output
AMIXER_PERCENT_PATTERN = re.compile(r"\[(\d{1,3})%\]")


class SystemMixer:
    """
    Controls the system output volume.

    Uses osascript on macOS and amixer on Linux. On other platforms, or
    when disabled, every call is a no-op that reports failure.
    """

    def __init__(self, enabled: bool = True, control: str = "Master", platform: str = ""):
        self.enabled = enabled
        self.control = control
        self.platform = platform or sys.platform

    @property
    def is_supported(self) -> bool:
        return self.enabled and (self.platform == "darwin" or self.platform.startswith("linux"))

    async def set_volume(self, level: float) -> Optional[float]:
        """
        Set system volume.

        Args:
            level: Volume 0.0-1.0

        Returns:
            Applied volume 0.0-1.0, or None on failure
        """
        if not self.is_supported:
            return None

        percent = int(round(max(0.0, min(1.0, level)) * 100))
        if self.platform == "darwin":
            result = await run_command("osascript", "-e", f"set volume output volume {percent}")
        else:
            result = await run_command("amixer", "-q", "-M", "sset", self.control, f"{percent}%")

        if result is None or not result.ok:
            logger.warning(f"Failed to set system volume to {percent}%")
            return None
        logger.debug(f"System volume set to {percent}%")
        return percent / 100.0

    async def get_volume(self) -> Optional[float]:
        """Get system volume (0.0-1.0), or None if unavailable."""
        if not self.is_supported:
            return None

        if self.platform == "darwin":
            result = await run_command("osascript", "-e", "output volume of (get volume settings)")
            if result is None or not result.ok:
                return None
            try:
                return int(result.stdout.strip()) / 100.0
            except ValueError:
                return None

        result = await run_command("amixer", "-M", "get", self.control)
        if result is None or not result.ok:
            return None
        match = AMIXER_PERCENT_PATTERN.search(result.stdout)
        if not match:
            return None
        return int(match.group(1)) / 100.0
