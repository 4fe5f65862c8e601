"""
MPD audio backend package.
"""

from .backend import MPDBackend
from .client import MPDClient, MPDClientError, MPDStatus

__all__ = [
    "MPDBackend",
    "MPDClient",
    "MPDClientError",
    "MPDStatus",
]
