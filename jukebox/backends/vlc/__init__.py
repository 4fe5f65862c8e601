"""
VLC audio backend package.
"""

from .backend import VLCBackend
from .client import VLCClient, VLCClientError, VLCStatus

__all__ = [
    "VLCBackend",
    "VLCClient",
    "VLCClientError",
    "VLCStatus",
]
