"""
Process audio backend package.
"""

from .backend import ProcessBackend, default_player_command, SUPPORTED_FORMATS

__all__ = [
    "ProcessBackend",
    "default_player_command",
    "SUPPORTED_FORMATS",
]
