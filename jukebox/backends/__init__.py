"""
Audio backends module.

Provides the abstract interface, concrete backends and the selector that
owns the active backend.
"""

from .base import (
    AudioBackend,
    TrackCompleteCallback,
    estimate_duration_from_size,
    is_at_end_of_track,
)
from .factory import (
    BackendFactory,
    BackendNotFoundError,
    BackendRegistry,
    BackendSelector,
)
from .mixer import SystemMixer
from .mpd import MPDBackend, MPDClient, MPDClientError
from .process import ProcessBackend
from .types import (
    BackendInfo,
    BackendState,
    BackendStatus,
    ProgressSample,
)
from .vlc import VLCBackend, VLCClient, VLCClientError

__all__ = [
    # Types
    "BackendInfo",
    "BackendState",
    "BackendStatus",
    "ProgressSample",
    # Base class
    "AudioBackend",
    "TrackCompleteCallback",
    "estimate_duration_from_size",
    "is_at_end_of_track",
    # Factory
    "BackendFactory",
    "BackendNotFoundError",
    "BackendRegistry",
    "BackendSelector",
    # Mixer
    "SystemMixer",
    # Backends
    "ProcessBackend",
    "VLCBackend",
    "VLCClient",
    "VLCClientError",
    "MPDBackend",
    "MPDClient",
    "MPDClientError",
]
