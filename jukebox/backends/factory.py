"""
Backend factory, registry and selector.

Provides factory methods to instantiate backends by type name, and the
selector that owns the single active backend.
"""

import logging
from typing import Optional

from jukebox.config import Config

from .base import AudioBackend
from .mixer import SystemMixer
from .mpd import MPDBackend
from .process import ProcessBackend
from .processes import kill_processes
from .vlc import VLCBackend

logger = logging.getLogger(__name__)


class BackendNotFoundError(Exception):
    """Raised when requested backend type is not available."""

    pass


class BackendRegistry:
    """
    Registry of available backend types.

    Backends register themselves here with their type name.
    Factory uses this to instantiate backends.
    """

    _backends: dict[str, type[AudioBackend]] = {}

    @classmethod
    def register(cls, type_name: str, backend_class: type[AudioBackend]) -> None:
        """Register a backend class."""
        cls._backends[type_name] = backend_class
        logger.debug(f"Registered backend type: {type_name}")

    @classmethod
    def get(cls, type_name: str) -> Optional[type[AudioBackend]]:
        """Get backend class by type name."""
        return cls._backends.get(type_name)

    @classmethod
    def available_types(cls) -> list[str]:
        """Get list of registered backend type names."""
        return list(cls._backends.keys())


class BackendFactory:
    """
    Factory for creating audio backend instances.

    Usage:
        backend = BackendFactory.create("vlc", config)
    """

    @classmethod
    def create(cls, backend_type: str, config: Config) -> AudioBackend:
        """
        Create a backend of the given type from configuration.

        Raises:
            BackendNotFoundError: If the type is not registered
        """
        backend_class = BackendRegistry.get(backend_type)
        if not backend_class:
            available = BackendRegistry.available_types()
            raise BackendNotFoundError(
                f"Backend type '{backend_type}' not available. Available types: {available}"
            )

        if backend_type == "process":
            return cls.create_process(config)
        elif backend_type == "vlc":
            return cls.create_vlc(config)
        elif backend_type == "mpd":
            return cls.create_mpd(config)
        else:
            # Generic instantiation for registered backends
            return backend_class(name=f"{backend_type} Backend")  # type: ignore[call-arg]

    @classmethod
    def create_process(cls, config: Config) -> AudioBackend:
        p = config.backend.process
        return ProcessBackend(
            command=p.command or None,
            supported_formats=p.supported_formats or None,
            start_grace_seconds=p.start_grace_seconds,
            mixer=SystemMixer(enabled=config.mixer.enabled, control=config.mixer.control),
        )

    @classmethod
    def create_vlc(cls, config: Config) -> AudioBackend:
        v = config.backend.vlc
        return VLCBackend(
            binary=v.binary,
            host=v.host,
            port=v.port,
            password=v.password,
            launch=v.launch,
            startup_timeout=v.startup_timeout,
        )

    @classmethod
    def create_mpd(cls, config: Config) -> AudioBackend:
        m = config.backend.mpd
        return MPDBackend(
            mpc_binary=m.mpc_binary,
            host=m.host,
            port=m.port,
            music_directory=m.music_directory,
            daemon_command=m.daemon_command or None,
        )

    @classmethod
    def list_available_backends(cls) -> list[str]:
        """List available backend types."""
        return BackendRegistry.available_types()


class BackendSelector:
    """
    Owns the single active audio backend.

    Switching types always tears the outgoing backend down (force stop,
    kill its processes, sweep for its process name) before the new one is
    constructed, so two backends never own the audio output at once.
    """

    def __init__(self, config: Config):
        self._config = config
        self._active: Optional[AudioBackend] = None
        self._active_type: Optional[str] = None

    @property
    def active(self) -> Optional[AudioBackend]:
        return self._active

    @property
    def active_type(self) -> Optional[str]:
        return self._active_type

    async def select(self, backend_type: str) -> AudioBackend:
        """
        Make a backend type active.

        Returns the current backend unchanged if it is already of this type.

        Raises:
            BackendNotFoundError: If the type is not registered
        """
        if self._active is not None and backend_type == self._active_type:
            return self._active

        if BackendRegistry.get(backend_type) is None:
            raise BackendNotFoundError(
                f"Backend type '{backend_type}' not available. "
                f"Available types: {BackendRegistry.available_types()}"
            )

        if self._active is not None:
            logger.info(f"Switching backend: {self._active_type} -> {backend_type}")
            await self._teardown()

        self._active = BackendFactory.create(backend_type, self._config)
        self._active_type = backend_type
        logger.info(f"Active backend: {self._active.get_info()}")
        return self._active

    async def shutdown(self) -> None:
        """Tear down the active backend."""
        if self._active is not None:
            await self._teardown()

    async def _teardown(self) -> None:
        backend = self._active
        self._active = None
        self._active_type = None
        if backend is None:
            return
        await backend.shutdown()
        if backend.process_name:
            await kill_processes(backend.process_name, force=True)


# Register backends
BackendRegistry.register("process", ProcessBackend)
BackendRegistry.register("vlc", VLCBackend)
BackendRegistry.register("mpd", MPDBackend)
