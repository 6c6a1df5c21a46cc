"""
Storage resolver with per-scheme factories.

Maps the scheme of a destination descriptor to a factory that builds a
storage handle for the descriptor's authority. The path component is split
off first and never reaches the factory, so one backend identity can serve
any number of paths.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, Mapping, Optional, Tuple

from ..errors import ResolutionError
from ..settings import Settings
from .base import StorageHandle
from .uri import ParsedLocation, parse_location

__all__ = ["StorageFactory", "StorageResolver", "default_factories", "make_resolver"]

logger = logging.getLogger(__name__)

# (authority, settings) -> handle
StorageFactory = Callable[[str, Settings], StorageHandle]


def default_factories() -> Dict[str, StorageFactory]:
    """
    Factories for the built-in backends.

    Schemes:
        file: Local filesystem, absolute paths (file:///srv/out.mp4)
        fs: Local filesystem below FFMPEG_GATEWAY_FS_ROOT (fs://name/out.mp4)
        s3: S3-compatible object storage (s3://bucket/key)
        az: Azure Blob Storage (az://container/blob)
    """
    from .azure_blob import azure_storage_for
    from .fs import file_storage_for, fs_storage_for
    from .s3 import s3_storage_for

    return {
        "file": file_storage_for,
        "fs": fs_storage_for,
        "s3": s3_storage_for,
        "az": azure_storage_for,
    }


class StorageResolver:
    """
    Routes destination descriptors to storage handles.

    Resolution is a pure function of scheme + authority: no handle is cached
    here, each call builds a fresh one for the invocation that asked for it.
    """

    def __init__(self, settings: Settings, factories: Optional[Mapping[str, StorageFactory]] = None) -> None:
        self.settings = settings
        self._factories: Dict[str, StorageFactory] = dict(factories or {})

    def register(self, scheme: str, factory: StorageFactory) -> None:
        """Register (or replace) the factory for a scheme."""
        self._factories[scheme.lower()] = factory

    @property
    def schemes(self) -> Tuple[str, ...]:
        return tuple(sorted(self._factories))

    def parse(self, location: str) -> ParsedLocation:
        """
        Parse a descriptor and check a backend exists for its scheme.

        Raises:
            ResolutionError: If the descriptor is malformed or the scheme unknown
        """
        try:
            parsed = parse_location(location)
        except ValueError as e:
            raise ResolutionError(str(e)) from e

        if parsed.scheme not in self._factories:
            raise ResolutionError(
                f"No storage backend registered for scheme '{parsed.scheme}' "
                f"(location {location}). Supported schemes: {', '.join(self.schemes) or 'none'}"
            )
        return parsed

    def resolve(self, location: str) -> Tuple[StorageHandle, str]:
        """
        Resolve a descriptor to (storage handle, relative path).

        Args:
            location: Destination descriptor, e.g. "s3://bucket/clip.mp4"

        Returns:
            Handle bound to the descriptor's authority and the path under it
            ("" for the authority's root)

        Raises:
            ResolutionError: If the descriptor cannot be routed to a backend
        """
        parsed = self.parse(location)
        factory = self._factories[parsed.scheme]
        try:
            handle = factory(parsed.authority, self.settings)
        except (ValueError, ImportError) as e:
            raise ResolutionError(f"Cannot open storage for {parsed.backend_key}: {e}") from e

        logger.debug(f"Resolved {location} -> {handle!r}, path={parsed.path!r}")
        return handle, parsed.path


def make_resolver(settings: Settings) -> StorageResolver:
    """Create a resolver with every built-in backend registered."""
    return StorageResolver(settings, default_factories())
