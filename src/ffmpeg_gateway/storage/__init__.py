"""Storage capability interfaces, backends and location resolution."""
from .base import CopiedEntry, CopyResult, StorageHandle, StorageWriter
from .resolver import StorageResolver, make_resolver
from .uri import ParsedLocation, parse_location

__all__ = [
    "CopiedEntry",
    "CopyResult",
    "StorageHandle",
    "StorageWriter",
    "StorageResolver",
    "make_resolver",
    "ParsedLocation",
    "parse_location",
]
