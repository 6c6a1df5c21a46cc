"""
Destination location parsing.

Splits a ``scheme://authority/path`` descriptor into the part that selects a
storage backend (scheme + authority) and the path under that backend's root.
The path is deliberately kept out of the backend key so one resolved backend
can serve many distinct paths.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

__all__ = ["ParsedLocation", "parse_location"]

_LOCATION_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.-]*)://([^/]*)(/.*)?$")


@dataclass(frozen=True)
class ParsedLocation:
    """
    Parsed components of a destination descriptor.

    Attributes:
        scheme: Lower-cased scheme, selects the backend (s3, az, file, ...)
        authority: Backend root identity, e.g. bucket or container name
        path: Path under the authority, without leading slash ("" = root)
        original: Original descriptor string for error messages
    """
    scheme: str
    authority: str
    path: str
    original: str

    @property
    def backend_key(self) -> str:
        """Descriptor with the path stripped, e.g. ``s3://bucket``."""
        return f"{self.scheme}://{self.authority}"

    @property
    def is_root(self) -> bool:
        return self.path == ""


def parse_location(location: str) -> ParsedLocation:
    """
    Parse and validate a destination descriptor.

    Accepts descriptors in the form: scheme://authority[/path]

    Validation:
    - Rejects descriptors containing ".." (path traversal)
    - Rejects descriptors with backslashes (non-POSIX paths)
    - Rejects query strings and fragments
    - Rejects descriptors without a scheme

    Args:
        location: Destination descriptor to parse

    Returns:
        ParsedLocation with validated components

    Raises:
        ValueError: If the descriptor format is invalid or contains unsafe patterns

    Examples:
        >>> parse_location("s3://bucket/")
        ParsedLocation(scheme='s3', authority='bucket', path='', original='s3://bucket/')

        >>> parse_location("s3://bucket/clip.mp4")
        ParsedLocation(scheme='s3', authority='bucket', path='clip.mp4', original='...')

        >>> parse_location("file:///srv/media/out.mkv")
        ParsedLocation(scheme='file', authority='', path='srv/media/out.mkv', original='...')
    """
    if not location:
        raise ValueError("Location cannot be empty")

    if "\\" in location:
        raise ValueError(f"Location contains backslashes (use forward slashes): {location}")

    if "?" in location or "#" in location:
        raise ValueError(f"Location cannot contain a query or fragment: {location}")

    match = _LOCATION_RE.match(location)
    if not match:
        raise ValueError(f"Invalid location format, expected scheme://authority/path: {location}")

    scheme, authority, path = match.groups()
    path = (path or "").lstrip("/")

    if ".." in path.split("/"):
        raise ValueError(f"Location contains path traversal: {location}")

    return ParsedLocation(
        scheme=scheme.lower(),
        authority=authority,
        path=path,
        original=location,
    )
