"""
Path safety utilities for the ffmpeg gateway.

Shared validation for destination paths and workspace entry paths, so that
neither a caller-supplied location nor a file name produced by the tool can
escape the storage root it is written under.
"""
from __future__ import annotations

from pathlib import PurePosixPath


def safe_relpath(path: str) -> str:
    """
    Validate and normalize a relative storage path.

    This function enforces the following safety rules:
    - No empty strings or "." (use join_remote for root-relative keys)
    - No absolute paths (starting with '/')
    - No parent directory references ('..' components)
    - No backslashes (non-POSIX separators)

    Args:
        path: Path string to validate

    Returns:
        Normalized relative path safe for use

    Raises:
        ValueError: If path violates safety rules

    Examples:
        >>> safe_relpath("hls/segment_000.ts")
        'hls/segment_000.ts'

        >>> safe_relpath("../secrets.txt")
        ValueError: unsafe path: ../secrets.txt
    """
    rel = PurePosixPath(path)
    s = str(rel)
    if not s or s == ".":
        raise ValueError(f"unsafe path: {path}")
    if "\\" in s:
        raise ValueError(f"unsafe path: {path}")
    if rel.is_absolute() or ".." in rel.parts:
        raise ValueError(f"unsafe path: {path}")
    return s


def join_remote(prefix: str, relpath: str) -> str:
    """
    Compose a remote key from a destination prefix and an entry path.

    The prefix is treated as a directory: "out" and "out/" both place
    "a.mp4" at "out/a.mp4". An empty prefix denotes the storage root.

    Examples:
        >>> join_remote("", "output.mp4")
        'output.mp4'

        >>> join_remote("renditions/", "720p/index.m3u8")
        'renditions/720p/index.m3u8'
    """
    rel = safe_relpath(relpath)
    prefix = prefix.strip("/")
    if not prefix:
        return rel
    return f"{safe_relpath(prefix)}/{rel}"
