"""
Scratch workspaces for tools that write files instead of a stream.

A workspace is a uniquely named directory that serves as the tool's working
directory for one invocation and is removed when the invocation ends, on
every exit path including cancellation.
"""
from __future__ import annotations

import logging
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

__all__ = ["scratch_workspace"]

logger = logging.getLogger(__name__)


@contextmanager
def scratch_workspace(parent: Optional[str] = None) -> Iterator[Path]:
    """
    Create a scratch directory and remove it on exit.

    Removal failures are logged and swallowed: they must not turn a
    successful invocation into a failure, nor mask the original error.

    Args:
        parent: Directory to create the workspace in (system temp if None)

    Yields:
        Path of the created directory
    """
    path = Path(tempfile.mkdtemp(prefix="ffgw-", dir=parent))
    logger.debug(f"Created scratch workspace {path}")
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.warning(f"Failed to remove scratch workspace {path}: {e}")
        else:
            logger.debug(f"Removed scratch workspace {path}")
