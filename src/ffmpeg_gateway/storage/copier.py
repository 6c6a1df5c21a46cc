"""
Bulk copy of a local directory tree into a storage handle.

Used after the tool has exited to deliver whatever files it produced in the
scratch workspace. The number of files is not known in advance (segmenters,
image sequence exporters, ...), so zero or many entries are both fine.
"""
from __future__ import annotations

import asyncio
import logging
import os
from fnmatch import fnmatch
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, List, Tuple

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import StorageError
from ..path_safety import join_remote, safe_relpath
from .base import CopiedEntry, CopyResult

if TYPE_CHECKING:
    from .base import StorageHandle

__all__ = ["iter_entries", "copy_tree"]

logger = logging.getLogger(__name__)


def _raise(error: OSError) -> None:
    # os.walk skips unreadable directories unless told otherwise
    raise error


def iter_entries(local_root: Path, pattern: str = "*") -> Iterator[Tuple[Path, str]]:
    """
    Enumerate regular files under local_root whose relative path matches pattern.

    Directories themselves are not entries; they are recreated implicitly by
    the relative paths of the files inside them. Walk order is sorted so the
    enumeration is deterministic.

    Yields:
        (absolute_path, relative_posix_path) tuples

    Raises:
        OSError: If the root or any directory below it cannot be listed
    """
    local_root = Path(local_root)
    for dirpath, dirnames, filenames in os.walk(local_root, onerror=_raise):
        dirnames.sort()
        for name in sorted(filenames):
            abs_path = Path(dirpath) / name
            if not abs_path.is_file():
                continue
            rel = abs_path.relative_to(local_root).as_posix()
            if fnmatch(rel, pattern):
                yield abs_path, rel


async def _put_with_retry(handle: StorageHandle, local_path: Path, remote: str, retry: int) -> int:
    """Upload one file, retrying transient storage errors ``retry`` extra times."""
    retrying = AsyncRetrying(
        stop=stop_after_attempt(retry + 1),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
        retry=retry_if_exception_type(OSError),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            if attempt.retry_state.attempt_number > 1:
                logger.info(f"Retrying upload of {local_path.name} to {remote} (attempt {attempt.retry_state.attempt_number})")
            return await handle.put_file(local_path, remote)
    raise AssertionError("unreachable")


async def copy_tree(
    handle: StorageHandle,
    local_root: Path,
    pattern: str = "*",
    remote_path: str = "",
    *,
    concurrency: int = 4,
    retry: int = 0,
) -> CopyResult:
    """
    Upload every matching file under local_root to remote_path on handle.

    Uploads run concurrently, at most ``concurrency`` at a time. The first
    failing entry cancels the uploads still in flight and is re-raised; no
    entry is silently skipped.

    Args:
        handle: Destination storage handle
        local_root: Directory to copy from
        pattern: fnmatch pattern applied to relative POSIX paths ("*" = everything)
        remote_path: Destination prefix, treated as a directory ("" = root)
        concurrency: Maximum number of uploads in flight
        retry: Extra attempts per entry for transient storage errors

    Returns:
        CopyResult listing every transferred entry

    Raises:
        StorageError: If enumeration or any upload fails
        ValueError: If concurrency < 1 or an entry path is unsafe
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")

    try:
        entries = list(iter_entries(local_root, pattern))
    except OSError as e:
        raise StorageError(f"Failed to enumerate {local_root}: {e}") from e

    if not entries:
        logger.debug(f"No entries under {local_root} match {pattern!r}")
        return CopyResult()

    semaphore = asyncio.Semaphore(concurrency)

    async def _copy_one(local_path: Path, rel: str) -> CopiedEntry:
        remote = join_remote(remote_path, safe_relpath(rel))
        async with semaphore:
            size = await _put_with_retry(handle, local_path, remote, retry)
        logger.debug(f"Copied {rel} -> {remote} ({size} bytes)")
        return CopiedEntry(relpath=rel, remote_path=remote, size=size)

    tasks: List[asyncio.Task] = [
        asyncio.create_task(_copy_one(local_path, rel)) for local_path, rel in entries
    ]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    failed = [t for t in done if not t.cancelled() and t.exception() is not None]
    if failed:
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        # Report the failure of the earliest entry among those that failed
        first = min(failed, key=tasks.index)
        raise first.exception()

    copied = tuple(t.result() for t in tasks)
    logger.info(f"Copied {len(copied)} entries ({sum(e.size for e in copied)} bytes) from {local_root}")
    return CopyResult(entries=copied)
