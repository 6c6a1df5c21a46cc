"""
Storage interfaces for the ffmpeg gateway.

These protocols define the boundary between the transfer engine and storage
backends, enabling clean dependency injection and testing with fakes. Every
backend (object store, local filesystem, ...) explicitly subclasses them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, Tuple, runtime_checkable

from ..errors import StorageError

logger = logging.getLogger(__name__)

__all__ = ["CopiedEntry", "CopyResult", "StorageWriter", "StorageHandle", "BufferedWriter"]


@dataclass(frozen=True)
class CopiedEntry:
    """One file transferred by copy_tree."""
    relpath: str        # Path relative to the local root, POSIX-style
    remote_path: str    # Key/path written on the backend
    size: int


@dataclass(frozen=True)
class CopyResult:
    """Summary of a copy_tree run. An empty result is a valid outcome."""
    entries: Tuple[CopiedEntry, ...] = field(default_factory=tuple)

    @property
    def total_bytes(self) -> int:
        return sum(e.size for e in self.entries)

    def __len__(self) -> int:
        return len(self.entries)


@runtime_checkable
class StorageWriter(Protocol):
    """
    Ordered byte sink bound to one destination path.

    close() commits the written bytes and must be called exactly once for the
    object to become visible. A writer that is aborted, or never closed, has
    not delivered anything.
    """

    async def write(self, data: bytes) -> None:
        ...

    async def flush(self) -> None:
        ...

    async def close(self) -> None:
        """
        Commit everything written so far.

        Raises:
            StorageError: If the backend rejects the commit or the writer
                was already closed or aborted
        """
        ...

    async def abort(self) -> None:
        """Discard everything written so far. Safe to call after a failure."""
        ...


@runtime_checkable
class StorageHandle(Protocol):
    """Capability object bound to one backend authority (bucket, container, root dir)."""

    async def open_writer(self, path: str) -> StorageWriter:
        """
        Open a streaming writer for a path under this handle's root.

        Raises:
            ValueError: If path is empty or unsafe
            StorageError: For backend errors
        """
        ...

    async def put_file(self, local_path: Path, path: str) -> int:
        """
        Upload one local file to a path under this handle's root.

        Returns:
            Number of bytes transferred

        Raises:
            StorageError: For backend or local I/O errors
        """
        ...

    async def copy_tree(
        self,
        local_root: Path,
        pattern: str = "*",
        remote_path: str = "",
        *,
        concurrency: int = 4,
        retry: int = 0,
    ) -> CopyResult:
        """
        Upload every file under local_root matching pattern to remote_path.

        Relative structure below local_root is preserved. Zero matches is an
        empty transfer; the first failing entry aborts the whole copy.
        """
        from .copier import copy_tree

        return await copy_tree(
            self,
            local_root,
            pattern,
            remote_path,
            concurrency=concurrency,
            retry=retry,
        )


class BufferedWriter(StorageWriter):
    """
    Writer skeleton shared by the backends.

    Buffers writes into parts of ``part_size`` bytes and hands complete parts
    to ``_upload_part``. Subclasses implement the three backend hooks; this
    class enforces the close-exactly-once state machine.
    """

    def __init__(self, path: str, part_size: int) -> None:
        self.path = path
        self._part_size = part_size
        self._buffer = bytearray()
        self._state = "open"
        self.bytes_written = 0

    async def write(self, data: bytes) -> None:
        self._ensure_open()
        self._buffer.extend(data)
        self.bytes_written += len(data)
        while len(self._buffer) >= self._part_size:
            part = bytes(self._buffer[: self._part_size])
            del self._buffer[: self._part_size]
            await self._upload_part(part)

    async def flush(self) -> None:
        # Only complete parts are pushed; the remainder goes out with close()
        self._ensure_open()
        while len(self._buffer) >= self._part_size:
            part = bytes(self._buffer[: self._part_size])
            del self._buffer[: self._part_size]
            await self._upload_part(part)

    async def close(self) -> None:
        self._ensure_open()
        self._state = "closing"
        tail = bytes(self._buffer)
        self._buffer.clear()
        try:
            await self._commit(tail)
        except BaseException:
            self._state = "failed"
            raise
        self._state = "closed"
        logger.debug(f"Committed {self.bytes_written} bytes to {self.path}")

    async def abort(self) -> None:
        if self._state in ("closed", "aborted"):
            return
        self._state = "aborted"
        self._buffer.clear()
        await self._discard()
        logger.debug(f"Aborted writer for {self.path} after {self.bytes_written} bytes")

    @property
    def closed(self) -> bool:
        return self._state == "closed"

    def _ensure_open(self) -> None:
        if self._state != "open":
            raise StorageError(f"Writer for {self.path} is {self._state}")

    async def _upload_part(self, part: bytes) -> None:
        raise NotImplementedError

    async def _commit(self, tail: bytes) -> None:
        raise NotImplementedError

    async def _discard(self) -> None:
        raise NotImplementedError
